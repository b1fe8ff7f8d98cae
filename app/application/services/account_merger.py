"""Account merger — move one user's credits, usage and faxes onto another user.

Used when the billing provider reports that purchases moved between app user
ids, typically from an anonymous install to a signed-in account. The
reassignment is one transaction. Deleting an anonymous source afterwards is
cleanup: its failure is logged and the transfer still counts as completed.
"""

from typing import Dict, Optional

import structlog

from app.core.exceptions import DatabaseError
from app.domain.models.transfer_record import TRANSFER_COMPLETED, TRANSFER_FAILED
from app.domain.repositories.transfer_repository import TransferRepository
from app.domain.repositories.user_repository import UserRepository
from app.domain.schemas.webhook import TransferResult

logger = structlog.get_logger(__name__)


def _snapshot(transfer_repo: TransferRepository, from_user_id: str, to_user_id: str) -> Dict[str, Dict[str, int]]:
    return {
        "source": transfer_repo.count_owned(from_user_id),
        "target": transfer_repo.count_owned(to_user_id),
    }


def merge_accounts(
    transfer_repo: TransferRepository,
    user_repo: UserRepository,
    from_user_id: Optional[str],
    to_user_id: Optional[str],
    reason: str = "revenuecat_transfer",
) -> TransferResult:
    if not from_user_id or not to_user_id:
        logger.error("Transfer without both user ids", from_user_id=from_user_id, to_user_id=to_user_id)
        return TransferResult(success=False, message="Both source and target user ids are required")

    if from_user_id == to_user_id:
        return TransferResult(success=True, message="No transfer needed")

    log = logger.bind(from_user_id=from_user_id, to_user_id=to_user_id)
    record = transfer_repo.start(from_user_id, to_user_id, reason)

    def fail(message: str) -> TransferResult:
        transfer_repo.finish(record, TRANSFER_FAILED, error_message=message)
        log.warning("Transfer rejected", reason=message, transfer_id=record.id)
        return TransferResult(success=False, message=message, transfer_id=record.id)

    source = user_repo.get_user(from_user_id)
    target = user_repo.get_user(to_user_id)
    if source is None:
        return fail("Source user not found")
    if target is None:
        return fail("Target user not found")
    if target.is_anonymous:
        return fail("Cannot transfer to anonymous user")
    source_is_anonymous = bool(source.is_anonymous)

    before = _snapshot(transfer_repo, from_user_id, to_user_id)
    try:
        moved = transfer_repo.reassign_all(from_user_id, to_user_id)
    except DatabaseError as e:
        transfer_repo.finish(record, TRANSFER_FAILED, error_message=e.message, counts_before=before)
        log.error("Transfer failed", error=e.message, transfer_id=record.id)
        return TransferResult(success=False, message=e.message, transfer_id=record.id)
    after = _snapshot(transfer_repo, from_user_id, to_user_id)

    old_user_deleted = False
    if source_is_anonymous:
        try:
            old_user_deleted = user_repo.delete_user(from_user_id)
        except DatabaseError as e:
            log.warning("Anonymous source user not deleted", error=e.message)

    transfer_repo.finish(
        record,
        TRANSFER_COMPLETED,
        counts=moved,
        old_user_deleted=old_user_deleted,
        counts_before=before,
        counts_after=after,
    )
    log.info(
        "Transfer completed",
        transfer_id=record.id,
        before=before,
        after=after,
        moved=moved,
        old_user_deleted=old_user_deleted,
    )
    return TransferResult(
        success=True,
        message="Transfer completed",
        transfer_id=record.id,
        transferred_grants=moved.get("grants", 0),
        transferred_usage=moved.get("usage", 0),
        transferred_faxes=moved.get("faxes", 0),
        old_user_deleted=old_user_deleted,
    )
