"""Fax service — send orchestration, queries and carrier status updates."""

import base64
import binascii
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog

from app.application.services import credit_ledger
from app.application.services.fax_saga import FaxSagaError, FaxSendSaga
from app.application.services.provider_dispatcher import ProviderDispatcher
from app.application.services.status_normalizer import normalize_status
from app.core.exceptions import AppError, NotFoundError, ValidationError
from app.domain.fax_status import is_terminal
from app.domain.models.fax_record import FaxRecord
from app.domain.repositories.credit_repository import CreditRepository
from app.domain.repositories.fax_repository import FaxRepository
from app.domain.schemas.fax import (
    MAX_ATTACHMENT_BYTES,
    Attachment,
    CarrierStatusUpdate,
    FaxFilter,
    FaxRequest,
    FaxSendRequest,
)
from app.infrastructure.providers.base import WORKFLOW_STAGED

logger = structlog.get_logger(__name__)


def build_fax_request(body: FaxSendRequest) -> FaxRequest:
    """Validate the API payload into the transient FaxRequest."""
    recipients = [r.strip() for r in body.recipients if r and r.strip()]
    if not recipients and body.recipient and body.recipient.strip():
        recipients = [body.recipient.strip()]
    if not recipients:
        raise ValidationError("At least one recipient is required", code="missing_recipients")

    if body.pages is None:
        raise ValidationError("Page count is required", code="missing_pages")
    if body.pages < 1:
        raise ValidationError("Page count must be at least 1", {"pages": body.pages}, code="invalid_pages")

    attachments = []
    for index, file in enumerate(body.files, start=1):
        try:
            content = base64.b64decode(file.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValidationError(
                "Attachment is not valid base64",
                {"index": index},
                code="invalid_attachment",
            ) from e
        if len(content) > MAX_ATTACHMENT_BYTES:
            raise ValidationError(
                "Attachment exceeds the 100MB limit",
                {"index": index, "size": len(content)},
                code="attachment_too_large",
            )
        attachments.append(
            Attachment(
                content=content,
                filename=file.filename or f"document_{index}.pdf",
                content_type=file.mime_type or "application/pdf",
            )
        )

    return FaxRequest(
        recipients=recipients,
        attachments=attachments,
        pages=body.pages,
        sender_id=body.sender_id,
        subject=body.subject,
        message=body.message,
        cover_page=body.cover_page,
        client_reference=body.client_reference or "SendFaxPro",
    )


async def send_fax(
    body: FaxSendRequest,
    user_id: Optional[str],
    dispatcher: ProviderDispatcher,
    fax_repo: FaxRepository,
    credit_repo: CreditRepository,
    query_provider: Optional[str] = None,
    allow_anonymous: bool = False,
) -> FaxRecord:
    """Validate, pick a carrier, reserve credits, run the saga, then commit or release."""
    if not user_id and not allow_anonymous:
        raise ValidationError("An authenticated user is required to send faxes", code="missing_user")

    request = build_fax_request(body)
    provider = dispatcher.resolve(query_provider, body.provider or body.api_provider)
    if provider.workflow == WORKFLOW_STAGED and not request.attachments:
        raise ValidationError(
            f"{provider.name} needs at least one document",
            code="missing_files",
        )

    reservation = None
    if user_id:
        reservation = credit_ledger.reserve_pages(credit_repo, user_id, request.pages)

    saga = FaxSendSaga(provider, fax_repo, dispatcher.storage)
    try:
        record = await saga.execute(request, user_id)
    except FaxSagaError as e:
        if reservation is not None:
            if e.carrier_accepted:
                # Charge stands; the fax row must be reconciled out of band
                logger.error(
                    "Fax accepted by carrier but not fully recorded",
                    user_id=user_id,
                    step=e.step,
                    fax_id=e.fax_id,
                )
                credit_ledger.record_usage(
                    credit_repo,
                    user_id,
                    reservation.pages,
                    {"provider": provider.name, "fax_id": e.fax_id, "unrecorded": True},
                )
            else:
                credit_ledger.release_reservation(credit_repo, reservation)
        raise e.cause from e

    if reservation is not None:
        credit_ledger.record_usage(
            credit_repo,
            user_id,
            reservation.pages,
            {
                "fax_id": record.id,
                "provider": provider.name,
                "external_id": record.provider_fax_id,
                "grants": [list(allocation) for allocation in reservation.allocations],
            },
        )
    return record


def list_faxes(fax_repo: FaxRepository, user_id: str, filters: FaxFilter) -> dict:
    items, total = fax_repo.list_for_user(user_id, filters)
    return {"items": items, "total": total, "limit": filters.limit, "offset": filters.offset}


def get_fax(fax_repo: FaxRepository, user_id: str, fax_id: int) -> FaxRecord:
    record = fax_repo.get_for_user(fax_id, user_id)
    if record is None:
        raise NotFoundError("Fax not found", {"fax_id": fax_id})
    return record


def apply_status_update(
    fax_repo: FaxRepository,
    record: FaxRecord,
    update: CarrierStatusUpdate,
    source: str,
) -> FaxRecord:
    """Apply a carrier's view of a fax. Last write wins, except completed_at which is set once."""
    status = normalize_status(update.raw_status, record.provider)

    metadata = {
        **(record.metadata_ or {}),
        "last_update_source": source,
        "last_update_at": datetime.now(timezone.utc).isoformat(),
    }
    if update.pages is not None:
        metadata["carrier_pages"] = update.pages

    fields = {
        "status": status.value,
        "original_status": update.raw_status,
        "metadata_": metadata,
    }
    if update.cost is not None:
        fields["cost"] = update.cost
    if update.error_message:
        fields["error_message"] = update.error_message

    previous = record.status
    record = fax_repo.update(record, fields)

    if is_terminal(status):
        if fax_repo.mark_completed(record.id, update.completed_at or datetime.now(timezone.utc)):
            logger.info("Fax completed", fax_id=record.id, status=status.value)
        record = fax_repo.get_by_id(record.id)

    logger.info(
        "Fax status updated",
        fax_id=record.id,
        source=source,
        previous=previous,
        status=status.value,
        raw_status=update.raw_status,
    )
    return record


async def refresh_fax(
    fax_repo: FaxRepository,
    dispatcher: ProviderDispatcher,
    user_id: str,
    fax_id: int,
) -> FaxRecord:
    """Poll the carrier for one of the user's faxes."""
    record = get_fax(fax_repo, user_id, fax_id)
    if is_terminal(record.status):
        return record
    if not record.provider_fax_id:
        raise ValidationError(
            "Fax never reached the carrier",
            {"fax_id": fax_id, "status": record.status},
            code="not_submitted",
        )

    provider = dispatcher.get(record.provider)
    update = await provider.get_status(record.provider_fax_id)
    return apply_status_update(fax_repo, record, update, source="poll")


async def reconcile_unsettled(
    fax_repo: FaxRepository,
    dispatcher: ProviderDispatcher,
    lookback_hours: int,
) -> dict:
    """Poll carriers for every recent non-terminal fax. Per-fax failures don't stop the sweep."""
    since = datetime.now(timezone.utc) - timedelta(hours=lookback_hours)
    records = fax_repo.list_unsettled(since)
    summary = {"checked": 0, "updated": 0, "orphaned": 0, "errors": 0}

    for record in records:
        if not record.provider_fax_id:
            # Saga stopped before the carrier had it; nothing to poll
            summary["orphaned"] += 1
            logger.warning("Fax never reached carrier", fax_id=record.id, status=record.status)
            continue

        summary["checked"] += 1
        try:
            provider = dispatcher.get(record.provider)
            update = await provider.get_status(record.provider_fax_id)
            before = record.status
            record = apply_status_update(fax_repo, record, update, source="reconcile")
            if record.status != before:
                summary["updated"] += 1
        except AppError as e:
            summary["errors"] += 1
            logger.error("Fax reconciliation failed", fax_id=record.id, code=e.code, error=e.message)
        except Exception:
            summary["errors"] += 1
            logger.exception("Fax reconciliation crashed", fax_id=record.id)

    logger.info("Fax reconciliation finished", **summary)
    return summary
