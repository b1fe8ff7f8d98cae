"""
SQLAlchemy Implementation of Transfer Repository.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import DatabaseError
from app.domain.models.credit_grant import CreditGrant
from app.domain.models.fax_record import FaxRecord
from app.domain.models.transfer_record import TransferRecord
from app.domain.models.usage_event import UsageEvent
from app.domain.repositories.transfer_repository import TransferRepository
from app.infrastructure.repositories.base_repository import translate_errors

_OWNED = (
    ("grants", CreditGrant),
    ("usage", UsageEvent),
    ("faxes", FaxRecord),
)


class SQLAlchemyTransferRepository(TransferRepository):
    """Transfer audit rows plus the atomic ownership reassignment."""

    def __init__(self, db):
        self.db = db

    def start(self, from_user_id: str, to_user_id: str, reason: str) -> TransferRecord:
        record = TransferRecord(from_user_id=from_user_id, to_user_id=to_user_id, reason=reason)
        with translate_errors(self.db, "record transfer"):
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        return record

    def finish(
        self,
        record: TransferRecord,
        status: str,
        counts: Optional[Dict[str, int]] = None,
        old_user_deleted: bool = False,
        error_message: Optional[str] = None,
        counts_before: Optional[Dict[str, Dict[str, int]]] = None,
        counts_after: Optional[Dict[str, Dict[str, int]]] = None,
    ) -> TransferRecord:
        counts = counts or {}
        record.status = status
        record.transferred_grants = counts.get("grants", 0)
        record.transferred_usage = counts.get("usage", 0)
        record.transferred_faxes = counts.get("faxes", 0)
        record.old_user_deleted = old_user_deleted
        record.error_message = error_message
        record.counts_before = counts_before
        record.counts_after = counts_after
        record.completed_at = datetime.now(timezone.utc)
        with translate_errors(self.db, "update transfer"):
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        return record

    def count_owned(self, user_id: str) -> Dict[str, int]:
        with translate_errors(self.db, "count owned records"):
            return {
                name: self.db.query(func.count(model.id)).filter(model.user_id == user_id).scalar() or 0
                for name, model in _OWNED
            }

    def reassign_all(self, from_user_id: str, to_user_id: str) -> Dict[str, int]:
        moved: Dict[str, int] = {}
        try:
            for name, model in _OWNED:
                result = self.db.execute(
                    update(model)
                    .where(model.user_id == from_user_id)
                    .values(user_id=to_user_id)
                    .execution_options(synchronize_session=False)
                )
                moved[name] = result.rowcount
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseError(
                "Failed to reassign user records",
                {"from_user_id": from_user_id, "to_user_id": to_user_id},
            ) from e
        return moved
