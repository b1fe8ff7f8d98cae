"""
SQLAlchemy Implementation of Fax Repository.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import update

from app.domain.fax_status import TERMINAL_STATUSES
from app.domain.models.fax_record import FaxRecord
from app.domain.repositories.fax_repository import FaxRepository
from app.domain.schemas.fax import FaxFilter
from app.infrastructure.repositories.base_repository import SQLAlchemyRepository, translate_errors

_TERMINAL_VALUES = [s.value for s in TERMINAL_STATUSES]


class SQLAlchemyFaxRepository(SQLAlchemyRepository[FaxRecord], FaxRepository):
    """Fax repository implementation using SQLAlchemy."""

    def get_by_external_id(self, provider_fax_id: str) -> Optional[FaxRecord]:
        with translate_errors(self.db, "load fax"):
            return (
                self.db.query(FaxRecord)
                .filter(FaxRecord.provider_fax_id == provider_fax_id)
                .first()
            )

    def get_for_user(self, fax_id: int, user_id: str) -> Optional[FaxRecord]:
        with translate_errors(self.db, "load fax"):
            return (
                self.db.query(FaxRecord)
                .filter(FaxRecord.id == fax_id, FaxRecord.user_id == user_id)
                .first()
            )

    def list_for_user(self, user_id: str, filters: FaxFilter) -> Tuple[List[FaxRecord], int]:
        query = self.db.query(FaxRecord).filter(FaxRecord.user_id == user_id)

        if filters.status:
            query = query.filter(FaxRecord.status == filters.status)
        if filters.date_from:
            query = query.filter(FaxRecord.created_at >= filters.date_from)
        if filters.date_to:
            query = query.filter(FaxRecord.created_at <= filters.date_to)

        with translate_errors(self.db, "list faxes"):
            total = query.count()
            items = (
                query.order_by(FaxRecord.created_at.desc(), FaxRecord.id.desc())
                .offset(filters.offset)
                .limit(filters.limit)
                .all()
            )
        return items, total

    def mark_completed(self, fax_id: int, completed_at: datetime) -> bool:
        stmt = (
            update(FaxRecord)
            .where(FaxRecord.id == fax_id, FaxRecord.completed_at.is_(None))
            .values(completed_at=completed_at)
            .execution_options(synchronize_session=False)
        )
        with translate_errors(self.db, "complete fax"):
            result = self.db.execute(stmt)
            self.db.commit()
        return result.rowcount == 1

    def list_unsettled(self, since: datetime, limit: int = 200) -> List[FaxRecord]:
        with translate_errors(self.db, "list unsettled faxes"):
            return (
                self.db.query(FaxRecord)
                .filter(
                    FaxRecord.status.notin_(_TERMINAL_VALUES),
                    FaxRecord.created_at >= since,
                )
                .order_by(FaxRecord.created_at.asc())
                .limit(limit)
                .all()
            )
