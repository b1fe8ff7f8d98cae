"""
SQLAlchemy Implementation of Credit Repository.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import case, or_, update

from app.domain.models.credit_grant import CreditGrant
from app.domain.models.product import KIND_SUBSCRIPTION
from app.domain.models.usage_event import UsageEvent
from app.domain.repositories.credit_repository import CreditRepository
from app.infrastructure.repositories.base_repository import SQLAlchemyRepository, translate_errors


class SQLAlchemyCreditRepository(SQLAlchemyRepository[CreditGrant], CreditRepository):
    """Credit repository implementation using SQLAlchemy."""

    def _active(self, user_id: str):
        return self.db.query(CreditGrant).filter(
            CreditGrant.user_id == user_id,
            CreditGrant.is_active.is_(True),
        )

    def list_eligible(self, user_id: str, now: datetime) -> List[CreditGrant]:
        subscription_first = case((CreditGrant.kind == KIND_SUBSCRIPTION, 0), else_=1)
        with translate_errors(self.db, "list credit grants"):
            return (
                self._active(user_id)
                .filter(or_(CreditGrant.expires_at.is_(None), CreditGrant.expires_at > now))
                .order_by(subscription_first, CreditGrant.created_at.desc(), CreditGrant.id.desc())
                .all()
            )

    def try_deduct(self, grant_id: int, pages: int) -> bool:
        stmt = (
            update(CreditGrant)
            .where(
                CreditGrant.id == grant_id,
                CreditGrant.is_active.is_(True),
                CreditGrant.pages_used + pages <= CreditGrant.page_limit,
            )
            .values(pages_used=CreditGrant.pages_used + pages)
            .execution_options(synchronize_session=False)
        )
        with translate_errors(self.db, "deduct credits"):
            result = self.db.execute(stmt)
            self.db.commit()
        return result.rowcount == 1

    def release(self, grant_id: int, pages: int) -> bool:
        stmt = (
            update(CreditGrant)
            .where(CreditGrant.id == grant_id, CreditGrant.pages_used >= pages)
            .values(pages_used=CreditGrant.pages_used - pages)
            .execution_options(synchronize_session=False)
        )
        with translate_errors(self.db, "release credits"):
            result = self.db.execute(stmt)
            self.db.commit()
        return result.rowcount == 1

    def add_usage_event(self, user_id: str, amount: int, metadata: Dict[str, Any]) -> UsageEvent:
        event = UsageEvent(
            user_id=user_id,
            resource="fax",
            unit="page",
            amount=amount,
            metadata_=metadata,
        )
        with translate_errors(self.db, "record usage"):
            self.db.add(event)
            self.db.commit()
            self.db.refresh(event)
        return event

    def get_active_subscription(self, user_id: str) -> Optional[CreditGrant]:
        with translate_errors(self.db, "load subscription"):
            return (
                self._active(user_id)
                .filter(CreditGrant.kind == KIND_SUBSCRIPTION)
                .order_by(CreditGrant.created_at.desc(), CreditGrant.id.desc())
                .first()
            )

    def get_latest_active(self, user_id: str) -> Optional[CreditGrant]:
        with translate_errors(self.db, "load credit grant"):
            return (
                self._active(user_id)
                .order_by(CreditGrant.created_at.desc(), CreditGrant.id.desc())
                .first()
            )

    def deactivate(self, user_id: str, product_id: Optional[str] = None) -> int:
        stmt = update(CreditGrant).where(
            CreditGrant.user_id == user_id,
            CreditGrant.is_active.is_(True),
        )
        if product_id:
            stmt = stmt.where(CreditGrant.product_id == product_id)
        stmt = stmt.values(is_active=False).execution_options(synchronize_session=False)

        with translate_errors(self.db, "deactivate credit grants"):
            result = self.db.execute(stmt)
            self.db.commit()
        return result.rowcount
