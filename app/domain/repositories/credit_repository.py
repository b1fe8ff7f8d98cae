"""
Credit Repository Interface.
Grants and the usage ledger. Deductions are conditional so a stale read can
never overdraw a grant.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from app.domain.models.credit_grant import CreditGrant
from app.domain.models.usage_event import UsageEvent
from app.domain.repositories.base import BaseRepository


class CreditRepository(BaseRepository[CreditGrant], Protocol):
    """Interface for CreditGrant and UsageEvent operations."""

    def list_eligible(self, user_id: str, now: datetime) -> List[CreditGrant]:
        """Active, non-expired grants: subscriptions first, newest first."""
        ...

    def try_deduct(self, grant_id: int, pages: int) -> bool:
        """Add `pages` to pages_used only if the result stays within page_limit."""
        ...

    def release(self, grant_id: int, pages: int) -> bool:
        """Give back previously deducted pages (never below zero)."""
        ...

    def add_usage_event(self, user_id: str, amount: int, metadata: Dict[str, Any]) -> UsageEvent:
        ...

    def get_active_subscription(self, user_id: str) -> Optional[CreditGrant]:
        ...

    def get_latest_active(self, user_id: str) -> Optional[CreditGrant]:
        ...

    def deactivate(self, user_id: str, product_id: Optional[str] = None) -> int:
        """Flip is_active off on the user's active grants, optionally for one product."""
        ...
