"""
Fax Repository Interface.
"""

from datetime import datetime
from typing import List, Optional, Protocol, Tuple

from app.domain.models.fax_record import FaxRecord
from app.domain.repositories.base import BaseRepository
from app.domain.schemas.fax import FaxFilter


class FaxRepository(BaseRepository[FaxRecord], Protocol):
    """Interface for FaxRecord-specific operations."""

    def get_by_external_id(self, provider_fax_id: str) -> Optional[FaxRecord]:
        ...

    def get_for_user(self, fax_id: int, user_id: str) -> Optional[FaxRecord]:
        ...

    def list_for_user(self, user_id: str, filters: FaxFilter) -> Tuple[List[FaxRecord], int]:
        """Newest first; returns (page of items, total matching)."""
        ...

    def mark_completed(self, fax_id: int, completed_at: datetime) -> bool:
        """Set completed_at only if it was never set. Returns True when this call set it."""
        ...

    def list_unsettled(self, since: datetime, limit: int = 200) -> List[FaxRecord]:
        """Records created after `since` whose status is not terminal."""
        ...
