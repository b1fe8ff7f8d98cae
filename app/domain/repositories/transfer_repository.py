"""
Transfer Repository Interface.
"""

from typing import Dict, Optional, Protocol

from app.domain.models.transfer_record import TransferRecord


class TransferRepository(Protocol):

    def start(self, from_user_id: str, to_user_id: str, reason: str) -> TransferRecord:
        ...

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
        ...

    def count_owned(self, user_id: str) -> Dict[str, int]:
        """Grants, usage events and faxes owned by the user."""
        ...

    def reassign_all(self, from_user_id: str, to_user_id: str) -> Dict[str, int]:
        """Move every grant, usage event and fax in a single transaction."""
        ...
