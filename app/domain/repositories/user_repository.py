"""
User Directory Interface: the identity capability used by account transfers.
"""

from typing import Optional, Protocol

from app.domain.models.user import User


class UserRepository(Protocol):

    def get_user(self, user_id: str) -> Optional[User]:
        ...

    def ensure_user(self, user_id: str, is_anonymous: bool = False, email: Optional[str] = None) -> User:
        ...

    def delete_user(self, user_id: str) -> bool:
        ...
