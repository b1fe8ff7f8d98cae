"""
SQLAlchemy Implementation of the User Directory.
"""

from typing import Optional

from app.domain.models.user import User
from app.domain.repositories.user_repository import UserRepository
from app.infrastructure.repositories.base_repository import translate_errors


class SQLAlchemyUserRepository(UserRepository):

    def __init__(self, db):
        self.db = db

    def get_user(self, user_id: str) -> Optional[User]:
        with translate_errors(self.db, "load user"):
            return self.db.get(User, user_id)

    def ensure_user(self, user_id: str, is_anonymous: bool = False, email: Optional[str] = None) -> User:
        user = self.get_user(user_id)
        if user is not None:
            return user
        user = User(id=user_id, is_anonymous=is_anonymous, email=email)
        with translate_errors(self.db, "create user"):
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)
        return user

    def delete_user(self, user_id: str) -> bool:
        user = self.get_user(user_id)
        if user is None:
            return False
        with translate_errors(self.db, "delete user"):
            self.db.delete(user)
            self.db.commit()
        return True
