"""FastAPI dependency — bearer token to Principal.

Tokens are issued by the identity provider; this service only verifies them.
"""

from typing import Any, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from app.config import Settings, get_settings
from app.core.exceptions import UnauthorizedError
from app.domain.repositories.user_repository import UserRepository
from app.interfaces.deps import get_user_repository

security = HTTPBearer(auto_error=False)


class Principal(BaseModel):
    user_id: str
    is_anonymous: bool = False
    email: Optional[str] = None
    claims: dict[str, Any] = {}


def decode_token(token: str, settings: Settings) -> Principal:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise UnauthorizedError("Invalid or expired token") from e

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Token has no subject")

    return Principal(
        user_id=str(user_id),
        is_anonymous=bool(payload.get("is_anonymous", False)),
        email=payload.get("email"),
        claims=payload,
    )


def get_optional_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
    users: UserRepository = Depends(get_user_repository),
) -> Optional[Principal]:
    """Principal when a bearer token is present, None otherwise."""
    if credentials is None:
        return None

    principal = decode_token(credentials.credentials, settings)
    users.ensure_user(principal.user_id, is_anonymous=principal.is_anonymous, email=principal.email)
    return principal


def get_current_principal(principal: Optional[Principal] = Depends(get_optional_principal)) -> Principal:
    if principal is None:
        raise UnauthorizedError("Missing bearer token")
    return principal
