import datetime
import hashlib
import secrets
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import APIKeyHeader
from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import models
from .config import settings
from .database import get_db
from .exceptions import AuthenticationError, ForbiddenError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    return pwd_context.verify(password, hashed_password)


def generate_token() -> str:
    """Random URL-safe token for email verification and password reset links."""
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_access_token(user: models.User) -> str:
    expire = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(
        minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    payload = {"sub": str(user.id), "role": user.role.value, "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _decode_bearer(token: str | None) -> dict:
    if not token:
        raise AuthenticationError("Not authenticated")
    try:
        scheme, jwt_token = token.split()
        if scheme.lower() != "bearer":
            raise AuthenticationError()
        return jwt.decode(jwt_token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except (JWTError, ValueError, AttributeError):
        raise AuthenticationError()


async def get_key_by_user_id_or_ip(request: Request) -> str:
    """
    Tries to get the user ID from the JWT token.
    If it fails (no token, invalid token), it falls back to the client's IP.
    """
    try:
        payload = _decode_bearer(request.headers.get("Authorization"))
        user_id = payload.get("sub")
        if user_id:
            return str(user_id)
    except AuthenticationError:
        pass
    return request.client.host


async def get_current_user_id_from_token(
        token: Annotated[str | None, Depends(api_key_header)]
) -> int:
    """
    Decodes the JWT from the 'Authorization: Bearer ...' header to get the user ID.
    """
    payload = _decode_bearer(token)
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        raise AuthenticationError()


def get_current_user(
        user_id: Annotated[int, Depends(get_current_user_id_from_token)],
        db: Session = Depends(get_db),
) -> models.User:
    user = db.get(models.User, user_id)
    if user is None:
        raise AuthenticationError()
    return user


def get_current_vendor(user: Annotated[models.User, Depends(get_current_user)]) -> models.User:
    if user.role != models.UserRole.VENDOR:
        raise ForbiddenError("Only vendors can manage listings")
    return user
