import uuid
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, Request
from jose import JWTError, ExpiredSignatureError, jwt
from passlib.context import CryptContext
from sqlmodel import Session

from core.config import (
    AUTH_COOKIE_NAME,
    BCRYPT_ROUNDS,
    JWT_ALGORITHM,
    JWT_EXPIRE_MINUTES,
    JWT_SECRET,
)
from core.database import get_session
from core.errors import AuthenticationError, PermissionDeniedError
from models.user import User, UserRole
from services.access import Actor, is_staff
from utils.timeutils import utcnow

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(user_id: uuid.UUID, expires_minutes: int = JWT_EXPIRE_MINUTES) -> str:
    now = utcnow()
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> uuid.UUID:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise AuthenticationError("Token expired, please log in again")
    except JWTError:
        raise AuthenticationError("Invalid token, please log in again")

    try:
        return uuid.UUID(payload.get("sub", ""))
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid token, please log in again")


def extract_token(request: Request) -> Optional[str]:
    """Cookie first, then a ``Bearer`` authorization header."""
    token = request.cookies.get(AUTH_COOKIE_NAME)
    if token:
        return token

    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def get_current_user(request: Request, session: Session = Depends(get_session)) -> User:
    token = extract_token(request)
    if not token:
        raise AuthenticationError("Not authorized, no token provided")

    user = session.get(User, decode_access_token(token))
    if not user:
        raise AuthenticationError("User belonging to this token no longer exists")

    # stored preference wins unless the caller asked for a language explicitly
    if "lang" not in request.query_params:
        request.state.language = user.language.value
    return user


def actor_for(user: User) -> Actor:
    return Actor(
        id=user.id,
        role=user.role.value,
        permissions=frozenset(user.permissions or []),
    )


def require_role(*roles: UserRole):
    allowed = {role.value for role in roles}

    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role.value not in allowed:
            raise PermissionDeniedError(
                f"User role '{current_user.role.value}' is not authorized to access this route"
            )
        return current_user

    return dependency


def staff_required(current_user: User = Depends(get_current_user)) -> User:
    if not is_staff(current_user.role.value):
        raise PermissionDeniedError("Only committee members and technicians can access this route")
    return current_user


committee_required = require_role(UserRole.committee)
technician_required = require_role(UserRole.technician)
