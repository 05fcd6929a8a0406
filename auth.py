"""Password hashing, bearer token issuance and the request auth guard."""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Union

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from config import Settings
from crud import Failure, Result
from logger import get_logger
from models import User

logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 6
RESET_TOKEN_TTL = timedelta(hours=1)

#  Use Argon2id (modern, memory-hard)
pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
    # Argon2id settings
    argon2__type="ID",
    argon2__memory_cost=65536,  # 64 MB
    argon2__time_cost=3,
    argon2__parallelism=1,
)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    # Optional: enforce a max length to avoid pathological huge input
    if len(password) > 256:
        raise ValueError("Password too long")
    return pwd_context.hash(password)


def create_access_token(
    user_id: Union[uuid.UUID, str],
    settings: Settings,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Sign {userId, iat, exp} with the configured secret."""
    if expires_delta is None:
        expires_delta = timedelta(hours=settings.jwt_expire_hours)

    issued_at = datetime.now(timezone.utc)
    to_encode: Dict[str, Any] = {
        "userId": str(user_id),
        "iat": issued_at,
        "exp": issued_at + expires_delta,
    }
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def sanitize_user(user: User) -> Dict[str, Any]:
    """The user projection sent alongside a fresh token (no password hash)."""
    return {
        "id": str(user.id),
        "email": user.email,
        "name": user.name,
        "currency": user.currency,
        "language": user.language,
        "theme": user.theme,
    }


def issue_session(user: User, settings: Settings) -> Dict[str, Any]:
    """Response payload for a successful register/login."""
    return {"token": create_access_token(user.id, settings), "user": sanitize_user(user)}


# AUTH GUARD

@dataclass(frozen=True)
class Principal:
    """The authenticated user attached to a request."""
    id: uuid.UUID
    email: str


@dataclass(frozen=True)
class AuthFailure:
    status_code: int
    message: str


def _bearer_token(authorization: str) -> Optional[str]:
    parts = authorization.split(" ")
    if len(parts) < 2 or not parts[1]:
        return None
    return parts[1]


def authenticate(
    authorization: Optional[str],
    settings: Settings,
    lookup_user: Callable[[uuid.UUID], Result],
) -> Union[Principal, AuthFailure]:
    """
    Resolve the principal for an Authorization header value.

    lookup_user returns Ok(User | None) or a Failure when storage is unreachable.
    No exception escapes: every outcome is a Principal or an AuthFailure.
    """
    if not authorization:
        return AuthFailure(401, "No authorization token")

    token = _bearer_token(authorization)
    if token is None:
        return AuthFailure(401, "No token found")

    if not settings.jwt_secret:
        logger.error("jwt_secret_missing")
        return AuthFailure(500, "Server configuration error")

    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        return AuthFailure(401, "Token expired")
    except JWTError as exc:
        logger.info("token_rejected", reason=str(exc))
        return AuthFailure(401, "Invalid token")

    raw_id = payload.get("userId")
    try:
        user_id = uuid.UUID(str(raw_id)) if raw_id else None
    except ValueError:
        user_id = None
    if user_id is None:
        return AuthFailure(401, "Invalid token format")

    result = lookup_user(user_id)
    if isinstance(result, Failure):
        return AuthFailure(500, "Error finding user")

    user = result.value
    if user is None:
        logger.info("token_user_missing", user_id=str(user_id))
        return AuthFailure(404, "User not found")

    return Principal(id=user.id, email=user.email)
