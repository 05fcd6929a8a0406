"""Credential store and ledger access.

Every function returns an explicit result instead of raising: ``Ok(value)``
on success or ``Failure(kind, cause)`` where kind is one of ``not_found``,
``conflict`` or ``storage``. Storage exceptions are caught here and the
session is rolled back; the route layer decides the HTTP status.
"""
import uuid
import datetime as dt
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from logger import get_logger
from models import Transaction, User, utcnow
from seed import build_sample_transactions

logger = get_logger(__name__)

T = TypeVar("T")

NOT_FOUND = "not_found"
CONFLICT = "conflict"
STORAGE = "storage"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Failure:
    kind: str
    cause: Optional[Exception] = None


Result = Union[Ok[Any], Failure]


def _run(session: Session, action: str, fn: Callable[[], T]) -> Result:
    """Run fn, translating storage exceptions into a Failure."""
    try:
        return Ok(fn())
    except IntegrityError as exc:
        session.rollback()
        logger.warning("storage_conflict", action=action, error=str(exc.orig))
        return Failure(CONFLICT, exc)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("storage_error", action=action, error=str(exc), exc_info=True)
        return Failure(STORAGE, exc)


def save_and_refresh(session: Session, instance):
    """Persist and refresh an instance in the current session."""
    session.add(instance)
    session.commit()
    session.refresh(instance)
    return instance


def _as_aware(value: datetime) -> datetime:
    # SQLite hands datetimes back without tzinfo
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


# CREDENTIAL STORE

def get_user(session: Session, user_id: uuid.UUID) -> Result:
    """Ok(User) or Ok(None) when the id is unknown."""
    return _run(session, "get_user", lambda: session.get(User, user_id))


def get_user_by_email(session: Session, email: str) -> Result:
    normalized = email.strip().lower()
    stmt = select(User).where(User.email == normalized)
    return _run(session, "get_user_by_email", lambda: session.exec(stmt).first())


def get_user_by_username(session: Session, username: str) -> Result:
    stmt = select(User).where(User.username == username)
    return _run(session, "get_user_by_username", lambda: session.exec(stmt).first())


def create_user(session: Session, name: str, email: str, hashed_password: str) -> Result:
    """Insert a new user; Failure(conflict) if the email is taken."""
    existing = get_user_by_email(session, email)
    if isinstance(existing, Failure):
        return existing
    if existing.value is not None:
        return Failure(CONFLICT)

    user = User(name=name.strip(), email=email.strip().lower(), hashed_password=hashed_password)
    return _run(session, "create_user", lambda: save_and_refresh(session, user))


def update_user(session: Session, user: User, changes: dict[str, Any]) -> Result:
    """Apply field changes to a user; Failure(conflict) on a taken username."""
    username = changes.get("username")
    if username and username != user.username:
        taken = get_user_by_username(session, username)
        if isinstance(taken, Failure):
            return taken
        if taken.value is not None:
            return Failure(CONFLICT)

    for field, value in changes.items():
        setattr(user, field, value)
    return _run(session, "update_user", lambda: save_and_refresh(session, user))


def set_reset_token(session: Session, user: User, token: str, ttl: dt.timedelta) -> Result:
    user.reset_password_token = token
    user.reset_password_expires = utcnow() + ttl
    return _run(session, "set_reset_token", lambda: save_and_refresh(session, user))


def get_user_by_reset_token(session: Session, token: str) -> Result:
    """Ok(User) only while the token matches and has not expired; Ok(None) otherwise."""
    stmt = select(User).where(User.reset_password_token == token)

    def find() -> Optional[User]:
        user = session.exec(stmt).first()
        if user is None or user.reset_password_expires is None:
            return None
        if _as_aware(user.reset_password_expires) <= utcnow():
            return None
        return user

    return _run(session, "get_user_by_reset_token", find)


def consume_reset_token(session: Session, user: User, hashed_password: str) -> Result:
    user.hashed_password = hashed_password
    user.reset_password_token = None
    user.reset_password_expires = None
    return _run(session, "consume_reset_token", lambda: save_and_refresh(session, user))


# LEDGER

def list_transactions(session: Session, user_id: uuid.UUID) -> Result:
    """All of a user's transactions, newest first."""
    stmt = (
        select(Transaction)
        .where(Transaction.user_id == user_id)
        .order_by(Transaction.date.desc(), Transaction.created_at.desc())
    )
    return _run(session, "list_transactions", lambda: list(session.exec(stmt).all()))


def get_owned_transaction(session: Session, tx_id: uuid.UUID, user_id: uuid.UUID) -> Result:
    """Ok(Transaction) or Failure(not_found); a foreign record counts as missing."""
    stmt = select(Transaction).where(Transaction.id == tx_id, Transaction.user_id == user_id)
    result = _run(session, "get_owned_transaction", lambda: session.exec(stmt).first())
    if isinstance(result, Ok) and result.value is None:
        return Failure(NOT_FOUND)
    return result


def create_transaction(session: Session, user_id: uuid.UUID, data: dict[str, Any]) -> Result:
    row = Transaction(user_id=user_id, **data)
    return _run(session, "create_transaction", lambda: save_and_refresh(session, row))


def update_transaction(session: Session, transaction: Transaction, data: dict[str, Any]) -> Result:
    for field, value in data.items():
        setattr(transaction, field, value)
    transaction.updated_at = utcnow()
    return _run(session, "update_transaction", lambda: save_and_refresh(session, transaction))


def delete_transaction(session: Session, transaction: Transaction) -> Result:
    def delete() -> uuid.UUID:
        session.delete(transaction)
        session.commit()
        return transaction.id

    return _run(session, "delete_transaction", delete)


def _purge(session: Session, user_id: uuid.UUID) -> int:
    rows = session.exec(select(Transaction).where(Transaction.user_id == user_id)).all()
    for row in rows:
        session.delete(row)
    return len(rows)


def delete_all_transactions(session: Session, user_id: uuid.UUID) -> Result:
    """Ok(number of deleted rows)."""
    def delete_all() -> int:
        count = _purge(session, user_id)
        session.commit()
        return count

    return _run(session, "delete_all_transactions", delete_all)


def reseed_transactions(session: Session, user_id: uuid.UUID) -> Result:
    """Replace a user's ledger with the sample set. Ok(list of new rows).

    Delete and insert are not isolated from concurrent requests by the same user.
    """
    def reseed() -> list[Transaction]:
        _purge(session, user_id)
        rows = build_sample_transactions(user_id)
        session.add_all(rows)
        session.commit()
        for row in rows:
            session.refresh(row)
        return rows

    result = _run(session, "reseed_transactions", reseed)
    if isinstance(result, Ok):
        logger.info("sample_transactions_seeded", user_id=str(user_id), count=len(result.value))
    return result
