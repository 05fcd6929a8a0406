import uuid
import datetime as dt
from datetime import datetime, timezone
from typing import Literal, Optional

from sqlmodel import SQLModel, Field

TransactionType = Literal["income", "expense"]
PaymentMethod = Literal["cash", "card", "upi", "bank"]
DEFAULT_DESCRIPTION = "No description"
DEFAULT_PAYMENT_METHOD = "cash"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# These classes describe what data will be stored in the database.
# Each class = one table.
class User(SQLModel, table=True):
    """Credential store record.
    - 'email' is unique and always stored lower-cased
    - 'username' is optional but unique when present
    - 'reset_password_token' is only set while a reset is pending
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str
    username: Optional[str] = Field(default=None, index=True, unique=True)
    email: str = Field(index=True, unique=True)
    hashed_password: str
    currency: str = Field(default="USD", max_length=3)
    language: str = Field(default="en")
    theme: str = Field(default="light")
    reset_password_token: Optional[str] = Field(default=None, index=True)
    reset_password_expires: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


class Transaction(SQLModel, table=True):
    """Ledger entry. Records both income and expenses.
    - 'type' = either 'income' or 'expense'
    - 'user_id' = the only user allowed to see or change it
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", index=True)
    type: str = Field(index=True)
    amount: float = Field(ge=0)
    category: str
    description: str = Field(default=DEFAULT_DESCRIPTION)
    date: dt.date
    payment_method: str = Field(default=DEFAULT_PAYMENT_METHOD)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
