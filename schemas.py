"""Pydantic schemas for API payloads and validation."""
import re
import uuid
import datetime as dt
from typing import Literal, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from auth import MIN_PASSWORD_LENGTH
from models import DEFAULT_DESCRIPTION, DEFAULT_PAYMENT_METHOD, PaymentMethod, TransactionType
from utils import normalize_iso_date

CATEGORY_MAX_LEN = 50
DESCRIPTION_MAX_LEN = 300
PASSWORD_TOO_SHORT = f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input; serialized as camelCase."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _required_text(v, message: str = "Missing required fields"):
    if isinstance(v, str):
        v = v.strip()
    if not v:
        raise ValueError(message)
    return v


# Transaction schemas

class TransactionIn(CamelModel):
    """Payload for creating or replacing a transaction."""
    type: TransactionType
    amount: float = Field(ge=0, allow_inf_nan=False)
    category: str = Field(max_length=CATEGORY_MAX_LEN)
    date: dt.date
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LEN)
    payment_method: PaymentMethod = DEFAULT_PAYMENT_METHOD

    @field_validator("category", mode="before")
    @classmethod
    def strip_category(cls, v):
        return _required_text(v)

    @field_validator("description", mode="before")
    @classmethod
    def blank_description_is_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
        return v or None

    @field_validator("payment_method", mode="before")
    @classmethod
    def default_payment_method(cls, v):
        return v or DEFAULT_PAYMENT_METHOD

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, v):
        if v is None or v == "":
            raise ValueError("Missing required fields")
        return normalize_iso_date(v)

    def to_record(self) -> dict:
        """Column values with defaults applied."""
        return {
            "type": self.type,
            "amount": float(self.amount),
            "category": self.category,
            "date": self.date,
            "description": self.description or DEFAULT_DESCRIPTION,
            "payment_method": self.payment_method,
        }


class TransactionRead(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    type: str
    amount: float
    category: str
    description: str
    date: dt.date
    payment_method: str
    created_at: dt.datetime
    updated_at: dt.datetime


class TransactionDeleted(CamelModel):
    message: str
    deleted_id: uuid.UUID
    transactions: list[TransactionRead]


class TransactionsPurged(CamelModel):
    message: str
    deleted_count: int


class SampleSeeded(CamelModel):
    message: str
    transactions: list[TransactionRead]


class Totals(BaseModel):
    income: float
    expenses: float
    balance: float


class SampleReset(SampleSeeded):
    totals: Totals


class Dashboard(BaseModel):
    """Aggregated view; keys stay snake_case as the web client reads them."""
    total_income: float
    total_expenses: float
    balance: float
    category_totals: dict[str, float]
    currency: str
    recent_transactions: list[TransactionRead]


# User & Auth schemas

class RegisterRequest(BaseModel):
    """Payload for creating a user."""
    name: str
    email: EmailStr
    password: str

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return _required_text(v, "All fields are required")

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        v = _required_text(v, "All fields are required")
        if not isinstance(v, str):
            raise ValueError("Invalid email format")
        try:
            validate_email(v, check_deliverability=False)
        except EmailNotValidError:
            raise ValueError("Invalid email format")
        return v.lower()

    @field_validator("password", mode="before")
    @classmethod
    def check_password(cls, v):
        if not v:
            raise ValueError("All fields are required")
        if isinstance(v, str) and len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(PASSWORD_TOO_SHORT)
        return v


class LoginRequest(BaseModel):
    """Payload for logging in."""
    email: str
    password: str

    @field_validator("email", "password", mode="before")
    @classmethod
    def not_blank(cls, v):
        if not v:
            raise ValueError("Email and password are required")
        return v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.strip().lower()


class SessionUser(BaseModel):
    id: str
    email: str
    name: str
    currency: str
    language: str
    theme: str


class AuthResponse(BaseModel):
    """Token response model."""
    token: str
    user: SessionUser


class UserRead(CamelModel):
    """Sanitized profile. Never includes the password hash or reset token."""
    id: uuid.UUID
    name: str
    username: Optional[str] = None
    email: str
    currency: str
    language: str
    theme: str
    created_at: dt.datetime


class ProfileUpdate(CamelModel):
    """Partial profile update. Blank values are ignored."""
    name: Optional[str] = Field(default=None, max_length=100)
    username: Optional[str] = Field(default=None, max_length=50)
    currency: Optional[str] = None
    language: Optional[str] = Field(default=None, max_length=10)
    theme: Optional[Literal["light", "dark"]] = None

    @field_validator("name", "username", "language", mode="before")
    @classmethod
    def strip_text(cls, v):
        if isinstance(v, str):
            v = v.strip()
        return v or None

    @field_validator("currency", mode="before")
    @classmethod
    def currency_code(cls, v):
        if not v:
            return None
        v = str(v).strip().upper()
        if not re.fullmatch(r"[A-Z]{3}", v):
            raise ValueError("Currency must be a 3-letter ISO code")
        return v

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class PasswordChange(CamelModel):
    """Payload to change password."""
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def check_length(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(PASSWORD_TOO_SHORT)
        return v


class ForgotPasswordRequest(BaseModel):
    email: str

    @field_validator("email", mode="before")
    @classmethod
    def lower_email(cls, v):
        v = _required_text(v, "Email is required")
        if not isinstance(v, str):
            raise ValueError("Invalid email format")
        return v.lower()


class ResetPasswordRequest(BaseModel):
    token: str
    password: str

    @field_validator("password", mode="before")
    @classmethod
    def check_password(cls, v):
        if isinstance(v, str) and len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(PASSWORD_TOO_SHORT)
        return v


class Message(BaseModel):
    message: str


class ExchangeRates(BaseModel):
    base: str
    rates: dict[str, float]
    source: Literal["live", "fallback"]
