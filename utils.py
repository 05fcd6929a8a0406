"""Utility functions for dashboard aggregation, money rounding, dates and ids."""
import uuid
import datetime as dt
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Optional


@dataclass(frozen=True)
class Summary:
    """Totals for one principal's ledger. Values are unrounded Decimals."""
    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    category_totals: dict[str, Decimal] = field(default_factory=dict)

    @property
    def balance(self) -> Decimal:
        return self.total_income - self.total_expenses

    def as_floats(self) -> dict[str, Any]:
        """JSON-friendly view (floats, no rounding)."""
        return {
            "total_income": float(self.total_income),
            "total_expenses": float(self.total_expenses),
            "balance": float(self.balance),
            "category_totals": {k: float(v) for k, v in self.category_totals.items()},
        }


def round_money(dec: Any) -> float:
    """Round to 2 decimal places with HALF_UP (normal money rounding). Display only."""
    return float(Decimal(str(dec)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _field(t: Any, name: str) -> Any:
    # support both Transaction objects and plain dicts (seed rows)
    if isinstance(t, dict):
        return t.get(name)
    return getattr(t, name, None)


def aggregate(transactions: Iterable[Any]) -> Summary:
    """
    Single pass over a principal's transactions.

    Income adds to total_income; expenses add to total_expenses and to the
    per-category breakdown. Anything else is ignored.
    """
    income = Decimal("0")
    expenses = Decimal("0")
    categories: dict[str, Decimal] = {}

    for t in transactions:
        t_type = _field(t, "type")
        t_amount = _field(t, "amount")
        if t_amount is None:
            continue

        amount = Decimal(str(t_amount))
        if t_type == "income":
            income += amount
        elif t_type == "expense":
            expenses += amount
            category = _field(t, "category")
            categories[category] = categories.get(category, Decimal("0")) + amount

    return Summary(total_income=income, total_expenses=expenses, category_totals=categories)


def normalize_iso_date(value: Any) -> dt.date:
    """Normalize a value to a date or raise a ValueError."""
    if isinstance(value, dt.datetime):
        return value.date()

    if isinstance(value, dt.date):
        return value

    if isinstance(value, str):
        text = value.strip()
        try:
            return dt.date.fromisoformat(text)
        except ValueError:
            pass
        # the client sometimes sends full ISO timestamps ("2024-03-20T00:00:00.000Z")
        try:
            return dt.datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            raise ValueError("Invalid date format. Expected YYYY-MM-DD.")

    raise ValueError("Invalid date format. Expected YYYY-MM-DD.")


def parse_object_id(value: str) -> Optional[uuid.UUID]:
    """Return the UUID for a record id string, or None if it is malformed."""
    if not isinstance(value, str):
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        return None
