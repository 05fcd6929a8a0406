"""The fixed sample ledger given to new or reset accounts."""
import uuid
import datetime as dt

from models import Transaction

# One income and eight expenses, all in March 2024.
SAMPLE_TRANSACTIONS = (
    {"type": "income", "amount": 5000, "category": "salary",
     "description": "Monthly Salary", "date": dt.date(2024, 3, 1), "payment_method": "bank"},
    {"type": "expense", "amount": 1200, "category": "housing",
     "description": "Rent Payment", "date": dt.date(2024, 3, 10), "payment_method": "bank"},
    {"type": "expense", "amount": 300, "category": "utilities",
     "description": "Electricity Bill", "date": dt.date(2024, 3, 12), "payment_method": "card"},
    {"type": "expense", "amount": 200, "category": "food",
     "description": "Restaurant", "date": dt.date(2024, 3, 14), "payment_method": "card"},
    {"type": "expense", "amount": 100, "category": "transport",
     "description": "Train Ticket", "date": dt.date(2024, 3, 13), "payment_method": "card"},
    {"type": "expense", "amount": 400, "category": "shopping",
     "description": "Clothing & Electronics", "date": dt.date(2024, 3, 16), "payment_method": "card"},
    {"type": "expense", "amount": 350, "category": "entertainment",
     "description": "Movies & Dining", "date": dt.date(2024, 3, 17), "payment_method": "card"},
    {"type": "expense", "amount": 300, "category": "healthcare",
     "description": "Medical Checkup", "date": dt.date(2024, 3, 18), "payment_method": "card"},
    {"type": "expense", "amount": 150, "category": "food",
     "description": "Grocery Shopping", "date": dt.date(2024, 3, 15), "payment_method": "card"},
)


def build_sample_transactions(user_id: uuid.UUID) -> list[Transaction]:
    """Fresh Transaction rows for the sample set, owned by user_id."""
    return [
        Transaction(user_id=user_id, **{**row, "amount": float(row["amount"])})
        for row in SAMPLE_TRANSACTIONS
    ]
