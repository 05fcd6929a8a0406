import uuid

import pytest

from models import Transaction


# ---------- helpers ----------
@pytest.fixture
def alice(auth_helpers):
    """Headers for a freshly registered user (ledger holds the sample set)."""
    token = auth_helpers["get_token"]("alice@example.com", "secret1")
    return auth_helpers["auth_headers"](token)


@pytest.fixture
def bob(auth_helpers):
    token = auth_helpers["get_token"]("bob@example.com", "secret2")
    return auth_helpers["auth_headers"](token)


def create_tx(client, headers, **overrides):
    payload = {"type": "expense", "amount": 50, "category": "food", "date": "2024-03-20"}
    payload.update(overrides)
    res = client.post("/api/expenses", json=payload, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()


# ---------- create ----------
def test_create_expense_defaults(client, alice):
    res = client.post(
        "/api/expenses",
        json={"type": "expense", "amount": 50, "category": "food", "date": "2024-03-20"},
        headers=alice,
    )
    assert res.status_code == 201

    data = res.json()
    assert data["amount"] == 50.0
    assert data["description"] == "No description"
    assert data["paymentMethod"] == "cash"
    assert data["type"] == "expense"
    assert data["date"] == "2024-03-20"
    assert data["id"]
    assert data["userId"]


def test_create_coerces_amount_string(client, alice):
    data = create_tx(client, alice, amount="12.75")
    assert data["amount"] == 12.75


def test_create_then_list_round_trip(client, alice):
    created = create_tx(
        client,
        alice,
        type="income",
        amount=321.5,
        category="freelance",
        date="2024-04-02",
        description="Logo design",
        paymentMethod="upi",
    )

    listed = client.get("/api/expenses", headers=alice).json()
    match = next(t for t in listed if t["id"] == created["id"])
    for key in ("type", "amount", "category", "date", "description", "paymentMethod"):
        assert match[key] == created[key]
    assert match["description"] == "Logo design"
    assert match["paymentMethod"] == "upi"


@pytest.mark.parametrize("missing", ["type", "amount", "category", "date"])
def test_create_missing_required_field(client, alice, missing):
    payload = {"type": "expense", "amount": 10, "category": "food", "date": "2024-03-20"}
    payload.pop(missing)

    res = client.post("/api/expenses", json=payload, headers=alice)
    assert res.status_code == 400
    assert res.json()["message"] == "Missing required fields"


def test_create_rejects_negative_amount(client, alice):
    res = client.post(
        "/api/expenses",
        json={"type": "expense", "amount": -10, "category": "food", "date": "2024-03-20"},
        headers=alice,
    )
    assert res.status_code == 400


@pytest.mark.parametrize("amount", ["Infinity", "NaN", "inf"])
def test_create_rejects_non_finite_amount(client, alice, amount):
    res = client.post(
        "/api/expenses",
        json={"type": "expense", "amount": amount, "category": "food", "date": "2024-03-20"},
        headers=alice,
    )
    assert res.status_code == 400

    dashboard = client.get("/api/expenses/dashboard", headers=alice).json()
    assert dashboard["total_expenses"] is not None
    assert dashboard["balance"] == dashboard["total_income"] - dashboard["total_expenses"]


def test_create_rejects_unknown_payment_method(client, alice):
    res = client.post(
        "/api/expenses",
        json={
            "type": "expense",
            "amount": 10,
            "category": "food",
            "date": "2024-03-20",
            "paymentMethod": "cheque",
        },
        headers=alice,
    )
    assert res.status_code == 400


def test_create_requires_auth(client):
    res = client.post(
        "/api/expenses",
        json={"type": "expense", "amount": 10, "category": "food", "date": "2024-03-20"},
    )
    assert res.status_code == 401


# ---------- list ----------
def test_list_is_sorted_by_date_desc_and_scoped(client, alice, bob):
    client.delete("/api/expenses/delete-all", headers=alice)
    create_tx(client, alice, date="2024-01-01")
    create_tx(client, alice, date="2024-06-01")
    create_tx(client, alice, date="2024-03-01")
    create_tx(client, bob, date="2030-01-01")

    listed = client.get("/api/expenses", headers=alice).json()
    dates = [t["date"] for t in listed]
    assert dates == ["2024-06-01", "2024-03-01", "2024-01-01"]


# ---------- update ----------
def test_update_transaction(client, alice):
    created = create_tx(client, alice)

    res = client.put(
        f"/api/expenses/{created['id']}",
        json={
            "type": "expense",
            "amount": 75.25,
            "category": "transport",
            "date": "2024-03-21",
            "paymentMethod": "card",
        },
        headers=alice,
    )
    assert res.status_code == 200
    data = res.json()
    assert data["id"] == created["id"]
    assert data["amount"] == 75.25
    assert data["category"] == "transport"
    assert data["paymentMethod"] == "card"
    assert data["description"] == "No description"


def test_update_requires_all_fields(client, alice):
    created = create_tx(client, alice)
    res = client.put(f"/api/expenses/{created['id']}", json={"amount": 10}, headers=alice)
    assert res.status_code == 400
    assert res.json()["message"] == "Missing required fields"


def test_update_malformed_id(client, alice):
    res = client.put(
        "/api/expenses/not-an-id",
        json={"type": "expense", "amount": 1, "category": "x", "date": "2024-01-01"},
        headers=alice,
    )
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid transaction ID format"


def test_update_unknown_id(client, alice):
    res = client.put(
        f"/api/expenses/{uuid.uuid4()}",
        json={"type": "expense", "amount": 1, "category": "x", "date": "2024-01-01"},
        headers=alice,
    )
    assert res.status_code == 404
    assert res.json()["message"] == "Transaction not found or unauthorized"


def test_update_other_users_transaction_is_not_found(client, alice, bob, db_session):
    bobs = create_tx(client, bob, amount=99, category="secret")

    res = client.put(
        f"/api/expenses/{bobs['id']}",
        json={"type": "income", "amount": 1, "category": "stolen", "date": "2024-01-01"},
        headers=alice,
    )
    assert res.status_code == 404
    assert res.json()["message"] == "Transaction not found or unauthorized"

    row = db_session.get(Transaction, uuid.UUID(bobs["id"]))
    assert row.amount == 99
    assert row.category == "secret"


# ---------- delete ----------
def test_delete_transaction_returns_remaining(client, alice):
    client.delete("/api/expenses/delete-all", headers=alice)
    keep = create_tx(client, alice, category="keep")
    drop = create_tx(client, alice, category="drop")

    res = client.delete(f"/api/expenses/{drop['id']}", headers=alice)
    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "Transaction deleted successfully"
    assert body["deletedId"] == drop["id"]
    assert [t["id"] for t in body["transactions"]] == [keep["id"]]


def test_delete_other_users_transaction_is_not_found(client, alice, bob, db_session):
    bobs = create_tx(client, bob)

    res = client.delete(f"/api/expenses/{bobs['id']}", headers=alice)
    assert res.status_code == 404

    assert db_session.get(Transaction, uuid.UUID(bobs["id"])) is not None


def test_delete_malformed_id(client, alice):
    res = client.delete("/api/expenses/12345", headers=alice)
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid transaction ID format"


def test_delete_all_only_touches_own_rows(client, alice, bob):
    res = client.delete("/api/expenses/delete-all", headers=alice)
    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "All transactions deleted successfully"
    # registration seeded nine rows
    assert body["deletedCount"] == 9

    assert client.get("/api/expenses", headers=alice).json() == []
    assert len(client.get("/api/expenses", headers=bob).json()) == 9

    res_again = client.delete("/api/expenses/delete-all", headers=alice)
    assert res_again.json()["deletedCount"] == 0
