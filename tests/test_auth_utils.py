# tests/test_auth_utils.py
import os
import sys
import uuid
from datetime import timedelta, datetime, timezone

# make project importable
ROOT_DIR = os.path.dirname(os.path.dirname(__file__))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

import pytest
from jose import jwt

from auth import (
    get_password_hash,
    verify_password,
    create_access_token,
    issue_session,
)
from models import User


def test_password_hash_and_verify_roundtrip():
    plain = "MySecureP@ssw0rd"

    hashed = get_password_hash(plain)

    assert hashed != plain  # definitely not storing plaintext
    assert verify_password(plain, hashed) is True


def test_verify_password_wrong_password():
    hashed = get_password_hash("correct-horse-battery-staple")

    assert verify_password("wrong-password", hashed) is False


def test_password_hash_rejects_huge_input():
    with pytest.raises(ValueError):
        get_password_hash("p" * 300)


def test_create_access_token_contains_user_id_and_exp(settings):
    user_id = uuid.uuid4()

    token = create_access_token(user_id, settings, expires_delta=timedelta(minutes=5))

    assert isinstance(token, str)
    decoded = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    assert decoded["userId"] == str(user_id)
    assert "iat" in decoded

    # exp should be in the future (within ~10 minutes)
    exp = datetime.fromtimestamp(decoded["exp"], tz=timezone.utc)
    now = datetime.now(timezone.utc)
    assert now < exp < now + timedelta(minutes=10)


def test_default_token_lifetime_is_24_hours(settings):
    token = create_access_token(uuid.uuid4(), settings)
    decoded = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    assert decoded["exp"] - decoded["iat"] == 24 * 3600


def test_issue_session_never_includes_password_hash(settings):
    user = User(
        id=uuid.uuid4(),
        name="Ann",
        email="ann@example.com",
        hashed_password="$argon2id$not-a-real-hash",
    )

    payload = issue_session(user, settings)

    assert set(payload) == {"token", "user"}
    assert set(payload["user"]) == {"id", "email", "name", "currency", "language", "theme"}
    assert payload["user"]["id"] == str(user.id)
