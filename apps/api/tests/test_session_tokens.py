from datetime import UTC, datetime, timedelta

import jwt
import pytest

from waghl.core.passwords import generate_password, hash_password, verify_password
from waghl.core.settings import get_settings
from waghl.core.tokens import InvalidSessionTokenError, extract_bearer_token, issue_token, verify_token


def test_customer_token_round_trip_carries_identity() -> None:
    token = issue_token("cust-1", token_type="customer", email="owner@example.com")
    verified = verify_token(token, token_type="customer")

    assert verified.subject == "cust-1"
    assert verified.email == "owner@example.com"
    assert verified.claims["iss"] == "whatsapp-ghl-saas"
    assert verified.claims["exp"] - verified.claims["iat"] == 7 * 24 * 3600


def test_customer_token_is_not_an_admin_token() -> None:
    token = issue_token("cust-1", token_type="customer")
    with pytest.raises(InvalidSessionTokenError):
        verify_token(token, token_type="admin")


def test_expired_token_is_rejected() -> None:
    issued = datetime.now(UTC) - timedelta(days=2)
    token = issue_token("cust-1", token_type="customer", now=issued, expires_in=timedelta(hours=1))
    with pytest.raises(InvalidSessionTokenError):
        verify_token(token, token_type="customer")


def test_token_signed_with_other_secret_is_rejected() -> None:
    settings = get_settings()
    forged = jwt.encode(
        {"sub": "cust-1", "type": "customer", "iss": settings.JWT_ISSUER, "aud": "customer", "exp": 4102444800},
        "some-other-secret-of-sufficient-length",
        algorithm="HS256",
    )
    with pytest.raises(InvalidSessionTokenError):
        verify_token(forged, token_type="customer")


def test_admin_token_carries_extra_claims() -> None:
    token = issue_token("admin-1", token_type="admin", extra_claims={"isAdmin": True, "role": "superadmin"})
    verified = verify_token(token, token_type="admin")
    assert verified.claims["isAdmin"] is True
    assert verified.role == "superadmin"


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ("Bearer abc.def.ghi", "abc.def.ghi"),
        ("bearer  token ", "token"),
        ("Basic abc", None),
        ("Bearer ", None),
        (None, None),
    ],
)
def test_extract_bearer_token(header, expected) -> None:
    assert extract_bearer_token(header) == expected


def test_password_hash_verifies() -> None:
    hashed = hash_password("correct horse")
    assert verify_password("correct horse", hashed) is True
    assert verify_password("wrong", hashed) is False
    assert verify_password("anything", None) is False
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_generated_passwords_mix_character_groups() -> None:
    password = generate_password()

    assert len(password) == 12
    assert any(char.islower() for char in password)
    assert any(char.isupper() for char in password)
    assert any(char.isdigit() for char in password)
    assert any(char in "!@#$%^&*" for char in password)
    assert generate_password() != password
