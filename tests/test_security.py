from datetime import datetime, timedelta, timezone

import jwt
import pytest

from dashboard_app.errors import ForbiddenError
from dashboard_app.services.security import TokenIssuer, hash_password, verify_password


def test_password_hash_is_salted_and_verifies():
    first = hash_password("hunter22")
    second = hash_password("hunter22")
    assert first != second
    assert "hunter22" not in first
    assert verify_password("hunter22", first)
    assert verify_password("hunter22", second)
    assert not verify_password("hunter23", first)


def test_passwords_longer_than_bcrypt_limit_are_fully_compared():
    hashed = hash_password("x" * 100)
    assert verify_password("x" * 100, hashed)
    assert not verify_password("x" * 99 + "y", hashed)


def test_verify_password_with_malformed_hash():
    assert not verify_password("hunter22", "not-a-bcrypt-hash")


def test_token_carries_identity_and_expires_in_a_day():
    issuer = TokenIssuer("secret")
    now = datetime.now(timezone.utc)
    claims = issuer.verify(issuer.issue(7, "jane@example.com", now=now))
    assert claims["userId"] == 7
    assert claims["email"] == "jane@example.com"
    assert claims["exp"] - claims["iat"] == 24 * 3600


def test_expired_token_is_rejected():
    issuer = TokenIssuer("secret", expires_hours=24)
    token = issuer.issue(7, "jane@example.com", now=datetime.now(timezone.utc) - timedelta(days=2))
    with pytest.raises(ForbiddenError):
        issuer.verify(token)


def test_tampered_or_foreign_tokens_are_rejected():
    issuer = TokenIssuer("secret")
    with pytest.raises(ForbiddenError):
        issuer.verify(TokenIssuer("other").issue(7, "jane@example.com"))
    with pytest.raises(ForbiddenError):
        issuer.verify("not.a.token")
    no_user = jwt.encode({"email": "jane@example.com"}, "secret", algorithm="HS256")
    with pytest.raises(ForbiddenError):
        issuer.verify(no_user)
