# tests/core/test_security.py
from datetime import timedelta

import pytest
from jose import jwt

from atlas_core.core.config import settings
from atlas_core.core.security import (
    create_session_token,
    decode_session_token,
    get_password_hash,
    verify_password,
)


def test_password_hash_roundtrip():
    hashed = get_password_hash("secret123")
    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("wrong", hashed)


def test_verify_password_tolerates_missing_or_malformed_hash():
    assert not verify_password("secret123", None)
    assert not verify_password("secret123", "plain-text-legacy")


def test_session_token_carries_normalized_role():
    token = create_session_token({"id": "p-1", "fenix_role": "gerencia", "full_name": "Ana"})
    session = decode_session_token(token)
    assert session is not None
    assert session.person_id == "p-1"
    assert session.role == "admin"
    assert session.raw_role == "GERENCIA"
    assert session.name == "Ana"


def test_expired_or_forged_tokens_are_rejected():
    expired = create_session_token({"id": "p-1", "fenix_role": "ADMIN"}, expires_delta=timedelta(seconds=-5))
    assert decode_session_token(expired) is None

    forged = jwt.encode({"sub": "p-1", "role": "ADMIN"}, "not-the-secret", algorithm=settings.ALGORITHM)
    assert decode_session_token(forged) is None
    assert decode_session_token("") is None


def test_token_requires_person_id():
    with pytest.raises(ValueError):
        create_session_token({"fenix_role": "ADMIN"})
