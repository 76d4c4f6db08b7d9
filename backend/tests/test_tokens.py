from datetime import timedelta
import time

import pytest
from jose import jwt

from app.errors import UnauthorizedError
from app.services.tokens import (
    AccessTokenClaims,
    AccessTokenCodec,
    RefreshTokenHasher,
    generate_refresh_token,
)
from conftest import PEPPER, SECRET_KEY


def _claims(**overrides):
    values = {"user_id": "user-1", "email": "guia@example.com", "rol": "GUIA", "aud": "web", "sid": "session-1"}
    values.update(overrides)
    return AccessTokenClaims(**values)


def test_refresh_tokens_are_random_and_url_safe():
    tokens = {generate_refresh_token() for _ in range(50)}

    assert len(tokens) == 50
    assert all(len(t) >= 64 for t in tokens)
    assert all("=" not in t and "/" not in t and "+" not in t for t in tokens)


def test_refresh_hash_is_keyed():
    token = generate_refresh_token()
    hasher = RefreshTokenHasher(PEPPER)

    assert hasher.hash(token) == hasher.hash(token)
    assert len(hasher.hash(token)) == 64
    assert hasher.hash(token) != RefreshTokenHasher(PEPPER[::-1]).hash(token)
    assert hasher.matches(token, hasher.hash(token))
    assert not hasher.matches(token, None)


def test_empty_pepper_is_refused():
    with pytest.raises(ValueError):
        RefreshTokenHasher("")


def test_signed_payload_uses_wire_claim_names(codec):
    token = codec.sign(_claims(), timedelta(minutes=15))

    payload = jwt.get_unverified_claims(token)

    assert payload["userId"] == "user-1"
    assert payload["rol"] == "GUIA"
    assert payload["sid"] == "session-1"
    assert payload["aud"] == "web"
    assert payload["iss"] == "gestionguias-api"
    assert payload["exp"] - payload["iat"] == 15 * 60
    assert payload["jti"]


def test_verify_round_trips_claims(codec):
    claims = codec.verify(codec.sign(_claims(aud="mobile"), timedelta(minutes=15)))

    assert claims == _claims(aud="mobile", iat=claims.iat)
    assert abs(claims.iat - time.time()) < 5


def test_verify_enforces_expected_audience(codec):
    token = codec.sign(_claims(aud="mobile"), timedelta(minutes=15))

    assert codec.verify(token, audience="mobile").aud == "mobile"
    with pytest.raises(UnauthorizedError):
        codec.verify(token, audience="web")


def test_verify_rejects_foreign_issuer():
    token = AccessTokenCodec(SECRET_KEY, issuer="someone-else").sign(_claims(), timedelta(minutes=15))

    with pytest.raises(UnauthorizedError):
        AccessTokenCodec(SECRET_KEY).verify(token)


def test_verify_rejects_unknown_audience(codec):
    token = codec.sign(_claims(aud="desktop"), timedelta(minutes=15))

    with pytest.raises(UnauthorizedError):
        codec.verify(token)


def test_verify_rejects_tokens_that_are_not_access_tokens():
    token = jwt.encode(
        {"userId": "user-1", "aud": "web", "iss": "gestionguias-api", "exp": int(time.time()) + 60},
        SECRET_KEY,
        algorithm="HS256",
    )

    with pytest.raises(UnauthorizedError):
        AccessTokenCodec(SECRET_KEY).verify(token)


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
def test_verify_rejects_garbage(codec, token):
    with pytest.raises(UnauthorizedError, match="Invalid or expired token"):
        codec.verify(token)
