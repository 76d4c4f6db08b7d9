from datetime import timedelta
import time

import pytest

from app.errors import UnauthorizedError
from app.models.auth import Platform
from app.services.tokens import AccessTokenClaims, AccessTokenCodec
from conftest import PASSWORD


def _login(service, platform=Platform.WEB):
    device_id = "device-1" if platform == Platform.MOBILE else None
    return service.login("guia@example.com", PASSWORD, platform, device_id=device_id)


def _token_issued_at(codec, user, session_id, issued_at, aud="web"):
    claims = AccessTokenClaims(
        user_id=user.id,
        email=user.email,
        rol=user.role.value,
        aud=aud,
        sid=session_id,
        iat=issued_at,
    )
    return codec.sign(claims, timedelta(minutes=15))


def test_valid_token_returns_claims(service, guard, make_user):
    user = make_user()
    login = _login(service)

    claims = guard.authenticate(login.access_token, Platform.WEB)

    assert claims.user_id == user.id
    assert claims.sid == login.session_id
    assert claims.aud == "web"


def test_missing_token_is_unauthorized(guard):
    with pytest.raises(UnauthorizedError):
        guard.authenticate(None)


def test_bad_signature_and_expiry_share_one_message(service, guard, make_user, codec):
    user = make_user()
    login = _login(service)
    forged = AccessTokenCodec("another-secret-key-another-secret-key-0987").sign(
        AccessTokenClaims(user_id=user.id, email=user.email, rol="GUIA", aud="web", sid=login.session_id),
        timedelta(minutes=15),
    )
    expired = _token_issued_at(codec, user, login.session_id, int(time.time()) - 3600)

    with pytest.raises(UnauthorizedError) as forged_exc:
        guard.authenticate(forged)
    with pytest.raises(UnauthorizedError) as expired_exc:
        guard.authenticate(expired)

    assert forged_exc.value.message == expired_exc.value.message == "Invalid or expired token"


def test_platform_context_must_match_audience(service, guard, make_user):
    make_user()
    login = _login(service, platform=Platform.MOBILE)

    assert guard.authenticate(login.access_token, Platform.MOBILE).aud == "mobile"
    with pytest.raises(UnauthorizedError):
        guard.authenticate(login.access_token, Platform.WEB)


def test_revoked_session_is_rejected(service, guard, make_user):
    make_user()
    login = _login(service)

    service.logout(login.session_id)

    with pytest.raises(UnauthorizedError):
        guard.authenticate(login.access_token)


def test_unknown_session_is_rejected(guard, make_user, codec):
    user = make_user()
    token = _token_issued_at(codec, user, "missing-session", int(time.time()))

    with pytest.raises(UnauthorizedError):
        guard.authenticate(token)


def test_expired_session_is_rejected(service, guard, make_user, clock):
    make_user()
    login = _login(service)

    clock.advance(days=8)

    with pytest.raises(UnauthorizedError):
        guard.authenticate(login.access_token)


def test_token_minted_before_rotation_is_rejected(service, guard, make_user, codec):
    user = make_user()
    login = _login(service)
    stale = _token_issued_at(codec, user, login.session_id, int(time.time()) - 60)

    assert guard.authenticate(stale).sid == login.session_id

    refreshed = service.refresh(login.refresh_token, Platform.WEB)

    with pytest.raises(UnauthorizedError):
        guard.authenticate(stale)
    assert guard.authenticate(refreshed.access_token).sid == login.session_id


def test_rotation_skew_tolerance_accepts_recent_tokens(service, guard, make_user, codec):
    user = make_user()
    login = _login(service)
    service.refresh(login.refresh_token, Platform.WEB)
    recent = _token_issued_at(codec, user, login.session_id, int(time.time()) - 1)

    assert guard.authenticate(recent).sid == login.session_id


def test_token_without_sid_skips_session_checks(guard, make_user, codec):
    user = make_user()
    token = codec.sign(
        AccessTokenClaims(user_id=user.id, email=user.email, rol="GUIA", aud="web"),
        timedelta(minutes=15),
    )

    assert guard.authenticate(token).sid is None
