from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from ottowrite.models import AccessGrant, Permission, TokenFailure
from ottowrite.settings import AccessSettings, ConfigurationError, DEV_PLACEHOLDER_SECRET
from ottowrite.utils.access_tokens import (
    ALGORITHM,
    AccessTokenService,
    has_permission,
    subject_for,
    token_reference,
)

SECRET = "unit-test-access-secret-0123456789abcdef"
NOW = datetime.now(timezone.utc).replace(microsecond=0)


def _service(secret: str = SECRET, app_env: str = "test", days: int = 90) -> AccessTokenService:
    return AccessTokenService(AccessSettings(access_token_secret=secret, app_env=app_env, default_expiry_days=days))


def _grant(**overrides) -> AccessGrant:
    values = dict(
        submission_id="sub_1",
        partner_id="partner_1",
        user_id="author_1",
        watermark_id="ab" * 16,
        permissions=frozenset({Permission.view_query, Permission.view_synopsis}),
    )
    values.update(overrides)
    return AccessGrant(**values)


def test_issue_and_verify_round_trip():
    service = _service()
    issued = service.issue(_grant(), now=NOW)

    assert issued.expires_at == NOW + timedelta(days=90)
    result = service.verify(issued.token, now=NOW + timedelta(days=1))
    assert result.valid
    assert result.payload.partner_id == "partner_1"
    assert result.payload.permissions == frozenset({Permission.view_query, Permission.view_synopsis})
    assert result.payload.expires_at == issued.expires_at


def test_claims_layout():
    issued = _service().issue(_grant(), 7, now=NOW)
    claims = jwt.get_unverified_claims(issued.token)

    assert claims["submissionId"] == "sub_1"
    assert claims["watermarkId"] == "ab" * 16
    assert claims["permissions"] == ["view_query", "view_synopsis"]
    assert claims["sub"] == subject_for("sub_1", "partner_1")
    assert claims["exp"] - claims["iat"] == 7 * 24 * 3600
    assert jwt.get_unverified_header(issued.token)["alg"] == ALGORITHM


def test_issue_rejects_non_positive_expiry():
    with pytest.raises(ValueError):
        _service().issue(_grant(), 0, now=NOW)


def test_expired_token_keeps_payload():
    service = _service()
    issued = service.issue(_grant(), 1, now=datetime.now(timezone.utc) - timedelta(days=2))

    result = service.verify(issued.token)
    assert not result.valid
    assert result.expired
    assert result.reason == TokenFailure.expired
    assert result.error == "Token has expired"
    assert result.payload.submission_id == "sub_1"


def test_signed_expiry_checked_independently():
    service = _service()
    issued = service.issue(_grant(), 1, now=datetime.now(timezone.utc))
    result = service.verify(issued.token, now=datetime.now(timezone.utc) + timedelta(days=2))
    assert result.expired


def test_naive_clock_is_read_as_utc():
    service = _service()
    issued = service.issue(_grant(), 1, now=NOW)
    naive = NOW.replace(tzinfo=None)

    assert service.verify(issued.token, now=naive + timedelta(hours=1)).valid
    result = service.verify(issued.token, now=naive + timedelta(days=2))
    assert result.expired
    assert result.reason == TokenFailure.expired


def test_tampered_token_invalid():
    service = _service()
    issued = service.issue(_grant(), now=NOW)
    header, payload, signature = issued.token.split(".")
    forged = ".".join([header, payload, signature[::-1]])

    result = service.verify(forged)
    assert not result.valid
    assert result.reason == TokenFailure.invalid
    assert result.payload is None


def test_token_from_other_secret_invalid():
    issued = _service(secret="another-secret-value-0123456789abcdef").issue(_grant(), now=NOW)
    assert _service().verify(issued.token).reason == TokenFailure.invalid


def test_garbage_token_invalid():
    result = _service().verify("definitely.not.ajwt")
    assert result.reason == TokenFailure.invalid


def test_valid_signature_missing_claims_is_malformed():
    token = jwt.encode({"submissionId": "sub_1"}, SECRET, algorithm=ALGORITHM)
    result = _service().verify(token)
    assert not result.valid
    assert result.reason == TokenFailure.malformed


def test_short_secret_refused():
    with pytest.raises(ConfigurationError):
        _service(secret="too-short")


def test_placeholder_secret_refused_in_production():
    with pytest.raises(ConfigurationError):
        _service(secret=DEV_PLACEHOLDER_SECRET, app_env="production")
    assert _service(secret=DEV_PLACEHOLDER_SECRET, app_env="development")


def test_has_permission_is_plain_membership():
    perms = frozenset({Permission.view})
    assert has_permission(perms, Permission.view)
    assert has_permission(perms, "view")
    assert not has_permission(perms, Permission.view_query)
    assert not has_permission(frozenset({Permission.view_full}), Permission.view_sample)
    assert AccessTokenService.has_permission(["download"], Permission.download)


def test_token_reference_is_stable_and_opaque():
    issued = _service().issue(_grant(), now=NOW)
    ref = token_reference(issued.token)
    assert ref == token_reference(issued.token)
    assert len(ref) == 32
    assert ref not in issued.token
