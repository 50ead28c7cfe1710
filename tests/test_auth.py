import pytest
from fastapi import HTTPException
from jose import jwt

from ottowrite.settings import AccessSettings
from ottowrite.utils.security_utils import verify_supabase_jwt
from tests.conftest import ADMIN, AUTHOR, SUBMISSION, auth_headers, supabase_jwt

HISTORY_PATH = f"/v1/submissions/{SUBMISSION}/access-history"
SUPABASE_URL = "https://test.supabase.co"


def _settings(**overrides) -> AccessSettings:
    values = dict(access_token_secret="x" * 32, app_env="test", supabase_url=SUPABASE_URL)
    values.update(overrides)
    return AccessSettings(**values)


# ---------------------------------------------------------------------------
# Route level
# ---------------------------------------------------------------------------

def test_missing_authorization(api_client):
    resp = api_client.get(HISTORY_PATH)
    assert resp.status_code == 401
    assert resp.json()["detail"] == "missing_authorization"


def test_expired_session(api_client):
    token = supabase_jwt(AUTHOR, expires_in=-60)
    resp = api_client.get(HISTORY_PATH, headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "jwt_expired"


def test_foreign_signature(api_client):
    token = jwt.encode({"sub": AUTHOR, "aud": "authenticated"}, "some-other-secret", algorithm="HS256")
    resp = api_client.get(HISTORY_PATH, headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "invalid_supabase_token"


def test_valid_session(api_client):
    resp = api_client.get(HISTORY_PATH, headers=auth_headers())
    assert resp.status_code == 200


def test_admin_only_route_rejects_author(api_client):
    resp = api_client.post(
        "/v1/partners/verification/some_request/review",
        json={"decision": "reject", "rejection_reason": "x"},
        headers=auth_headers(AUTHOR),
    )
    assert resp.status_code == 403
    assert resp.json()["detail"] == "admin_required"


def test_admin_only_route_accepts_admin(api_client):
    resp = api_client.post(
        "/v1/partners/verification/missing_request/review",
        json={"decision": "reject", "rejection_reason": "x"},
        headers=auth_headers(ADMIN),
    )
    # past the role check, the request itself does not exist
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# verify_supabase_jwt
# ---------------------------------------------------------------------------

def test_verified_claims():
    secret = "unit-secret-0123456789abcdef0123456789"
    token = jwt.encode({"sub": AUTHOR, "aud": "authenticated", "email": "a@b.co"}, secret, algorithm="HS256")
    claims = verify_supabase_jwt(token, _settings(supabase_jwt_secret=secret))
    assert claims["sub"] == AUTHOR
    assert claims["email"] == "a@b.co"


def test_wrong_audience_rejected():
    secret = "unit-secret-0123456789abcdef0123456789"
    token = jwt.encode({"sub": AUTHOR, "aud": "anon"}, secret, algorithm="HS256")
    with pytest.raises(HTTPException) as exc:
        verify_supabase_jwt(token, _settings(supabase_jwt_secret=secret))
    assert exc.value.status_code == 401


def test_missing_sub_rejected():
    secret = "unit-secret-0123456789abcdef0123456789"
    token = jwt.encode({"aud": "authenticated"}, secret, algorithm="HS256")
    with pytest.raises(HTTPException) as exc:
        verify_supabase_jwt(token, _settings(supabase_jwt_secret=secret))
    assert exc.value.detail == "invalid_jwt_missing_sub"


def test_production_without_secret_is_unavailable():
    token = jwt.encode({"sub": AUTHOR}, "whatever", algorithm="HS256")
    with pytest.raises(HTTPException) as exc:
        verify_supabase_jwt(token, _settings(app_env="production"))
    assert exc.value.status_code == 503
    assert exc.value.detail == "auth_not_configured"


def test_unverified_claims_outside_production():
    token = jwt.encode({"sub": AUTHOR, "iss": f"{SUPABASE_URL}/auth/v1"}, "whatever", algorithm="HS256")
    assert verify_supabase_jwt(token, _settings())["sub"] == AUTHOR


def test_unverified_claims_check_issuer():
    token = jwt.encode({"sub": AUTHOR, "iss": "https://elsewhere.example/auth/v1"}, "whatever", algorithm="HS256")
    with pytest.raises(HTTPException) as exc:
        verify_supabase_jwt(token, _settings())
    assert exc.value.detail == "invalid_jwt_issuer"


def test_unverified_claims_check_expiry():
    token = jwt.encode({"sub": AUTHOR, "exp": 1_000_000}, "whatever", algorithm="HS256")
    with pytest.raises(HTTPException) as exc:
        verify_supabase_jwt(token, _settings())
    assert exc.value.detail == "jwt_expired"
