"""Supabase session verification & safe store-call helpers."""

from __future__ import annotations

import inspect
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import HTTPException, status
from jose import jwt as jose_jwt
from jose.exceptions import ExpiredSignatureError, JWTError

from ottowrite.settings import AccessSettings
from ottowrite.utils.logger import logger

SUPABASE_AUDIENCE = "authenticated"

# ---------------------------------------------------------------------------
# Helper for safe Supabase calls
# ---------------------------------------------------------------------------

async def _safe_supabase_call(coro, *, detail: str):
    """Await a Supabase async call and translate network/database errors into HTTP 503.

    HTTP exceptions raised inside the call are intentional and pass through.
    """
    try:
        return await coro if inspect.isawaitable(coro) else coro  # type: ignore[misc]
    except HTTPException:
        raise
    except Exception as exc:
        logger.error("supabase.call_failed", extra={"extra": {"detail": detail, "error": str(exc)}})
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail) from exc

# ---------------------------------------------------------------------------
# Supabase Auth JWT verification
# ---------------------------------------------------------------------------

def verify_supabase_jwt(token: str, settings: AccessSettings) -> Dict[str, Any]:
    """Validate a Supabase Auth JWT and return its claims.

    With ``SUPABASE_JWT_SECRET`` configured (mandatory in production) the
    signature, expiry and audience are verified. Without it, development and
    test environments fall back to reading the claims and checking ``exp`` and
    ``iss`` only.
    """
    if settings.supabase_jwt_secret:
        try:
            claims = jose_jwt.decode(
                token,
                settings.supabase_jwt_secret,
                algorithms=["HS256"],
                audience=SUPABASE_AUDIENCE,
            )
        except ExpiredSignatureError:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="jwt_expired")
        except JWTError:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_supabase_token")
    else:
        if settings.is_production:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="auth_not_configured")
        try:
            claims = jose_jwt.get_unverified_claims(token)
        except JWTError:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_supabase_token")

        exp = claims.get("exp")
        if exp and datetime.fromtimestamp(exp, timezone.utc) < datetime.now(timezone.utc):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="jwt_expired")

        expected_issuer = f"{settings.supabase_url}/auth/v1"
        if claims.get("iss") and claims.get("iss") != expected_issuer:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_jwt_issuer")

    if not claims.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_jwt_missing_sub")
    return claims
