"""Signed, time-limited manuscript access tokens (HS256 JWT via python-jose).

The token is the capability: its permission set is fixed when it is issued
and widening access means issuing a new token. Revocation lives with the
caller (``partner_submissions.access_revoked_at``); this service only knows
about *expired* and *invalid*.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError
from pydantic import ValidationError

from ottowrite.models.access import AccessGrant, AccessTokenPayload, IssuedToken, TokenVerification
from ottowrite.models.enums import TokenFailure
from ottowrite.models.permissions import Permission
from ottowrite.settings import AccessSettings, validate_access_secret
from ottowrite.utils.logger import logger
from ottowrite.utils.utils import parse_timestamp, utcnow

__all__ = ["AccessTokenService", "has_permission", "subject_for", "token_reference"]

ALGORITHM = "HS256"

TOKEN_EXPIRED = "Token has expired"
TOKEN_INVALID = "Invalid token"
TOKEN_MALFORMED = "Token payload is malformed"


def subject_for(submission_id: str, partner_id: str) -> str:
    return f"submission:{submission_id}:partner:{partner_id}"


def token_reference(token: str) -> str:
    """Stable, non-reversible id for a token, stored in access logs instead of the token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:32]


def _perm_value(p: Permission | str) -> str:
    return p.value if isinstance(p, Enum) else str(p)


def has_permission(permissions: Iterable[Permission | str], required: Permission | str) -> bool:
    """Plain set membership; no permission implies another."""
    return _perm_value(required) in {_perm_value(p) for p in permissions}


class AccessTokenService:
    """Issue and verify access tokens with the configured signing secret.

    Raises ``ConfigurationError`` on construction if the secret is too short,
    or is the development placeholder while running in production.
    """

    def __init__(self, settings: AccessSettings):
        self._secret = validate_access_secret(settings.access_token_secret, settings.app_env)
        self._default_expiry_days = settings.default_expiry_days

    def issue(
        self,
        grant: AccessGrant,
        expiry_days: int | None = None,
        *,
        now: datetime | None = None,
    ) -> IssuedToken:
        days = self._default_expiry_days if expiry_days is None else expiry_days
        if days <= 0:
            raise ValueError("expiry_days must be positive")

        issued_at = parse_timestamp(now) or utcnow()
        payload = AccessTokenPayload(
            submission_id=grant.submission_id,
            partner_id=grant.partner_id,
            user_id=grant.user_id,
            watermark_id=grant.watermark_id,
            permissions=frozenset(grant.permissions),
            created_at=issued_at,
            expires_at=issued_at + timedelta(days=days),
        )

        claims = payload.to_claims()
        claims.update(
            {
                "iat": int(payload.created_at.timestamp()),
                "exp": int(payload.expires_at.timestamp()),
                "sub": subject_for(payload.submission_id, payload.partner_id),
            }
        )
        token = jwt.encode(claims, self._secret, algorithm=ALGORITHM)

        logger.info(
            "access_token.issued",
            extra={
                "extra": {
                    "submission_id": payload.submission_id,
                    "partner_id": payload.partner_id,
                    "watermark_id": payload.watermark_id,
                    "expires_at": payload.expires_at.isoformat(),
                    "permissions": claims["permissions"],
                }
            },
        )
        return IssuedToken(token=token, expires_at=payload.expires_at, payload=payload)

    def verify(self, token: str, *, now: datetime | None = None) -> TokenVerification:
        """Check signature and expiry; never raises for bad input."""
        try:
            claims = jwt.decode(token, self._secret, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            # jose verifies the signature before it looks at exp
            return TokenVerification(
                valid=False,
                payload=self._payload_or_none(jwt.get_unverified_claims(token)),
                error=TOKEN_EXPIRED,
                reason=TokenFailure.expired,
            )
        except JWTError as exc:
            logger.info("access_token.invalid", extra={"extra": {"error": str(exc)}})
            return TokenVerification(valid=False, error=TOKEN_INVALID, reason=TokenFailure.invalid)

        payload = self._payload_or_none(claims)
        if payload is None:
            return TokenVerification(valid=False, error=TOKEN_MALFORMED, reason=TokenFailure.malformed)

        # Independent of jose's exp check: the signed expiresAt claim wins.
        if payload.expires_at < (parse_timestamp(now) or utcnow()):
            return TokenVerification(
                valid=False, payload=payload, error=TOKEN_EXPIRED, reason=TokenFailure.expired
            )

        return TokenVerification(valid=True, payload=payload)

    @staticmethod
    def _payload_or_none(claims: dict) -> AccessTokenPayload | None:
        try:
            return AccessTokenPayload.from_claims(claims)
        except (ValidationError, TypeError):
            logger.warning("access_token.malformed_claims", extra={"extra": {"keys": sorted(claims or {})}})
            return None

    @staticmethod
    def has_permission(permissions: Iterable[Permission | str], required: Permission | str) -> bool:
        return has_permission(permissions, required)
