"""Per-request access rule evaluation and viewer DRM helpers."""

from __future__ import annotations

import hashlib
import math
import secrets
from datetime import datetime
from typing import Dict, FrozenSet, Iterable
from urllib.parse import urlencode, urlsplit, urlunsplit, parse_qsl

from ottowrite.models.access import AccessControlRules, AccessDecision, RequestContext
from ottowrite.models.enums import AccessAction, SessionActionType
from ottowrite.models.permissions import Permission
from ottowrite.utils.access_tokens import has_permission

__all__ = [
    "ACCESS_EXPIRED",
    "DEVICE_NOT_AUTHORIZED",
    "IP_NOT_AUTHORIZED",
    "calculate_session_duration",
    "check_access_rules",
    "exceeds_session_cap",
    "generate_secure_link",
    "generate_session_id",
    "get_default_permissions",
    "get_drm_rules",
    "get_drm_security_headers",
    "get_full_access_permissions",
    "is_unauthorized_action",
]

ACCESS_EXPIRED = "Access has expired"
IP_NOT_AUTHORIZED = "IP address not authorized"
DEVICE_NOT_AUTHORIZED = "Device not authorized"

DRM_MAX_VIEW_MINUTES = 120

# Attempted action → permission it needs. No token can carry "share".
_ACTION_PERMISSION: Dict[str, str] = {
    AccessAction.download_attempted.value: Permission.download.value,
    AccessAction.print_attempted.value: Permission.print.value,
    AccessAction.copy_attempted.value: Permission.copy.value,
    AccessAction.share_attempted.value: "share",
}


def check_access_rules(rules: AccessControlRules, context: RequestContext) -> AccessDecision:
    """Allow/deny for one request; first failing check wins.

    Empty restriction lists mean "no restriction". A non-empty list denies a
    request that carries no IP (or fingerprint) at all.
    """
    if rules.expiry_date is not None and context.current_time > rules.expiry_date:
        return AccessDecision(allowed=False, reason=ACCESS_EXPIRED)

    if rules.ip_restrictions:
        if not context.ip_address or context.ip_address not in rules.ip_restrictions:
            return AccessDecision(allowed=False, reason=IP_NOT_AUTHORIZED)

    if rules.device_restrictions:
        if not context.device_fingerprint or context.device_fingerprint not in rules.device_restrictions:
            return AccessDecision(allowed=False, reason=DEVICE_NOT_AUTHORIZED)

    return AccessDecision(allowed=True)


def required_permission(action: AccessAction | SessionActionType | str) -> str | None:
    value = action.value if hasattr(action, "value") else str(action)
    return _ACTION_PERMISSION.get(value)


def is_unauthorized_action(
    action: AccessAction | SessionActionType | str,
    permissions: Iterable[Permission | str],
) -> bool:
    """True for an attempted download/print/copy/share the token does not grant.

    View-type actions are never unauthorized here; viewing is the token's call.
    """
    needed = required_permission(action)
    if needed is None:
        return False
    return not has_permission(permissions, needed)


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

def get_default_permissions() -> FrozenSet[Permission]:
    """View-only: query, synopsis and sample pages."""
    return frozenset(
        {Permission.view, Permission.view_query, Permission.view_synopsis, Permission.view_sample}
    )


def get_full_access_permissions() -> FrozenSet[Permission]:
    return get_default_permissions() | {Permission.view_full}


def get_drm_rules() -> AccessControlRules:
    return AccessControlRules(
        allow_download=False,
        allow_print=False,
        allow_copy=False,
        allow_screenshots=False,
        max_view_duration=DRM_MAX_VIEW_MINUTES,
    )


def exceeds_session_cap(rules: AccessControlRules, duration_seconds: int | None) -> bool:
    if rules.max_view_duration is None or duration_seconds is None:
        return False
    return duration_seconds > rules.max_view_duration * 60


# ---------------------------------------------------------------------------
# Links, sessions, headers
# ---------------------------------------------------------------------------

def generate_secure_link(base_url: str, token: str, partner_id: str) -> str:
    """Viewer URL carrying ``token`` and ``partner`` query parameters."""
    parts = urlsplit(base_url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"base_url must be absolute: {base_url!r}")
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update({"token": token, "partner": partner_id})
    return urlunsplit(parts._replace(query=urlencode(query)))


def generate_session_id() -> str:
    return hashlib.sha256(secrets.token_bytes(16)).hexdigest()[:24]


def calculate_session_duration(start_time: datetime, end_time: datetime) -> int:
    """Whole seconds between *start_time* and *end_time*."""
    return math.floor((end_time - start_time).total_seconds())


def get_drm_security_headers() -> Dict[str, str]:
    """Headers the viewer response should carry to discourage framing and copying."""
    return {
        "Content-Security-Policy": "; ".join(
            [
                "default-src 'self'",
                "script-src 'self' 'unsafe-inline'",
                "style-src 'self' 'unsafe-inline'",
                "img-src 'self' data: blob:",
                "connect-src 'self'",
                "frame-ancestors 'none'",
            ]
        ),
        "X-Frame-Options": "DENY",
        "X-Content-Type-Options": "nosniff",
        "X-XSS-Protection": "1; mode=block",
        "Referrer-Policy": "no-referrer",
        "Permissions-Policy": ", ".join(["camera=()", "microphone=()", "geolocation=()"]),
    }
