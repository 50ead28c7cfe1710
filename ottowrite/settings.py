from __future__ import annotations

"""Application-level configuration (env → immutable settings object).

Nothing in here reads the environment at import time; ``load_settings`` is
called once by the application factory and the resulting ``AccessSettings``
is handed to whatever needs it.
"""

# Standard library
import os
from dataclasses import dataclass, field
from typing import Mapping

from ottowrite.models.enums import AlertSeverity, AlertType

__all__ = [
    "AccessSettings",
    "ConfigurationError",
    "DEFAULT_ALERT_SEVERITY",
    "DEV_PLACEHOLDER_SECRET",
    "load_settings",
    "validate_access_secret",
]

MIN_SECRET_BYTES = 32
NON_PRODUCTION_ENVS = {"development", "test"}

# Only acceptable outside production; long enough for HS256.
DEV_PLACEHOLDER_SECRET = "ottowrite-dev-placeholder-secret-change-me"

DEFAULT_EXPIRY_DAYS = 90
DEFAULT_VIEWER_BASE_URL = "http://localhost:3000"

DEFAULT_ALERT_SEVERITY: dict[AlertType, AlertSeverity] = {
    AlertType.rapid_access: AlertSeverity.medium,
    AlertType.suspicious_user_agent: AlertSeverity.medium,
    AlertType.access_after_expiry: AlertSeverity.medium,
    AlertType.unauthorized_action: AlertSeverity.high,
    AlertType.excessive_duration: AlertSeverity.low,
    AlertType.multiple_devices: AlertSeverity.high,
    AlertType.ip_mismatch: AlertSeverity.medium,
    AlertType.unusual_location: AlertSeverity.medium,
    AlertType.concurrent_sessions: AlertSeverity.high,
}


class ConfigurationError(RuntimeError):
    """Raised at startup when the service cannot run safely with the given env."""


def is_production(app_env: str) -> bool:
    return app_env not in NON_PRODUCTION_ENVS


def validate_access_secret(secret: str | None, app_env: str) -> str:
    """Return *secret* if it may be used to sign access tokens in *app_env*."""
    if not secret:
        raise ConfigurationError("MANUSCRIPT_ACCESS_SECRET not configured")
    if len(secret.encode("utf-8")) < MIN_SECRET_BYTES:
        raise ConfigurationError(
            f"MANUSCRIPT_ACCESS_SECRET must be at least {MIN_SECRET_BYTES} bytes"
        )
    if secret == DEV_PLACEHOLDER_SECRET and is_production(app_env):
        raise ConfigurationError("Placeholder access secret refused in production")
    return secret


def _collect_origins(environ: Mapping[str, str]) -> tuple[str, ...]:
    """Collect allowed CORS origins from the environment.

    Falls back to the local Next.js dev-server so the viewer keeps working in
    local development when no explicit env vars are set.
    """
    origins: list[str] = []
    for name in ("FRONTEND_ORIGIN", "EXTRA_ORIGIN"):
        if (val := environ.get(name)):
            origins.append(val)

    if not origins:
        origins.append("http://localhost:3000")
    return tuple(origins)


@dataclass(frozen=True)
class AccessSettings:
    access_token_secret: str
    app_env: str = "production"
    supabase_url: str | None = None
    supabase_key: str | None = None
    supabase_jwt_secret: str | None = None
    default_expiry_days: int = DEFAULT_EXPIRY_DAYS
    viewer_base_url: str = DEFAULT_VIEWER_BASE_URL
    allowed_origins: tuple[str, ...] = ()
    alert_severity: Mapping[AlertType, AlertSeverity] = field(
        default_factory=lambda: dict(DEFAULT_ALERT_SEVERITY)
    )

    @property
    def is_production(self) -> bool:
        return is_production(self.app_env)

    def severity_for(self, alert_type: AlertType) -> AlertSeverity:
        return self.alert_severity.get(alert_type, AlertSeverity.medium)


def load_settings(environ: Mapping[str, str] | None = None) -> AccessSettings:
    """Build ``AccessSettings`` from *environ* (defaults to ``os.environ``).

    Raises ``ConfigurationError`` for anything that would leave the service
    running with an insecure or broken configuration.
    """
    env = os.environ if environ is None else environ
    app_env = env.get("APP_ENV", "production")

    secret = env.get("MANUSCRIPT_ACCESS_SECRET")
    if not secret and not is_production(app_env):
        secret = DEV_PLACEHOLDER_SECRET
    secret = validate_access_secret(secret, app_env)

    supabase_url = env.get("SUPABASE_URL")
    supabase_key = env.get("SUPABASE_KEY")
    if not supabase_url or not supabase_key:
        raise ConfigurationError("Supabase env vars not configured")

    jwt_secret = env.get("SUPABASE_JWT_SECRET")
    if not jwt_secret and is_production(app_env):
        raise ConfigurationError("SUPABASE_JWT_SECRET not configured")

    raw_days = env.get("ACCESS_TOKEN_EXPIRY_DAYS")
    try:
        expiry_days = int(raw_days) if raw_days else DEFAULT_EXPIRY_DAYS
    except ValueError as exc:
        raise ConfigurationError("ACCESS_TOKEN_EXPIRY_DAYS must be an integer") from exc
    if expiry_days <= 0:
        raise ConfigurationError("ACCESS_TOKEN_EXPIRY_DAYS must be positive")

    return AccessSettings(
        access_token_secret=secret,
        app_env=app_env,
        supabase_url=supabase_url,
        supabase_key=supabase_key,
        supabase_jwt_secret=jwt_secret,
        default_expiry_days=expiry_days,
        viewer_base_url=env.get("VIEWER_BASE_URL", DEFAULT_VIEWER_BASE_URL).rstrip("/"),
        allowed_origins=_collect_origins(env),
    )
