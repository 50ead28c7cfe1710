"""Domain models for manuscript access control, watermarking and auditing.

Fallible operations in the core return one of the ``*Result`` /
``TokenVerification`` / ``AccessDecision`` models below instead of raising, so
callers branch on data rather than on exception messages.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field, validator

from ottowrite.models.db import AccessLogEntry, AccessSummary, SuspiciousActivityAlert
from ottowrite.models.enums import (
    AlertType,
    AccessAction,
    ManuscriptFormat,
    SessionActionType,
    TokenFailure,
    WatermarkTechnique,
)
from ottowrite.models.permissions import Permission


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so comparisons never mix naive and aware."""
    return value.astimezone(timezone.utc) if value.tzinfo else value.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Access tokens
# ---------------------------------------------------------------------------

class AccessGrant(BaseModel):
    """What a share grants; the token service adds the timestamps."""

    submission_id: str
    partner_id: str
    user_id: str
    watermark_id: str
    permissions: FrozenSet[Permission]


class AccessTokenPayload(BaseModel):
    """Signed token claims. Immutable: broader access means a new token."""

    model_config = {"frozen": True, "populate_by_name": True}

    submission_id: str = Field(..., alias="submissionId")
    partner_id: str = Field(..., alias="partnerId")
    user_id: str = Field(..., alias="userId")
    watermark_id: str = Field(..., alias="watermarkId")
    permissions: FrozenSet[Permission]
    created_at: datetime = Field(..., alias="createdAt")
    expires_at: datetime = Field(..., alias="expiresAt")

    @validator("created_at", "expires_at")
    def _normalize_tz(cls, v):
        return _as_utc(v)

    def to_claims(self) -> Dict[str, Any]:
        return {
            "submissionId": self.submission_id,
            "partnerId": self.partner_id,
            "userId": self.user_id,
            "watermarkId": self.watermark_id,
            "permissions": sorted(p.value for p in self.permissions),
            "createdAt": self.created_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
        }

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "AccessTokenPayload":
        # iat / exp / sub are ignored (extra keys)
        return cls.model_validate(claims)


class IssuedToken(BaseModel):
    token: str
    expires_at: datetime
    payload: AccessTokenPayload


class TokenVerification(BaseModel):
    valid: bool
    payload: Optional[AccessTokenPayload] = None
    error: Optional[str] = None
    reason: Optional[TokenFailure] = None

    @property
    def expired(self) -> bool:
        return self.reason == TokenFailure.expired


# ---------------------------------------------------------------------------
# Access rules
# ---------------------------------------------------------------------------

class AccessControlRules(BaseModel):
    """Per-submission policy, evaluated against every request."""

    allow_download: bool = False
    allow_print: bool = False
    allow_copy: bool = False
    allow_screenshots: bool = False  # not enforceable, tracked only
    max_view_duration: Optional[int] = Field(None, description="Max minutes per viewing session")
    expiry_date: Optional[datetime] = None
    ip_restrictions: Optional[List[str]] = None
    device_restrictions: Optional[List[str]] = None

    @validator("expiry_date")
    def _normalize_expiry(cls, v):
        return _as_utc(v) if v is not None else v


class RequestContext(BaseModel):
    ip_address: Optional[str] = None
    device_fingerprint: Optional[str] = None
    current_time: datetime = Field(default_factory=_utcnow)

    @validator("current_time")
    def _normalize_now(cls, v):
        return _as_utc(v)


class AccessDecision(BaseModel):
    allowed: bool
    reason: Optional[str] = None


# ---------------------------------------------------------------------------
# Watermarks
# ---------------------------------------------------------------------------

class WatermarkData(BaseModel):
    watermark_id: str
    partner_id: str
    submission_id: str
    user_id: str
    timestamp: datetime
    format: ManuscriptFormat = ManuscriptFormat.text
    technique: List[WatermarkTechnique] = Field(default_factory=list)


class WatermarkDetection(BaseModel):
    """Heuristic triage result; confidence < 1.0 needs human review."""

    detected: bool
    confidence: float
    techniques: List[WatermarkTechnique] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Viewer sessions & anomaly signals
# ---------------------------------------------------------------------------

class SessionAction(BaseModel):
    type: SessionActionType
    timestamp: datetime
    metadata: Optional[Dict[str, Any]] = None


class AccessSession(BaseModel):
    session_id: str
    submission_id: str
    partner_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = Field(None, description="Seconds")
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device_fingerprint: Optional[str] = None
    pages_viewed: Optional[List[int]] = None
    actions: List[SessionAction] = Field(default_factory=list)

    def count(self, action_type: SessionActionType) -> int:
        return sum(1 for a in self.actions if a.type == action_type)


class AnomalySignal(BaseModel):
    """A detection rule that fired. Severity is chosen by the caller's policy."""

    alert_type: AlertType
    description: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SuspicionReport(BaseModel):
    suspicious: bool
    signals: List[AnomalySignal] = Field(default_factory=list)

    @property
    def reasons(self) -> List[str]:
        return [s.description for s in self.signals]


# ---------------------------------------------------------------------------
# Audit trail inputs & results
# ---------------------------------------------------------------------------

class LogAccessParams(BaseModel):
    submission_id: str
    partner_id: str
    action: AccessAction
    access_token_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device_fingerprint: Optional[str] = None
    watermark_id: Optional[str] = None
    drm_flags: Optional[Dict[str, Any]] = None
    access_granted: bool = True
    denial_reason: Optional[str] = None
    session_duration_seconds: Optional[int] = None


class StoreResult(BaseModel):
    success: bool
    id: Optional[str] = None
    error: Optional[str] = None


class HistoryResult(BaseModel):
    success: bool
    logs: List[AccessLogEntry] = Field(default_factory=list)
    error: Optional[str] = None


class AlertsResult(BaseModel):
    success: bool
    alerts: List[SuspiciousActivityAlert] = Field(default_factory=list)
    error: Optional[str] = None


class SummaryResult(BaseModel):
    success: bool
    summary: Optional[AccessSummary] = None
    error: Optional[str] = None
