from __future__ import annotations

"""Unified models namespace – API (request/response), domain and DB models.

Route modules import from here::

    from ottowrite.models import AuthContext, ShareSubmissionRequest, Permission

Domain models live in ``ottowrite.models.access``, row models in
``ottowrite.models.db`` and enums in ``ottowrite.models.enums``; the common ones
are re-exported below.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator

from ottowrite.models.access import (
    AccessControlRules,
    AccessDecision,
    AccessGrant,
    AccessSession,
    AccessTokenPayload,
    AnomalySignal,
    IssuedToken,
    LogAccessParams,
    RequestContext,
    SessionAction,
    StoreResult,
    SuspicionReport,
    TokenVerification,
    WatermarkData,
    WatermarkDetection,
)
from ottowrite.models.db import (
    AccessLogEntry,
    AccessSummary,
    PartnerSubmission,
    SuspiciousActivityAlert,
    VerificationRequest,
)
from ottowrite.models.enums import (
    AccessAction,
    AlertSeverity,
    AlertStatus,
    AlertType,
    ManuscriptFormat,
    ManuscriptSection,
    ReviewDecision,
    SessionActionType,
    TokenFailure,
    VerificationLevel,
    VerificationRequestStatus,
    VerificationStatus,
    WatermarkTechnique,
)
from ottowrite.models.permissions import Permission
from ottowrite.models.verification import (
    BadgeDisplay,
    VerificationBadge,
    VerificationCredentials,
    VerificationCriteria,
    VerificationReview,
)

# ---------------------------------------------------------------------------
# Authentication Models
# ---------------------------------------------------------------------------

@dataclass
class AuthContext:
    """Caller identity resolved from a Supabase session JWT."""

    user_id: str
    role: str = "authenticated"
    email: str | None = None

    def is_admin(self) -> bool:
        return self.role == "admin"


# ---------------------------------------------------------------------------
# Sharing
# ---------------------------------------------------------------------------

class ShareSubmissionRequest(BaseModel):
    partner_id: str = Field(..., min_length=1)
    permissions: Optional[List[Permission]] = Field(
        None, min_length=1, description="Omit for view-only (query, synopsis, samples); never empty"
    )
    expiry_days: Optional[int] = Field(None, gt=0, le=365)
    access_rules: Optional[AccessControlRules] = Field(None, description="Defaults to DRM rules")
    format: ManuscriptFormat = ManuscriptFormat.text


class ShareSubmissionResponse(BaseModel):
    partner_submission_id: Optional[str] = None
    token: str
    expires_at: datetime
    watermark_id: str
    secure_link: str
    permissions: List[Permission]


class RevokeAccessResponse(BaseModel):
    submission_id: str
    partner_id: str
    revoked_at: datetime


# ---------------------------------------------------------------------------
# Viewer
# ---------------------------------------------------------------------------

class SubmissionInfo(BaseModel):
    id: str
    title: Optional[str] = None
    genre: Optional[str] = None
    word_count: Optional[int] = None
    type: Optional[str] = None


class DrmFlags(BaseModel):
    allow_download: bool
    allow_print: bool
    allow_copy: bool
    watermark_notice: str = "This manuscript is watermarked and tracked for unauthorized distribution."


class ManuscriptViewResponse(BaseModel):
    submission: SubmissionInfo
    section: ManuscriptSection
    watermark_id: str
    permissions: List[Permission]
    query_letter: Optional[str] = None
    synopsis: Optional[str] = None
    sample_pages: Optional[str] = None
    sample_pages_count: Optional[int] = None
    full_manuscript_available: Optional[bool] = None
    drm: DrmFlags


class SessionReportRequest(BaseModel):
    session_id: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    pages_viewed: Optional[List[int]] = None
    actions: List[SessionAction] = Field(default_factory=list, max_length=5000)


class SessionReportResponse(BaseModel):
    session_id: str
    duration_seconds: int
    suspicious: bool
    reasons: List[str] = Field(default_factory=list)
    alerts_raised: int = 0
    attempted_actions_logged: int = 0
    denied_actions: List[AccessAction] = Field(default_factory=list)
    session_cap_exceeded: bool = False


# ---------------------------------------------------------------------------
# Audit / alerts
# ---------------------------------------------------------------------------

class AlertCreateRequest(BaseModel):
    alert_type: AlertType
    severity: Optional[AlertSeverity] = Field(None, description="Defaults to the configured policy")
    description: str = Field(..., min_length=1, max_length=2000)
    partner_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    related_log_ids: Optional[List[str]] = None


class AlertStatusUpdate(BaseModel):
    status: AlertStatus
    notes: Optional[str] = None


class LeakCheckRequest(BaseModel):
    content: str = Field(..., min_length=1)


class LeakMatch(BaseModel):
    partner_id: str
    watermark_id: str
    confidence: float
    techniques: List[WatermarkTechnique]


class LeakCheckResponse(BaseModel):
    fingerprint: str
    watermark_present: bool
    matches: List[LeakMatch] = Field(default_factory=list)


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Partner verification
# ---------------------------------------------------------------------------

class VerificationSubmitRequest(VerificationCredentials):
    partner_id: str = Field(..., min_length=1)
    business_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    website: str = Field(..., min_length=1)
    documents: List[Dict[str, Any]] = Field(default_factory=list)
    notes: Optional[str] = None

    @validator("email")
    def _strip_email(cls, v):
        return v.strip()


class VerificationSubmitResponse(BaseModel):
    message: str
    request: VerificationRequest
    auto_verified: bool
    verification_score: int
    recommended_level: Optional[VerificationLevel] = None


class VerificationReviewResponse(BaseModel):
    message: str
    status: VerificationRequestStatus
    level: Optional[VerificationLevel] = None
    reason: Optional[str] = None


__all__ = [
    "AccessAction",
    "AccessControlRules",
    "AccessDecision",
    "AccessGrant",
    "AccessLogEntry",
    "AccessSession",
    "AccessSummary",
    "AccessTokenPayload",
    "AlertCreateRequest",
    "AlertSeverity",
    "AlertStatus",
    "AlertStatusUpdate",
    "AlertType",
    "AnomalySignal",
    "AuthContext",
    "BadgeDisplay",
    "DrmFlags",
    "IssuedToken",
    "LeakCheckRequest",
    "LeakCheckResponse",
    "LeakMatch",
    "LogAccessParams",
    "ManuscriptFormat",
    "ManuscriptSection",
    "ManuscriptViewResponse",
    "MessageResponse",
    "PartnerSubmission",
    "Permission",
    "RequestContext",
    "ReviewDecision",
    "RevokeAccessResponse",
    "SessionAction",
    "SessionActionType",
    "SessionReportRequest",
    "SessionReportResponse",
    "ShareSubmissionRequest",
    "ShareSubmissionResponse",
    "StoreResult",
    "SubmissionInfo",
    "SuspicionReport",
    "SuspiciousActivityAlert",
    "TokenFailure",
    "TokenVerification",
    "VerificationBadge",
    "VerificationCredentials",
    "VerificationCriteria",
    "VerificationLevel",
    "VerificationRequest",
    "VerificationRequestStatus",
    "VerificationReview",
    "VerificationReviewResponse",
    "VerificationStatus",
    "VerificationSubmitRequest",
    "VerificationSubmitResponse",
    "WatermarkData",
    "WatermarkDetection",
    "WatermarkTechnique",
]
