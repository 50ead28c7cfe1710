from __future__ import annotations

"""Persistence / Supabase row models."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ottowrite.models.enums import (
    AccessAction,
    AlertSeverity,
    AlertStatus,
    AlertType,
    VerificationLevel,
    VerificationRequestStatus,
)

__all__ = [
    "AccessLogEntry",
    "AccessSummary",
    "PartnerSubmission",
    "SuspiciousActivityAlert",
    "VerificationRequest",
]


class AccessLogEntry(BaseModel):
    """Row in `manuscript_access_logs` – append-only, never updated."""

    id: str
    submission_id: Optional[str] = None
    access_token_id: Optional[str] = None
    partner_id: Optional[str] = None
    partner_email: Optional[str] = None
    partner_name: Optional[str] = None
    accessed_at: datetime
    session_duration_seconds: Optional[int] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device_fingerprint: Optional[str] = None
    location_country: Optional[str] = None
    location_city: Optional[str] = None
    action: AccessAction
    access_granted: Optional[bool] = None
    denial_reason: Optional[str] = None
    watermark_id: Optional[str] = None
    drm_flags: Optional[Dict[str, Any]] = None


class SuspiciousActivityAlert(BaseModel):
    """Row in `suspicious_activity_alerts`; mutated only through status updates."""

    id: str
    submission_id: Optional[str] = None
    partner_id: Optional[str] = None
    alert_type: AlertType
    severity: AlertSeverity
    description: str
    metadata: Optional[Dict[str, Any]] = None
    related_log_ids: Optional[List[str]] = None
    status: AlertStatus = AlertStatus.new
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    detected_at: datetime


class AccessSummary(BaseModel):
    """Row of the `manuscript_access_summary` view (zeroed when no logs exist)."""

    submission_id: str
    total_accesses: int = 0
    unique_partners: int = 0
    unique_ips: int = 0
    unique_devices: int = 0
    last_accessed: Optional[datetime] = None
    first_accessed: Optional[datetime] = None
    query_views: int = 0
    synopsis_views: int = 0
    sample_views: int = 0
    download_attempts: int = 0
    print_attempts: int = 0
    copy_attempts: int = 0
    denied_accesses: int = 0
    avg_session_duration: Optional[float] = None


class PartnerSubmission(BaseModel):
    """Row in `partner_submissions` – one share of a submission with one partner."""

    id: Optional[str] = Field(None, description="Primary key (UUID, db-generated)")
    submission_id: str
    partner_id: str
    user_id: str
    watermark_data: Optional[Dict[str, Any]] = None
    access_token: Optional[str] = None
    access_expires_at: Optional[datetime] = None
    access_revoked_at: Optional[datetime] = None
    access_rules: Optional[Dict[str, Any]] = Field(None, description="Serialized AccessControlRules")
    viewed_by_partner: bool = False
    first_viewed_at: Optional[datetime] = None
    last_viewed_at: Optional[datetime] = None
    view_count: int = 0


class VerificationRequest(BaseModel):
    """Row in `partner_verification_requests`."""

    id: Optional[str] = None
    partner_id: str
    requested_by: str
    status: VerificationRequestStatus = VerificationRequestStatus.pending
    level: Optional[VerificationLevel] = None
    business_name: str
    website: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    industry_associations: Optional[List[str]] = None
    membership_proof: Optional[List[str]] = None
    sales_history: Optional[str] = None
    client_list: Optional[str] = None
    linkedin: Optional[str] = None
    twitter: Optional[str] = None
    publishers_marketplace: Optional[str] = None
    query_tracker: Optional[str] = None
    manuscript_wish_list: Optional[str] = None
    documents: List[Dict[str, Any]] = Field(default_factory=list)
    notes: Optional[str] = None
    verification_score: Optional[int] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
