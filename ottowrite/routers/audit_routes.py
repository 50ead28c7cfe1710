from __future__ import annotations

"""Author-facing audit endpoints: access history, alerts and leak checks."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from ottowrite.models import (
    AccessLogEntry,
    AccessSummary,
    AlertCreateRequest,
    AlertStatus,
    AlertStatusUpdate,
    AuthContext,
    LeakCheckRequest,
    LeakCheckResponse,
    LeakMatch,
    MessageResponse,
    SuspiciousActivityAlert,
)
from ottowrite.routers.submissions_routes import PARTNER_SUBMISSIONS_TABLE, require_submission_owner
from ottowrite.settings import AccessSettings
from ottowrite.utils.audit import ALERTS_TABLE, AuditTrail
from ottowrite.utils.auth import require_user
from ottowrite.utils.database import query_many, query_one
from ottowrite.utils.dependencies import get_audit_trail, get_settings, get_supabase_async
from ottowrite.utils.logger import logger
from ottowrite.utils.security_utils import _safe_supabase_call
from ottowrite.utils.watermark import create_document_fingerprint, detect_watermark

router = APIRouter(prefix="/v1", tags=["audit"])


def _store_unavailable(detail: str, error: Optional[str]) -> HTTPException:
    logger.error("audit.store_unavailable", extra={"extra": {"detail": detail, "error": error}})
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


@router.get("/submissions/{submission_id}/access-history", response_model=List[AccessLogEntry])
async def get_access_history(
    submission_id: str = Path(...),
    limit: int = Query(50, ge=1, le=500),
    auth: AuthContext = Depends(require_user()),
    audit: AuditTrail = Depends(get_audit_trail),
    supabase=Depends(get_supabase_async),
):
    await require_submission_owner(supabase, submission_id, auth)
    result = await audit.get_access_history(submission_id, limit)
    if not result.success:
        raise _store_unavailable("access_history_unavailable", result.error)
    return result.logs


@router.get("/submissions/{submission_id}/alerts", response_model=List[SuspiciousActivityAlert])
async def get_alerts(
    submission_id: str = Path(...),
    alert_status: Optional[AlertStatus] = Query(None, alias="status"),
    auth: AuthContext = Depends(require_user()),
    audit: AuditTrail = Depends(get_audit_trail),
    supabase=Depends(get_supabase_async),
):
    await require_submission_owner(supabase, submission_id, auth)
    result = await audit.get_alerts(submission_id, alert_status)
    if not result.success:
        raise _store_unavailable("alerts_unavailable", result.error)
    return result.alerts


@router.get("/submissions/{submission_id}/access-summary", response_model=AccessSummary)
async def get_access_summary(
    submission_id: str = Path(...),
    auth: AuthContext = Depends(require_user()),
    audit: AuditTrail = Depends(get_audit_trail),
    supabase=Depends(get_supabase_async),
):
    """Counters from ``manuscript_access_summary``; zeroed before the first access."""
    await require_submission_owner(supabase, submission_id, auth)
    result = await audit.get_access_summary(submission_id)
    if not result.success:
        raise _store_unavailable("access_summary_unavailable", result.error)
    return result.summary


@router.post(
    "/submissions/{submission_id}/alerts",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_manual_alert(
    body: AlertCreateRequest,
    submission_id: str = Path(...),
    auth: AuthContext = Depends(require_user()),
    settings: AccessSettings = Depends(get_settings),
    audit: AuditTrail = Depends(get_audit_trail),
    supabase=Depends(get_supabase_async),
):
    """Raise an alert by hand, e.g. after spotting a leaked excerpt."""
    await require_submission_owner(supabase, submission_id, auth)
    result = await audit.create_alert(
        submission_id,
        body.alert_type,
        body.severity or settings.severity_for(body.alert_type),
        body.description,
        partner_id=body.partner_id,
        metadata={**(body.metadata or {}), "reported_by": auth.user_id},
        related_log_ids=body.related_log_ids,
    )
    if not result.success:
        raise _store_unavailable("alert_store_unavailable", result.error)
    return MessageResponse(message="Alert created")


@router.post("/submissions/{submission_id}/leak-check", response_model=LeakCheckResponse)
async def check_leaked_content(
    body: LeakCheckRequest,
    submission_id: str = Path(...),
    auth: AuthContext = Depends(require_user()),
    supabase=Depends(get_supabase_async),
):
    """Test suspected leaked text against every watermark issued for the submission.

    Matches are heuristic and ordered by confidence; an exact zero-width match
    scores highest.
    """
    await require_submission_owner(supabase, submission_id, auth)
    shares = await _safe_supabase_call(
        query_many(
            supabase,
            PARTNER_SUBMISSIONS_TABLE,
            match={"submission_id": submission_id},
            select_fields="partner_id, watermark_data",
        ),
        detail="supabase_submissions_unreachable",
    )

    matches: list[LeakMatch] = []
    present = False
    for share in shares:
        watermark_id = (share.get("watermark_data") or {}).get("watermark_id")
        if not watermark_id:
            continue
        detection = detect_watermark(body.content, watermark_id)
        present = present or detection.detected
        if detection.detected:
            matches.append(
                LeakMatch(
                    partner_id=share["partner_id"],
                    watermark_id=watermark_id,
                    confidence=detection.confidence,
                    techniques=detection.techniques,
                )
            )
    matches.sort(key=lambda m: m.confidence, reverse=True)

    logger.info(
        "audit.leak_check",
        extra={
            "extra": {
                "submission_id": submission_id,
                "candidates": len(shares),
                "matches": len(matches),
                "top_partner": matches[0].partner_id if matches else None,
            }
        },
    )
    return LeakCheckResponse(
        fingerprint=create_document_fingerprint(body.content),
        watermark_present=present,
        matches=matches,
    )


@router.patch("/alerts/{alert_id}", response_model=MessageResponse)
async def update_alert_status(
    body: AlertStatusUpdate,
    alert_id: str = Path(...),
    auth: AuthContext = Depends(require_user()),
    audit: AuditTrail = Depends(get_audit_trail),
    supabase=Depends(get_supabase_async),
):
    alert = await _safe_supabase_call(
        query_one(supabase, ALERTS_TABLE, match={"id": alert_id}, select_fields="id, submission_id"),
        detail="supabase_alerts_unreachable",
    )
    if not alert:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="alert_not_found")
    await require_submission_owner(supabase, alert["submission_id"], auth)

    result = await audit.update_alert_status(alert_id, body.status, auth.user_id, body.notes)
    if not result.success:
        raise _store_unavailable("alert_store_unavailable", result.error)
    return MessageResponse(message=f"Alert marked {body.status.value}")
