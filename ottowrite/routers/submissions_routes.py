"""Sharing manuscripts with partners and the token-authorised manuscript viewer.

Authors (Supabase session) share and revoke; partners reach the viewer with
nothing but the signed access token in the URL.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, Response, status

# Rate limiter exported by main.py
from ottowrite.main import limiter

from ottowrite.models import (
    AccessAction,
    AccessControlRules,
    AccessGrant,
    AccessSession,
    AlertType,
    AnomalySignal,
    AuthContext,
    DrmFlags,
    LogAccessParams,
    ManuscriptSection,
    ManuscriptViewResponse,
    Permission,
    RequestContext,
    RevokeAccessResponse,
    SessionActionType,
    SessionReportRequest,
    SessionReportResponse,
    ShareSubmissionRequest,
    ShareSubmissionResponse,
    SubmissionInfo,
    TokenVerification,
    WatermarkData,
)
from ottowrite.settings import AccessSettings
from ottowrite.utils.access_rules import (
    ACCESS_EXPIRED,
    DEVICE_NOT_AUTHORIZED,
    IP_NOT_AUTHORIZED,
    calculate_session_duration,
    check_access_rules,
    exceeds_session_cap,
    generate_secure_link,
    generate_session_id,
    get_default_permissions,
    get_drm_rules,
    get_drm_security_headers,
    is_unauthorized_action,
)
from ottowrite.utils.access_tokens import AccessTokenService, has_permission, token_reference
from ottowrite.utils.audit import AuditTrail, create_device_fingerprint, get_client_ip
from ottowrite.utils.auth import require_user
from ottowrite.utils.database import insert_data, query_one, update_data
from ottowrite.utils.dependencies import get_audit_trail, get_settings, get_supabase_async, get_token_service
from ottowrite.utils.detection import detect_suspicious_activity, is_suspicious_user_agent
from ottowrite.utils.logger import logger, token_hint
from ottowrite.utils.security_utils import _safe_supabase_call
from ottowrite.utils.utils import parse_timestamp, utcnow
from ottowrite.utils.watermark import (
    apply_watermark,
    build_watermark_metadata,
    generate_watermark_id,
    techniques_for,
)

MANUSCRIPTS_TABLE = "manuscript_submissions"
PARTNER_SUBMISSIONS_TABLE = "partner_submissions"
VIEWER_PATH = "/partners/view"

SECTION_ACTIONS = {
    ManuscriptSection.query: AccessAction.view_query,
    ManuscriptSection.synopsis: AccessAction.view_synopsis,
    ManuscriptSection.samples: AccessAction.view_samples,
}
SECTION_PERMISSIONS = {
    ManuscriptSection.query: Permission.view_query,
    ManuscriptSection.synopsis: Permission.view_synopsis,
    ManuscriptSection.samples: Permission.view_sample,
}
ATTEMPTED_ACTIONS = {
    SessionActionType.download_attempted,
    SessionActionType.print_attempted,
    SessionActionType.copy_attempted,
    SessionActionType.share_attempted,
}

# rule denial reason → (HTTP detail, alert raised)
_RULE_DENIALS = {
    ACCESS_EXPIRED: ("access_expired", AlertType.access_after_expiry),
    IP_NOT_AUTHORIZED: ("ip_not_authorized", AlertType.ip_mismatch),
    DEVICE_NOT_AUTHORIZED: ("device_not_authorized", AlertType.multiple_devices),
}

PERMISSION_NOT_GRANTED = "Permission not granted"

router = APIRouter(prefix="/v1/submissions", tags=["submissions"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def require_submission_owner(supabase, submission_id: str, auth: AuthContext) -> dict:
    """Return the manuscript row if *auth* owns it (admins may read any)."""
    row = await _safe_supabase_call(
        query_one(supabase, MANUSCRIPTS_TABLE, match={"id": submission_id}),
        detail="supabase_submissions_unreachable",
    )
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="submission_not_found")
    if row.get("user_id") != auth.user_id and not auth.is_admin():
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="not_submission_owner")
    return row


def _drm_flags(permissions) -> dict[str, bool]:
    return {
        "allow_download": has_permission(permissions, Permission.download),
        "allow_print": has_permission(permissions, Permission.print),
        "allow_copy": has_permission(permissions, Permission.copy),
    }


def _reported_action(actions) -> AccessAction:
    """Action a refused session report is logged against: its first attempted action, else a read."""
    for item in actions:
        if item.type in ATTEMPTED_ACTIONS:
            return AccessAction(item.type.value)
    return AccessAction.view_query


def _rules_for(share: dict) -> AccessControlRules:
    stored = share.get("access_rules")
    return AccessControlRules(**stored) if stored else get_drm_rules()


class _ViewerRequest:
    """Request metadata recorded with every viewer access attempt."""

    def __init__(self, request: Request, token: str):
        headers = request.headers
        self.token_ref = token_reference(token)
        self.ip_address = get_client_ip(headers) or (request.client.host if request.client else None)
        self.user_agent = headers.get("user-agent")
        self.device_fingerprint = create_device_fingerprint(headers)

    def log_params(self, verification: TokenVerification, action: AccessAction, **kwargs: Any) -> LogAccessParams:
        payload = verification.payload
        return LogAccessParams(
            submission_id=payload.submission_id,
            partner_id=payload.partner_id,
            action=action,
            access_token_id=self.token_ref,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            device_fingerprint=self.device_fingerprint,
            watermark_id=payload.watermark_id,
            **kwargs,
        )


async def _deny(
    audit: AuditTrail,
    settings: AccessSettings,
    viewer: _ViewerRequest,
    verification: TokenVerification,
    action: AccessAction,
    reason: str,
    *,
    status_code: int,
    detail: str,
    alert_type: AlertType | None = None,
    alert_metadata: dict | None = None,
):
    """Log a denied attempt (and optionally raise an alert), then refuse the request."""
    payload = verification.payload
    logged = await audit.log_access(
        viewer.log_params(verification, action, access_granted=False, denial_reason=reason)
    )
    related = [logged.id] if logged.success and logged.id else None
    if alert_type is not None:
        await audit.create_alert(
            payload.submission_id,
            alert_type,
            settings.severity_for(alert_type),
            reason,
            partner_id=payload.partner_id,
            metadata=alert_metadata,
            related_log_ids=related,
        )
    logger.info(
        "viewer.denied",
        extra={
            "extra": {
                "submission_id": payload.submission_id,
                "partner_id": payload.partner_id,
                "reason": reason,
                "audit_logged": logged.success,
            }
        },
    )
    raise HTTPException(status_code=status_code, detail=detail)


async def _verified_share(
    token: str,
    action: AccessAction,
    viewer: _ViewerRequest,
    tokens: AccessTokenService,
    settings: AccessSettings,
    audit: AuditTrail,
    supabase,
) -> tuple[TokenVerification, dict]:
    """Verify the token and its share row; every refusal is audited."""
    verification = tokens.verify(token)
    if not verification.valid:
        if verification.payload is not None:
            await _deny(
                audit,
                settings,
                viewer,
                verification,
                action,
                verification.error or "Invalid or expired access token",
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="token_expired" if verification.expired else "invalid_access_token",
                alert_type=AlertType.access_after_expiry if verification.expired else None,
                alert_metadata={"token": token_hint(token), "error": verification.error},
            )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_access_token")

    payload = verification.payload
    share = await _safe_supabase_call(
        query_one(
            supabase,
            PARTNER_SUBMISSIONS_TABLE,
            match={
                "submission_id": payload.submission_id,
                "partner_id": payload.partner_id,
                "access_token": token,
            },
        ),
        detail="supabase_submissions_unreachable",
    )
    if not share:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="submission_not_found")

    if share.get("access_revoked_at"):
        await _deny(
            audit, settings, viewer, verification, action, "Access has been revoked",
            status_code=status.HTTP_403_FORBIDDEN, detail="access_revoked",
        )

    expires_at = parse_timestamp(share.get("access_expires_at"))
    if expires_at is not None and expires_at < utcnow():
        await _deny(
            audit, settings, viewer, verification, action, ACCESS_EXPIRED,
            status_code=status.HTTP_403_FORBIDDEN, detail="access_expired",
            alert_type=AlertType.access_after_expiry,
        )

    decision = check_access_rules(
        _rules_for(share),
        RequestContext(ip_address=viewer.ip_address, device_fingerprint=viewer.device_fingerprint),
    )
    if not decision.allowed:
        detail, alert_type = _RULE_DENIALS.get(decision.reason, ("access_denied", None))
        await _deny(
            audit, settings, viewer, verification, action, decision.reason or "Access denied",
            status_code=status.HTTP_403_FORBIDDEN, detail=detail,
            alert_type=alert_type,
            alert_metadata={"ip_address": viewer.ip_address, "device_fingerprint": viewer.device_fingerprint},
        )

    return verification, share


def _watermarked(text: str | None, watermark_id: str) -> str | None:
    return apply_watermark(text, watermark_id) if text else text


# ---------------------------------------------------------------------------
# Share / revoke (author)
# ---------------------------------------------------------------------------

@router.post(
    "/{submission_id}/share",
    response_model=ShareSubmissionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def share_submission(
    body: ShareSubmissionRequest,
    submission_id: str = Path(..., description="Manuscript submission ID"),
    auth: AuthContext = Depends(require_user()),
    settings: AccessSettings = Depends(get_settings),
    tokens: AccessTokenService = Depends(get_token_service),
    supabase=Depends(get_supabase_async),
):
    """Issue a watermarked, token-authorised share of a submission for one partner.

    Re-sharing with the same partner replaces the previous token and clears
    any revocation.
    """
    await require_submission_owner(supabase, submission_id, auth)

    permissions = frozenset(body.permissions) if body.permissions is not None else get_default_permissions()
    watermark_id = generate_watermark_id(submission_id, body.partner_id, auth.user_id)
    issued = tokens.issue(
        AccessGrant(
            submission_id=submission_id,
            partner_id=body.partner_id,
            user_id=auth.user_id,
            watermark_id=watermark_id,
            permissions=permissions,
        ),
        body.expiry_days,
    )
    watermark = WatermarkData(
        watermark_id=watermark_id,
        partner_id=body.partner_id,
        submission_id=submission_id,
        user_id=auth.user_id,
        timestamp=issued.payload.created_at,
        format=body.format,
        technique=techniques_for(body.format),
    )
    rules = body.access_rules or get_drm_rules()

    row = {
        "submission_id": submission_id,
        "partner_id": body.partner_id,
        "user_id": auth.user_id,
        "watermark_data": {**watermark.model_dump(mode="json"), "metadata": build_watermark_metadata(watermark)},
        "access_token": issued.token,
        "access_expires_at": issued.expires_at.isoformat(),
        "access_revoked_at": None,
        "access_rules": rules.model_dump(mode="json"),
    }

    existing = await _safe_supabase_call(
        query_one(
            supabase,
            PARTNER_SUBMISSIONS_TABLE,
            match={"submission_id": submission_id, "partner_id": body.partner_id},
            select_fields="id",
        ),
        detail="supabase_submissions_unreachable",
    )
    if existing:
        rows = await _safe_supabase_call(
            update_data(supabase, PARTNER_SUBMISSIONS_TABLE, row, {"id": existing["id"]}),
            detail="supabase_submissions_unreachable",
        )
        share_id = existing["id"]
    else:
        rows = await _safe_supabase_call(
            insert_data(supabase, PARTNER_SUBMISSIONS_TABLE, row),
            detail="supabase_submissions_unreachable",
        )
        share_id = rows[0].get("id") if rows else None

    logger.info(
        "submission.shared",
        extra={
            "extra": {
                "submission_id": submission_id,
                "partner_id": body.partner_id,
                "watermark_id": watermark_id,
                "reshare": bool(existing),
            }
        },
    )

    return ShareSubmissionResponse(
        partner_submission_id=share_id,
        token=issued.token,
        expires_at=issued.expires_at,
        watermark_id=watermark_id,
        secure_link=generate_secure_link(settings.viewer_base_url + VIEWER_PATH, issued.token, body.partner_id),
        permissions=sorted(permissions, key=lambda p: p.value),
    )


@router.post("/{submission_id}/partners/{partner_id}/revoke", response_model=RevokeAccessResponse)
async def revoke_partner_access(
    submission_id: str = Path(...),
    partner_id: str = Path(...),
    auth: AuthContext = Depends(require_user()),
    supabase=Depends(get_supabase_async),
):
    """Revoke a partner's access. The token stays cryptographically valid; the
    viewer refuses it because the share row is marked revoked.
    """
    await require_submission_owner(supabase, submission_id, auth)

    revoked_at = utcnow()
    rows = await _safe_supabase_call(
        update_data(
            supabase,
            PARTNER_SUBMISSIONS_TABLE,
            {"access_revoked_at": revoked_at.isoformat()},
            {"submission_id": submission_id, "partner_id": partner_id},
        ),
        detail="supabase_submissions_unreachable",
    )
    if not rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="share_not_found")

    logger.info(
        "submission.access_revoked",
        extra={"extra": {"submission_id": submission_id, "partner_id": partner_id, "revoked_by": auth.user_id}},
    )
    return RevokeAccessResponse(submission_id=submission_id, partner_id=partner_id, revoked_at=revoked_at)


# ---------------------------------------------------------------------------
# Viewer (partner, token in URL)
# ---------------------------------------------------------------------------

@router.get("/view/{token}", response_model=ManuscriptViewResponse)
@limiter.limit("30/minute")
async def view_manuscript(
    request: Request,
    response: Response,
    token: str = Path(..., min_length=1),
    section: ManuscriptSection = Query(ManuscriptSection.query),
    settings: AccessSettings = Depends(get_settings),
    tokens: AccessTokenService = Depends(get_token_service),
    audit: AuditTrail = Depends(get_audit_trail),
    supabase=Depends(get_supabase_async),
):
    """Serve the watermarked sections the token grants.

    Fails closed: if the access log write fails the content is not served.
    """
    action = SECTION_ACTIONS[section]
    viewer = _ViewerRequest(request, token)
    verification, share = await _verified_share(token, action, viewer, tokens, settings, audit, supabase)
    payload = verification.payload

    if not has_permission(payload.permissions, SECTION_PERMISSIONS[section]):
        await _deny(
            audit, settings, viewer, verification, action, PERMISSION_NOT_GRANTED,
            status_code=status.HTTP_403_FORBIDDEN, detail="permission_denied",
        )

    if is_suspicious_user_agent(viewer.user_agent):
        await audit.create_alert(
            payload.submission_id,
            AlertType.suspicious_user_agent,
            settings.severity_for(AlertType.suspicious_user_agent),
            f"Suspicious user agent detected: {viewer.user_agent[:100]}",
            partner_id=payload.partner_id,
            metadata={"user_agent": viewer.user_agent, "ip_address": viewer.ip_address},
        )

    logged = await audit.log_access(
        viewer.log_params(verification, action, drm_flags=_drm_flags(payload.permissions), access_granted=True)
    )
    if not logged.success:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="audit_unavailable")

    now_iso = utcnow().isoformat()
    tracking = {"last_viewed_at": now_iso, "view_count": (share.get("view_count") or 0) + 1}
    if not share.get("viewed_by_partner"):
        tracking.update({"viewed_by_partner": True, "first_viewed_at": now_iso})
    await _safe_supabase_call(
        update_data(supabase, PARTNER_SUBMISSIONS_TABLE, tracking, {"id": share["id"]}),
        detail="supabase_submissions_unreachable",
    )

    manuscript = await _safe_supabase_call(
        query_one(supabase, MANUSCRIPTS_TABLE, match={"id": payload.submission_id}),
        detail="supabase_submissions_unreachable",
    )
    if not manuscript:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="submission_not_found")

    perms = payload.permissions
    wm_id = payload.watermark_id
    result = ManuscriptViewResponse(
        submission=SubmissionInfo(
            id=payload.submission_id,
            title=manuscript.get("title"),
            genre=manuscript.get("genre"),
            word_count=manuscript.get("word_count"),
            type=manuscript.get("type"),
        ),
        section=section,
        watermark_id=wm_id,
        permissions=sorted(perms, key=lambda p: p.value),
        drm=DrmFlags(**_drm_flags(perms)),
    )
    if has_permission(perms, Permission.view_query):
        result.query_letter = _watermarked(manuscript.get("query_letter"), wm_id)
    if has_permission(perms, Permission.view_synopsis):
        result.synopsis = _watermarked(manuscript.get("synopsis"), wm_id)
    if has_permission(perms, Permission.view_sample):
        result.sample_pages = _watermarked(manuscript.get("sample_pages_content"), wm_id)
        result.sample_pages_count = manuscript.get("sample_pages_count")
    if has_permission(perms, Permission.view_full):
        result.full_manuscript_available = bool(manuscript.get("full_manuscript_available"))

    response.headers.update(get_drm_security_headers())
    return result


@router.post("/view/{token}/session", response_model=SessionReportResponse)
@limiter.limit("30/minute")
async def report_viewer_session(
    request: Request,
    body: SessionReportRequest,
    token: str = Path(..., min_length=1),
    settings: AccessSettings = Depends(get_settings),
    tokens: AccessTokenService = Depends(get_token_service),
    audit: AuditTrail = Depends(get_audit_trail),
    supabase=Depends(get_supabase_async),
):
    """End-of-session report from the viewer.

    Attempted download/print/copy/share actions are logged with their
    grant/deny outcome, the detection rules run over the whole session and
    every rule that fires becomes an alert.
    """
    viewer = _ViewerRequest(request, token)
    verification, share = await _verified_share(
        token, _reported_action(body.actions), viewer, tokens, settings, audit, supabase
    )
    payload = verification.payload

    # naive client timestamps are read as UTC
    start_time = parse_timestamp(body.start_time)
    end_time = parse_timestamp(body.end_time) or utcnow()
    duration = calculate_session_duration(start_time, end_time)
    if duration < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_session_window")

    session = AccessSession(
        session_id=body.session_id or generate_session_id(),
        submission_id=payload.submission_id,
        partner_id=payload.partner_id,
        start_time=start_time,
        end_time=end_time,
        duration=duration,
        ip_address=viewer.ip_address,
        user_agent=viewer.user_agent,
        device_fingerprint=viewer.device_fingerprint,
        pages_viewed=body.pages_viewed,
        actions=body.actions,
    )

    logged_ids: list[str] = []
    attempted = 0
    denied: list[AccessAction] = []
    for item in session.actions:
        if item.type not in ATTEMPTED_ACTIONS:
            continue
        action = AccessAction(item.type.value)
        unauthorized = is_unauthorized_action(action, payload.permissions)
        logged = await audit.log_access(
            viewer.log_params(
                verification,
                action,
                drm_flags=_drm_flags(payload.permissions),
                access_granted=not unauthorized,
                denial_reason=PERMISSION_NOT_GRANTED if unauthorized else None,
                session_duration_seconds=duration,
            )
        )
        if not logged.success:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="audit_unavailable")
        attempted += 1
        if logged.id:
            logged_ids.append(logged.id)
        if unauthorized:
            denied.append(action)

    report = detect_suspicious_activity(session)
    signals = list(report.signals)
    if denied and not any(s.alert_type == AlertType.unauthorized_action for s in signals):
        signals.append(
            AnomalySignal(
                alert_type=AlertType.unauthorized_action,
                description="Attempted action without permission",
                metadata={"actions": sorted({a.value for a in denied})},
            )
        )

    results = await audit.raise_alerts(
        signals,
        submission_id=payload.submission_id,
        partner_id=payload.partner_id,
        severity_for=settings.severity_for,
        related_log_ids=logged_ids or None,
    )

    return SessionReportResponse(
        session_id=session.session_id,
        duration_seconds=duration,
        suspicious=bool(signals),
        reasons=[s.description for s in signals],
        alerts_raised=sum(1 for r in results if r.success),
        attempted_actions_logged=attempted,
        denied_actions=denied,
        session_cap_exceeded=exceeds_session_cap(_rules_for(share), duration),
    )
