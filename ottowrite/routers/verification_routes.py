from __future__ import annotations

"""Partner verification: credential submission, listing and admin review."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from ottowrite.models import (
    AuthContext,
    ReviewDecision,
    VerificationLevel,
    VerificationRequest,
    VerificationRequestStatus,
    VerificationReview,
    VerificationReviewResponse,
    VerificationStatus,
    VerificationSubmitRequest,
    VerificationSubmitResponse,
)
from ottowrite.utils.auth import require_admin, require_user
from ottowrite.utils.database import call_rpc, insert_data, query_many, query_one, update_data
from ottowrite.utils.dependencies import get_supabase_async
from ottowrite.utils.logger import logger
from ottowrite.utils.partner_verification import (
    calculate_verification_score,
    get_recommended_level,
    is_valid_business_email,
    is_valid_business_website,
    should_auto_verify,
)
from ottowrite.utils.security_utils import _safe_supabase_call
from ottowrite.utils.utils import utcnow

PARTNERS_TABLE = "submission_partners"
REQUESTS_TABLE = "partner_verification_requests"

# Credential columns copied verbatim from the request body into the row
_CREDENTIAL_FIELDS = (
    "business_name",
    "website",
    "email",
    "phone",
    "address",
    "industry_associations",
    "membership_proof",
    "sales_history",
    "client_list",
    "linkedin",
    "twitter",
    "publishers_marketplace",
    "query_tracker",
    "manuscript_wish_list",
    "documents",
    "notes",
)

_REVIEWABLE = {VerificationRequestStatus.pending.value, VerificationRequestStatus.more_info_needed.value}

router = APIRouter(prefix="/v1/partners/verification", tags=["partner-verification"])


@router.post("", response_model=VerificationSubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_verification_request(
    body: VerificationSubmitRequest,
    auth: AuthContext = Depends(require_user()),
    supabase=Depends(get_supabase_async),
):
    """Score a partner's credentials and file a verification request.

    Major publisher domains are auto-verified at ``basic``; everything else
    waits for an admin review.
    """
    partner = await _safe_supabase_call(
        query_one(supabase, PARTNERS_TABLE, match={"id": body.partner_id}, select_fields="id"),
        detail="supabase_partners_unreachable",
    )
    if not partner:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="partner_not_found")

    pending = await _safe_supabase_call(
        query_one(
            supabase,
            REQUESTS_TABLE,
            match={"partner_id": body.partner_id, "status": VerificationRequestStatus.pending.value},
            select_fields="id",
        ),
        detail="supabase_verification_unreachable",
    )
    if pending:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="verification_already_pending")

    if not is_valid_business_email(body.email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_business_email")
    if not is_valid_business_website(body.website):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_business_website")

    score = calculate_verification_score(body)
    recommended = get_recommended_level(score)
    auto_verified = should_auto_verify(body.email, body.website)
    now_iso = utcnow().isoformat()

    row = {field: getattr(body, field) for field in _CREDENTIAL_FIELDS}
    row.update(
        {
            "partner_id": body.partner_id,
            "requested_by": auth.user_id,
            "status": (
                VerificationRequestStatus.approved if auto_verified else VerificationRequestStatus.pending
            ).value,
            "level": (VerificationLevel.basic if auto_verified else recommended),
            "verification_score": score,
            "reviewed_by": auth.user_id if auto_verified else None,
            "reviewed_at": now_iso if auto_verified else None,
        }
    )
    if row["level"] is not None:
        row["level"] = row["level"].value

    inserted = await _safe_supabase_call(
        insert_data(supabase, REQUESTS_TABLE, row),
        detail="supabase_verification_unreachable",
    )
    stored = inserted[0] if inserted else row

    if auto_verified:
        partner_update = {
            "verification_status": VerificationStatus.verified.value,
            "verification_level": VerificationLevel.basic.value,
            "verified_at": now_iso,
            "verified_by": auth.user_id,
        }
    else:
        partner_update = {"verification_status": VerificationStatus.pending.value}
    await _safe_supabase_call(
        update_data(supabase, PARTNERS_TABLE, partner_update, {"id": body.partner_id}),
        detail="supabase_partners_unreachable",
    )

    logger.info(
        "partner_verification.submitted",
        extra={
            "extra": {
                "partner_id": body.partner_id,
                "score": score,
                "recommended_level": recommended.value if recommended else None,
                "auto_verified": auto_verified,
            }
        },
    )

    return VerificationSubmitResponse(
        message=(
            "Verification approved automatically (major publisher)"
            if auto_verified
            else "Verification request submitted for review"
        ),
        request=VerificationRequest(**stored),
        auto_verified=auto_verified,
        verification_score=score,
        recommended_level=recommended,
    )


@router.get("", response_model=List[VerificationRequest])
async def list_verification_requests(
    request_status: Optional[VerificationRequestStatus] = Query(None, alias="status"),
    auth: AuthContext = Depends(require_user()),
    supabase=Depends(get_supabase_async),
):
    """Admins see every request; everyone else only the ones they filed."""
    filters: dict = {}
    if not auth.is_admin():
        filters["requested_by"] = auth.user_id
    if request_status is not None:
        filters["status"] = request_status.value

    rows = await _safe_supabase_call(
        query_many(supabase, REQUESTS_TABLE, match=filters, order_by=("created_at", True)),
        detail="supabase_verification_unreachable",
    )
    return [VerificationRequest(**row) for row in rows]


@router.post("/{request_id}/review", response_model=VerificationReviewResponse)
async def review_verification_request(
    review: VerificationReview,
    request_id: str = Path(...),
    auth: AuthContext = Depends(require_admin()),
    supabase=Depends(get_supabase_async),
):
    existing = await _safe_supabase_call(
        query_one(supabase, REQUESTS_TABLE, match={"id": request_id}, select_fields="id, partner_id, status"),
        detail="supabase_verification_unreachable",
    )
    if not existing:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="verification_request_not_found")
    if existing.get("status") not in _REVIEWABLE:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="verification_already_reviewed")

    if review.decision == ReviewDecision.approve:
        if review.level is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="level_required")
        fn = "approve_partner_verification"
        params = {
            "p_request_id": request_id,
            "p_level": review.level.value,
            "p_admin_id": auth.user_id,
            "p_notes": review.notes,
        }
        result = VerificationReviewResponse(
            message=f"Partner verified at {review.level.value} level",
            status=VerificationRequestStatus.approved,
            level=review.level,
        )
    elif review.decision == ReviewDecision.reject:
        if not review.rejection_reason:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="rejection_reason_required")
        fn = "reject_partner_verification"
        params = {
            "p_request_id": request_id,
            "p_admin_id": auth.user_id,
            "p_reason": review.rejection_reason,
            "p_red_flags": review.red_flags,
        }
        result = VerificationReviewResponse(
            message="Verification request rejected",
            status=VerificationRequestStatus.rejected,
            reason=review.rejection_reason,
        )
    else:
        if not review.additional_info_needed:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="additional_info_required")
        fn = "request_verification_info"
        params = {
            "p_request_id": request_id,
            "p_admin_id": auth.user_id,
            "p_info_needed": review.additional_info_needed,
        }
        result = VerificationReviewResponse(
            message="Additional information requested",
            status=VerificationRequestStatus.more_info_needed,
            reason=review.additional_info_needed,
        )

    await _safe_supabase_call(call_rpc(supabase, fn, params), detail="supabase_verification_unreachable")

    logger.info(
        "partner_verification.reviewed",
        extra={
            "extra": {
                "request_id": request_id,
                "partner_id": existing.get("partner_id"),
                "decision": review.decision.value,
                "reviewer": auth.user_id,
            }
        },
    )
    return result
