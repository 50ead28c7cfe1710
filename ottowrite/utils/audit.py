"""Manuscript access audit trail: append-only access log plus alert store.

Every ``AuditTrail`` method returns a result model. Store failures are logged
and come back as ``success=False`` so the caller can decide to fail closed;
nothing here retries.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping, Optional

from ottowrite.models.access import (
    AlertsResult,
    AnomalySignal,
    HistoryResult,
    LogAccessParams,
    StoreResult,
    SummaryResult,
)
from ottowrite.models.db import AccessLogEntry, AccessSummary, SuspiciousActivityAlert
from ottowrite.models.enums import AlertSeverity, AlertStatus, AlertType
from ottowrite.utils.database import call_rpc, insert_data, query_many, query_one
from ottowrite.utils.logger import logger
from ottowrite.utils.utils import utcnow

ACCESS_LOGS_TABLE = "manuscript_access_logs"
ALERTS_TABLE = "suspicious_activity_alerts"
SUMMARY_VIEW = "manuscript_access_summary"

HISTORY_FIELDS = (
    "id, submission_id, partner_id, partner_name, partner_email, action, accessed_at, "
    "ip_address, location_country, session_duration_seconds, access_granted, denial_reason"
)

_FINGERPRINT_HEADERS = (
    "user-agent",
    "accept-language",
    "accept-encoding",
    "sec-ch-ua-platform",
    "sec-ch-ua-mobile",
)
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

_SUMMARY_COUNTERS = (
    "total_accesses",
    "unique_partners",
    "unique_ips",
    "unique_devices",
    "query_views",
    "synopsis_views",
    "sample_views",
    "download_attempts",
    "print_attempts",
    "copy_attempts",
    "denied_accesses",
)


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------

def _lower_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {k.lower(): v for k, v in headers.items()}


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def create_device_fingerprint(headers: Mapping[str, str]) -> str:
    """Weak correlation id for a browser: ``fp_`` + base36 of a 32-bit rolling hash.

    Collisions are expected. Never use this where an unguessable id is needed.
    """
    lowered = _lower_headers(headers)
    joined = "|".join(v for v in (lowered.get(h) for h in _FINGERPRINT_HEADERS) if v)

    raw = joined.encode("utf-16-le")
    h = 0
    for i in range(0, len(raw), 2):
        h = _to_int32(h * 31 + int.from_bytes(raw[i:i + 2], "little"))
    return f"fp_{_base36(abs(h))}"


def get_client_ip(headers: Mapping[str, str]) -> Optional[str]:
    lowered = _lower_headers(headers)
    forwarded = lowered.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return lowered.get("x-real-ip") or None


def _returned_id(data: Any) -> Optional[str]:
    """PostgREST returns a scalar for ``returns uuid`` and a list of rows otherwise."""
    if isinstance(data, list):
        data = data[0] if data else None
    if isinstance(data, dict):
        data = data.get("id") or next(iter(data.values()), None)
    return str(data) if data is not None else None


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------

class AuditTrail:
    """Access log and suspicious-activity alerts for manuscript submissions."""

    def __init__(self, supabase):
        self._supabase = supabase

    async def log_access(self, params: LogAccessParams) -> StoreResult:
        """Append one access attempt to ``manuscript_access_logs``; never updates rows.

        ``accessed_at`` is left to the column default so the store clock orders the log.
        """
        row = {
            "submission_id": params.submission_id,
            "access_token_id": params.access_token_id,
            "partner_id": params.partner_id,
            "action": params.action.value,
            "ip_address": params.ip_address,
            "user_agent": params.user_agent,
            "device_fingerprint": params.device_fingerprint,
            "watermark_id": params.watermark_id,
            "drm_flags": params.drm_flags,
            "access_granted": params.access_granted,
            "denial_reason": params.denial_reason,
            "session_duration_seconds": params.session_duration_seconds,
        }
        try:
            data = await insert_data(self._supabase, ACCESS_LOGS_TABLE, row)
        except Exception as exc:
            logger.error(
                "audit.log_failed",
                extra={
                    "extra": {
                        "submission_id": params.submission_id,
                        "partner_id": params.partner_id,
                        "action": params.action.value,
                        "error": str(exc),
                    }
                },
            )
            return StoreResult(success=False, error=str(exc) or "Unknown error")
        return StoreResult(success=True, id=_returned_id(data))

    async def create_alert(
        self,
        submission_id: str,
        alert_type: AlertType,
        severity: AlertSeverity,
        description: str,
        partner_id: Optional[str] = None,
        metadata: Optional[dict] = None,
        related_log_ids: Optional[list[str]] = None,
    ) -> StoreResult:
        row = {
            "submission_id": submission_id,
            "partner_id": partner_id,
            "alert_type": alert_type.value,
            "severity": severity.value,
            "description": description,
            "metadata": metadata,
            "related_log_ids": related_log_ids,
            "status": AlertStatus.new.value,
            "detected_at": utcnow().isoformat(),
        }
        try:
            rows = await insert_data(self._supabase, ALERTS_TABLE, row)
        except Exception as exc:
            logger.error(
                "audit.alert_failed",
                extra={"extra": {"submission_id": submission_id, "alert_type": alert_type.value, "error": str(exc)}},
            )
            return StoreResult(success=False, error=str(exc) or "Unknown error")

        logger.warning(
            "audit.alert_raised",
            extra={
                "extra": {
                    "submission_id": submission_id,
                    "partner_id": partner_id,
                    "alert_type": alert_type.value,
                    "severity": severity.value,
                }
            },
        )
        return StoreResult(success=True, id=_returned_id(rows))

    async def raise_alerts(
        self,
        signals: Iterable[AnomalySignal],
        *,
        submission_id: str,
        partner_id: Optional[str],
        severity_for: Callable[[AlertType], AlertSeverity],
        related_log_ids: Optional[list[str]] = None,
    ) -> list[StoreResult]:
        """Persist one alert per fired rule, severity chosen by *severity_for*."""
        results = []
        for signal in signals:
            results.append(
                await self.create_alert(
                    submission_id,
                    signal.alert_type,
                    severity_for(signal.alert_type),
                    signal.description,
                    partner_id=partner_id,
                    metadata=signal.metadata or None,
                    related_log_ids=related_log_ids,
                )
            )
        return results

    async def get_access_history(self, submission_id: str, limit: int = 50) -> HistoryResult:
        """Newest first, including denied attempts and why they were denied."""
        try:
            rows = await query_many(
                self._supabase,
                ACCESS_LOGS_TABLE,
                match={"submission_id": submission_id},
                order_by=("accessed_at", True),
                select_fields=HISTORY_FIELDS,
                limit=limit,
            )
            logs = [AccessLogEntry(**row) for row in rows]
        except Exception as exc:
            logger.error("audit.history_failed", extra={"extra": {"submission_id": submission_id, "error": str(exc)}})
            return HistoryResult(success=False, error=str(exc) or "Unknown error")
        return HistoryResult(success=True, logs=logs)

    async def get_alerts(self, submission_id: str, status: Optional[AlertStatus] = None) -> AlertsResult:
        try:
            rows = await call_rpc(
                self._supabase,
                "get_submission_alerts",
                {"p_submission_id": submission_id, "p_status": status.value if status else None},
            )
            alerts = [SuspiciousActivityAlert(**{**row, "submission_id": submission_id}) for row in rows or []]
        except Exception as exc:
            logger.error("audit.alerts_failed", extra={"extra": {"submission_id": submission_id, "error": str(exc)}})
            return AlertsResult(success=False, error=str(exc) or "Unknown error")
        return AlertsResult(success=True, alerts=alerts)

    async def get_access_summary(self, submission_id: str) -> SummaryResult:
        """Aggregate for one submission; a zeroed summary when nothing was logged yet."""
        try:
            row = await query_one(self._supabase, SUMMARY_VIEW, match={"submission_id": submission_id})
        except Exception as exc:
            logger.error("audit.summary_failed", extra={"extra": {"submission_id": submission_id, "error": str(exc)}})
            return SummaryResult(success=False, error=str(exc) or "Unknown error")

        if not row:
            return SummaryResult(success=True, summary=AccessSummary(submission_id=submission_id))

        counters = {k: row.get(k) or 0 for k in _SUMMARY_COUNTERS}
        summary = AccessSummary(
            **counters,
            submission_id=row.get("submission_id") or submission_id,
            last_accessed=row.get("last_accessed"),
            first_accessed=row.get("first_accessed"),
            avg_session_duration=row.get("avg_session_duration"),
        )
        return SummaryResult(success=True, summary=summary)

    async def update_alert_status(
        self,
        alert_id: str,
        status: AlertStatus,
        reviewer_id: str,
        notes: Optional[str] = None,
    ) -> StoreResult:
        """Move an alert through the review workflow. Re-opening is not prevented."""
        try:
            await call_rpc(
                self._supabase,
                "update_alert_status",
                {
                    "p_alert_id": alert_id,
                    "p_status": status.value,
                    "p_reviewer_id": reviewer_id,
                    "p_notes": notes,
                },
            )
        except Exception as exc:
            logger.error("audit.alert_update_failed", extra={"extra": {"alert_id": alert_id, "error": str(exc)}})
            return StoreResult(success=False, error=str(exc) or "Unknown error")
        return StoreResult(success=True, id=alert_id)
