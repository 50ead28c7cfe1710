"""Heuristic triggers for suspicious manuscript access.

These functions only say *whether* a rule fired. How severe that is belongs
to the caller's policy (``AccessSettings.alert_severity``).
"""

from __future__ import annotations

import re

from ottowrite.models.access import AccessSession, AnomalySignal, SuspicionReport
from ottowrite.models.enums import AlertType, SessionActionType

__all__ = [
    "detect_suspicious_activity",
    "has_excessive_copy_attempts",
    "has_excessive_download_attempts",
    "is_excessive_duration",
    "is_rapid_access",
    "is_suspicious_user_agent",
]

MAX_SESSION_SECONDS = 4 * 60 * 60
RAPID_ACTION_COUNT = 100
RAPID_WINDOW_SECONDS = 60
MAX_DOWNLOAD_ATTEMPTS = 3
MAX_COPY_ATTEMPTS = 10

_SUSPICIOUS_UA_RE = re.compile(
    r"bot|crawler|spider|scraper|curl|wget|python|java(?!script)|postman|insomnia",
    re.IGNORECASE,
)


def is_suspicious_user_agent(user_agent: str | None) -> bool:
    """Known bot, scraper and HTTP-tool signatures (``java`` but not ``javascript``)."""
    if not user_agent:
        return False
    return _SUSPICIOUS_UA_RE.search(user_agent) is not None


def is_excessive_duration(duration_seconds: int | None) -> bool:
    return duration_seconds is not None and duration_seconds > MAX_SESSION_SECONDS


def is_rapid_access(action_count: int, duration_seconds: int | None) -> bool:
    """More than 100 actions inside a known session shorter than a minute."""
    if duration_seconds is None:
        return False
    return action_count > RAPID_ACTION_COUNT and duration_seconds < RAPID_WINDOW_SECONDS


def has_excessive_download_attempts(attempts: int) -> bool:
    return attempts > MAX_DOWNLOAD_ATTEMPTS


def has_excessive_copy_attempts(attempts: int) -> bool:
    return attempts > MAX_COPY_ATTEMPTS


def detect_suspicious_activity(session: AccessSession) -> SuspicionReport:
    signals: list[AnomalySignal] = []
    action_count = len(session.actions)

    if is_rapid_access(action_count, session.duration):
        signals.append(
            AnomalySignal(
                alert_type=AlertType.rapid_access,
                description="Rapid page viewing detected",
                metadata={"action_count": action_count, "duration_seconds": session.duration},
            )
        )

    downloads = session.count(SessionActionType.download_attempted)
    if has_excessive_download_attempts(downloads):
        signals.append(
            AnomalySignal(
                alert_type=AlertType.unauthorized_action,
                description="Multiple download attempts",
                metadata={"download_attempts": downloads},
            )
        )

    copies = session.count(SessionActionType.copy_attempted)
    if has_excessive_copy_attempts(copies):
        signals.append(
            AnomalySignal(
                alert_type=AlertType.unauthorized_action,
                description="Multiple copy attempts",
                metadata={"copy_attempts": copies},
            )
        )

    if is_excessive_duration(session.duration):
        signals.append(
            AnomalySignal(
                alert_type=AlertType.excessive_duration,
                description="Unusually long session",
                metadata={"duration_seconds": session.duration},
            )
        )

    if is_suspicious_user_agent(session.user_agent):
        signals.append(
            AnomalySignal(
                alert_type=AlertType.suspicious_user_agent,
                description="Automated user agent detected",
                metadata={"user_agent": session.user_agent},
            )
        )

    return SuspicionReport(suspicious=bool(signals), signals=signals)
