from datetime import datetime, timedelta, timezone

import pytest

from ottowrite.models import AccessSession, AlertType, SessionAction, SessionActionType
from ottowrite.utils.detection import (
    detect_suspicious_activity,
    has_excessive_copy_attempts,
    has_excessive_download_attempts,
    is_excessive_duration,
    is_rapid_access,
    is_suspicious_user_agent,
)

START = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)


def _session(duration=600, actions=(), user_agent="Mozilla/5.0 (Macintosh)"):
    items = [SessionAction(type=kind, timestamp=START) for kind, count in actions for _ in range(count)]
    return AccessSession(
        session_id="s1",
        submission_id="sub_1",
        partner_id="partner_1",
        start_time=START,
        end_time=START + timedelta(seconds=duration or 0),
        duration=duration,
        user_agent=user_agent,
        actions=items,
    )


@pytest.mark.parametrize(
    "ua, expected",
    [
        ("Googlebot/2.1", True),
        ("curl/8.4.0", True),
        ("python-requests/2.31", True),
        ("Java/17.0.2", True),
        ("PostmanRuntime/7.36", True),
        ("Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 Chrome/120", False),
        ("Mozilla/5.0 javascript-enabled", False),
        (None, False),
        ("", False),
    ],
)
def test_suspicious_user_agent(ua, expected):
    assert is_suspicious_user_agent(ua) is expected


def test_thresholds():
    assert not is_excessive_duration(4 * 3600)
    assert is_excessive_duration(4 * 3600 + 1)
    assert not is_excessive_duration(None)

    assert is_rapid_access(101, 59)
    assert not is_rapid_access(100, 30)
    assert not is_rapid_access(500, 60)
    assert not is_rapid_access(500, None)

    assert not has_excessive_download_attempts(3)
    assert has_excessive_download_attempts(4)
    assert not has_excessive_copy_attempts(10)
    assert has_excessive_copy_attempts(11)


def test_quiet_session():
    report = detect_suspicious_activity(_session(actions=[(SessionActionType.scroll, 40)]))
    assert not report.suspicious
    assert report.signals == []


def test_every_rule_fires():
    report = detect_suspicious_activity(
        _session(
            duration=30,
            actions=[
                (SessionActionType.view, 100),
                (SessionActionType.download_attempted, 4),
                (SessionActionType.copy_attempted, 11),
            ],
            user_agent="scrapy-bot/1.0",
        )
    )
    assert report.suspicious
    assert report.reasons == [
        "Rapid page viewing detected",
        "Multiple download attempts",
        "Multiple copy attempts",
        "Automated user agent detected",
    ]
    assert [s.alert_type for s in report.signals] == [
        AlertType.rapid_access,
        AlertType.unauthorized_action,
        AlertType.unauthorized_action,
        AlertType.suspicious_user_agent,
    ]


def test_long_session():
    report = detect_suspicious_activity(_session(duration=5 * 3600))
    assert report.reasons == ["Unusually long session"]
    assert report.signals[0].metadata["duration_seconds"] == 5 * 3600


def test_unknown_duration_is_not_rapid():
    report = detect_suspicious_activity(_session(duration=None, actions=[(SessionActionType.view, 500)]))
    assert not report.suspicious
