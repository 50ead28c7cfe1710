from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import pytest

from ottowrite.models import AccessAction, AccessControlRules, Permission, RequestContext, SessionActionType
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
    get_full_access_permissions,
    is_unauthorized_action,
    required_permission,
)

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def _ctx(**kwargs):
    return RequestContext(current_time=NOW, **kwargs)


def test_no_rules_allows():
    assert check_access_rules(AccessControlRules(), _ctx()).allowed


def test_expiry_date():
    rules = AccessControlRules(expiry_date=NOW - timedelta(seconds=1))
    decision = check_access_rules(rules, _ctx())
    assert not decision.allowed
    assert decision.reason == ACCESS_EXPIRED

    assert check_access_rules(AccessControlRules(expiry_date=NOW), _ctx()).allowed


def test_naive_expiry_treated_as_utc():
    rules = AccessControlRules(expiry_date=datetime(2025, 5, 31))
    assert check_access_rules(rules, _ctx()).reason == ACCESS_EXPIRED


def test_ip_allow_list():
    rules = AccessControlRules(ip_restrictions=["203.0.113.7"])
    assert check_access_rules(rules, _ctx(ip_address="203.0.113.7")).allowed
    assert check_access_rules(rules, _ctx(ip_address="198.51.100.1")).reason == IP_NOT_AUTHORIZED


def test_missing_ip_denied_when_list_present():
    rules = AccessControlRules(ip_restrictions=["203.0.113.7"])
    assert check_access_rules(rules, _ctx()).reason == IP_NOT_AUTHORIZED


def test_empty_lists_mean_unrestricted():
    rules = AccessControlRules(ip_restrictions=[], device_restrictions=[])
    assert check_access_rules(rules, _ctx()).allowed


def test_device_allow_list():
    rules = AccessControlRules(device_restrictions=["fp_abc"])
    assert check_access_rules(rules, _ctx(device_fingerprint="fp_abc")).allowed
    assert check_access_rules(rules, _ctx(device_fingerprint="fp_xyz")).reason == DEVICE_NOT_AUTHORIZED
    assert check_access_rules(rules, _ctx()).reason == DEVICE_NOT_AUTHORIZED


def test_first_failing_check_wins():
    rules = AccessControlRules(
        expiry_date=NOW - timedelta(days=1), ip_restrictions=["203.0.113.7"], device_restrictions=["fp_abc"]
    )
    assert check_access_rules(rules, _ctx(ip_address="1.1.1.1")).reason == ACCESS_EXPIRED


@pytest.mark.parametrize(
    "action, needed",
    [
        (AccessAction.download_attempted, "download"),
        (AccessAction.print_attempted, "print"),
        (SessionActionType.copy_attempted, "copy"),
        (AccessAction.share_attempted, "share"),
        (AccessAction.view_query, None),
    ],
)
def test_required_permission(action, needed):
    assert required_permission(action) == needed


def test_unauthorized_actions():
    perms = get_full_access_permissions()
    assert is_unauthorized_action(AccessAction.download_attempted, perms)
    assert not is_unauthorized_action(AccessAction.download_attempted, perms | {Permission.download})
    # no permission grants sharing
    assert is_unauthorized_action(AccessAction.share_attempted, set(Permission))
    assert not is_unauthorized_action(AccessAction.view_samples, set())


def test_presets():
    default = get_default_permissions()
    assert Permission.view_full not in default
    assert Permission.download not in default
    assert get_full_access_permissions() == default | {Permission.view_full}

    drm = get_drm_rules()
    assert not (drm.allow_download or drm.allow_print or drm.allow_copy or drm.allow_screenshots)
    assert drm.max_view_duration == 120


def test_session_cap():
    drm = get_drm_rules()
    assert not exceeds_session_cap(drm, 120 * 60)
    assert exceeds_session_cap(drm, 120 * 60 + 1)
    assert not exceeds_session_cap(AccessControlRules(), 10**6)
    assert not exceeds_session_cap(drm, None)


def test_secure_link():
    link = generate_secure_link("https://app.example.com/partners/view?lang=en", "tok.en", "partner 1")
    parts = urlsplit(link)
    query = parse_qs(parts.query)
    assert parts.path == "/partners/view"
    assert query == {"lang": ["en"], "token": ["tok.en"], "partner": ["partner 1"]}


def test_secure_link_requires_absolute_base():
    with pytest.raises(ValueError):
        generate_secure_link("/partners/view", "tok", "p")


def test_session_helpers():
    sid = generate_session_id()
    assert len(sid) == 24
    assert sid != generate_session_id()

    start = NOW
    assert calculate_session_duration(start, start + timedelta(seconds=90, milliseconds=900)) == 90


def test_drm_headers():
    headers = get_drm_security_headers()
    assert headers["X-Frame-Options"] == "DENY"
    assert headers["X-Content-Type-Options"] == "nosniff"
    assert "frame-ancestors 'none'" in headers["Content-Security-Policy"]
