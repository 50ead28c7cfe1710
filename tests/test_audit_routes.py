from fastapi import status

from tests.conftest import (
    ADMIN,
    OTHER_AUTHOR,
    PARTNER,
    SUBMISSION,
    api_client,
    auth_headers,
    share,
    supabase,
)


def _view(api_client, token, section="query"):
    return api_client.get(f"/v1/submissions/view/{token}", params={"section": section})


def test_access_history_lists_views(api_client, supabase):
    body = share(api_client)
    _view(api_client, body["token"])
    _view(api_client, body["token"], section="synopsis")

    resp = api_client.get(f"/v1/submissions/{SUBMISSION}/access-history", headers=auth_headers())
    assert resp.status_code == 200
    actions = sorted(entry["action"] for entry in resp.json())
    assert actions == ["view_query", "view_synopsis"]


def test_access_history_reports_denied_attempts(api_client, supabase):
    body = share(api_client, permissions=["view_query"])
    assert _view(api_client, body["token"]).status_code == 200
    assert _view(api_client, body["token"], section="synopsis").status_code == status.HTTP_403_FORBIDDEN

    resp = api_client.get(f"/v1/submissions/{SUBMISSION}/access-history", headers=auth_headers())
    assert resp.status_code == 200
    by_action = {entry["action"]: entry for entry in resp.json()}
    assert by_action["view_query"]["access_granted"] is True
    assert by_action["view_query"]["denial_reason"] is None
    assert by_action["view_synopsis"]["access_granted"] is False
    assert by_action["view_synopsis"]["denial_reason"] == "Permission not granted"


def test_access_history_owner_only(api_client):
    resp = api_client.get(f"/v1/submissions/{SUBMISSION}/access-history", headers=auth_headers(OTHER_AUTHOR))
    assert resp.status_code == status.HTTP_403_FORBIDDEN


def test_admin_reads_any_submission(api_client):
    resp = api_client.get(f"/v1/submissions/{SUBMISSION}/access-history", headers=auth_headers(ADMIN))
    assert resp.status_code == 200


def test_access_history_store_down(api_client, supabase):
    supabase.fail_on.add("manuscript_access_logs")
    resp = api_client.get(f"/v1/submissions/{SUBMISSION}/access-history", headers=auth_headers())
    assert resp.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert resp.json()["detail"] == "access_history_unavailable"


def test_access_summary_zeroed_without_logs(api_client):
    resp = api_client.get(f"/v1/submissions/{SUBMISSION}/access-summary", headers=auth_headers())
    assert resp.status_code == 200
    data = resp.json()
    assert data["submission_id"] == SUBMISSION
    assert data["total_accesses"] == 0
    assert data["denied_accesses"] == 0


def test_access_summary_from_view(api_client, supabase):
    supabase.tables["manuscript_access_summary"] = [
        {"submission_id": SUBMISSION, "total_accesses": 7, "unique_partners": 2, "denied_accesses": None}
    ]
    resp = api_client.get(f"/v1/submissions/{SUBMISSION}/access-summary", headers=auth_headers())
    data = resp.json()
    assert data["total_accesses"] == 7
    assert data["unique_partners"] == 2
    assert data["denied_accesses"] == 0


def test_manual_alert_and_review_workflow(api_client, supabase):
    resp = api_client.post(
        f"/v1/submissions/{SUBMISSION}/alerts",
        json={"alert_type": "unusual_location", "description": "Excerpt posted on a forum", "partner_id": PARTNER},
        headers=auth_headers(),
    )
    assert resp.status_code == status.HTTP_201_CREATED

    resp = api_client.get(f"/v1/submissions/{SUBMISSION}/alerts", headers=auth_headers())
    alerts = resp.json()
    assert len(alerts) == 1
    alert = alerts[0]
    assert alert["severity"] == "medium"
    assert alert["status"] == "new"
    assert alert["metadata"]["reported_by"] == "author_1"

    resp = api_client.patch(
        f"/v1/alerts/{alert['id']}",
        json={"status": "investigating", "notes": "Contacting partner"},
        headers=auth_headers(),
    )
    assert resp.status_code == 200
    assert supabase.rows("suspicious_activity_alerts")[0]["status"] == "investigating"

    resp = api_client.get(
        f"/v1/submissions/{SUBMISSION}/alerts", params={"status": "new"}, headers=auth_headers()
    )
    assert resp.json() == []


def test_manual_alert_explicit_severity(api_client, supabase):
    api_client.post(
        f"/v1/submissions/{SUBMISSION}/alerts",
        json={"alert_type": "rapid_access", "severity": "critical", "description": "Bulk scrape"},
        headers=auth_headers(),
    )
    assert supabase.rows("suspicious_activity_alerts")[0]["severity"] == "critical"


def test_alert_update_unknown_alert(api_client):
    resp = api_client.patch("/v1/alerts/missing", json={"status": "resolved"}, headers=auth_headers())
    assert resp.status_code == status.HTTP_404_NOT_FOUND


def test_alert_update_by_other_author(api_client, supabase):
    supabase.tables["suspicious_activity_alerts"] = [
        {"id": "alert_1", "submission_id": SUBMISSION, "status": "new"}
    ]
    resp = api_client.patch("/v1/alerts/alert_1", json={"status": "resolved"}, headers=auth_headers(OTHER_AUTHOR))
    assert resp.status_code == status.HTTP_403_FORBIDDEN


def test_leak_check_identifies_partner(api_client, supabase):
    leaked_share = share(api_client)
    other = api_client.post(
        f"/v1/submissions/{SUBMISSION}/share",
        json={"partner_id": "partner_2"},
        headers=auth_headers(),
    ).json()

    leaked = _view(api_client, leaked_share["token"]).json()["query_letter"]

    resp = api_client.post(
        f"/v1/submissions/{SUBMISSION}/leak-check", json={"content": leaked}, headers=auth_headers()
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["watermark_present"] is True
    assert len(data["fingerprint"]) == 64
    assert data["matches"][0]["partner_id"] == PARTNER
    assert data["matches"][0]["confidence"] == 1.0
    assert data["matches"][1]["watermark_id"] == other["watermark_id"]
    assert data["matches"][1]["confidence"] < 1.0


def test_leak_check_clean_text(api_client):
    share(api_client)
    resp = api_client.post(
        f"/v1/submissions/{SUBMISSION}/leak-check",
        json={"content": "Nothing to see here. Plain text only."},
        headers=auth_headers(),
    )
    data = resp.json()
    assert data["watermark_present"] is False
    assert data["matches"] == []
