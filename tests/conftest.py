from __future__ import annotations

"""Pytest fixtures for FastAPI integration tests.

Supabase is replaced by the in-memory ``SupabaseStub`` through
``app.dependency_overrides`` so the request pipeline runs end-to-end without
network or database round-trips. Supabase session JWTs are minted locally with
python-jose.
"""

import os
import sys
import time
from pathlib import Path
from typing import Any, Dict

import pytest
from fastapi import FastAPI
from jose import jwt
from starlette.testclient import TestClient

# ---------------------------------------------------------------------------
# Runtime env for the application
# ---------------------------------------------------------------------------

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test_key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "supabase-test-jwt-secret-0123456789abcdef")
os.environ.setdefault("MANUSCRIPT_ACCESS_SECRET", "manuscript-test-secret-0123456789abcdef")
os.environ.setdefault("FRONTEND_ORIGIN", "https://app.ottowrite.test")
os.environ.setdefault("VIEWER_BASE_URL", "https://app.ottowrite.test")

# Ensure project root on PYTHONPATH so `import ottowrite` works from a checkout
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ottowrite.main import create_app, limiter  # noqa: E402
from ottowrite.utils.dependencies import get_supabase_async  # noqa: E402
from tests.supabase_stub import SupabaseStub  # noqa: E402

# Boot the app once
app: FastAPI = create_app()
client = TestClient(app)

AUTHOR = "author_1"
OTHER_AUTHOR = "author_2"
ADMIN = "admin_1"
SUBMISSION = "sub_1"
PARTNER = "partner_1"

QUERY_LETTER = (
    "Dear Agent. I am seeking representation for my novel. "
    "It is a complete story of about ninety thousand words. Thank you for your time."
)
SYNOPSIS = "A cartographer maps a city that rearranges itself. Each map she draws is wrong by morning."
SAMPLE_PAGES = "Chapter one. The city woke before she did. The streets had moved again overnight."


def seed_tables() -> Dict[str, list]:
    return {
        "manuscript_submissions": [
            {
                "id": SUBMISSION,
                "user_id": AUTHOR,
                "title": "The Shifting City",
                "genre": "Fantasy",
                "word_count": 90000,
                "type": "novel",
                "query_letter": QUERY_LETTER,
                "synopsis": SYNOPSIS,
                "sample_pages_content": SAMPLE_PAGES,
                "sample_pages_count": 10,
                "full_manuscript_available": True,
            }
        ],
        "user_settings": [
            {"user_id": AUTHOR, "role": "authenticated"},
            {"user_id": OTHER_AUTHOR, "role": "authenticated"},
            {"user_id": ADMIN, "role": "admin"},
        ],
        "submission_partners": [{"id": PARTNER, "name": "Lantern Literary"}],
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture()
def supabase() -> SupabaseStub:
    stub = SupabaseStub(seed_tables())
    app.dependency_overrides[get_supabase_async] = lambda: stub
    yield stub
    app.dependency_overrides.pop(get_supabase_async, None)


@pytest.fixture()
def api_client(supabase) -> TestClient:  # noqa: D401 – simple alias
    return client


@pytest.fixture()
def token_service():
    return app.state.token_service


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def supabase_jwt(user_id: str, expires_in: int = 3600, **claims: Any) -> str:
    now = int(time.time())
    payload = {
        "sub": user_id,
        "aud": "authenticated",
        "role": "authenticated",
        "iat": now,
        "exp": now + expires_in,
        **claims,
    }
    return jwt.encode(payload, os.environ["SUPABASE_JWT_SECRET"], algorithm="HS256")


def auth_headers(user_id: str = AUTHOR) -> Dict[str, str]:
    return {"Authorization": f"Bearer {supabase_jwt(user_id)}"}


def share(api_client: TestClient, **body: Any) -> Dict[str, Any]:
    """Share SUBMISSION with PARTNER as AUTHOR and return the response body."""
    resp = api_client.post(
        f"/v1/submissions/{SUBMISSION}/share",
        json={"partner_id": PARTNER, **body},
        headers=auth_headers(),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()
