"""FastAPI dependency providers for settings, services and external clients.

Everything is read from ``request.app.state`` (populated by ``create_app``),
so two apps built with different settings never share a client or a secret.
"""

from __future__ import annotations

import asyncio
from typing import AsyncGenerator

from fastapi import Depends, Request
from supabase import AsyncClient, acreate_client

from ottowrite.settings import AccessSettings
from ottowrite.utils.access_tokens import AccessTokenService
from ottowrite.utils.audit import AuditTrail


def get_settings(request: Request) -> AccessSettings:
    return request.app.state.settings


def get_token_service(request: Request) -> AccessTokenService:
    return request.app.state.token_service


async def _get_cached_client(request: Request) -> AsyncClient:
    """Return a Supabase async client tied to the current event loop.

    In serverless environments each invocation may run on a fresh event loop
    even when the Python process is reused. Re-using an ``AsyncClient`` created
    on a *different* loop raises ``RuntimeError('Event loop is closed')`` once
    its httpx pool attempts I/O, so the client is cached **per-loop**.
    """
    state = request.app.state
    settings: AccessSettings = state.settings
    current_loop = asyncio.get_running_loop()

    cached = getattr(state, "supabase_client", None)
    cached_loop = getattr(state, "supabase_loop", None)
    if cached is None or cached_loop is not current_loop or cached_loop.is_closed():
        state.supabase_client = await acreate_client(settings.supabase_url, settings.supabase_key)  # type: ignore[arg-type]
        state.supabase_loop = current_loop

    return state.supabase_client


async def get_supabase_async(request: Request) -> AsyncGenerator[AsyncClient, None]:
    """FastAPI dependency yielding the shared async Supabase client.

    Tests replace it through ``app.dependency_overrides``.
    """
    client = await _get_cached_client(request)
    yield client


def get_audit_trail(supabase=Depends(get_supabase_async)) -> AuditTrail:
    return AuditTrail(supabase)
