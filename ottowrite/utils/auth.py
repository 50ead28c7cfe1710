"""Caller authentication for author / admin routes.

Manuscript *viewer* routes do not use this: they are authorised by the access
token in the URL. Everything else needs a Supabase session.
"""

from __future__ import annotations

import os
from typing import Any

from fastapi import Depends, Header, HTTPException, Request, status

from ottowrite.models import AuthContext
from ottowrite.settings import AccessSettings
from ottowrite.utils.database import query_one
from ottowrite.utils.dependencies import get_settings, get_supabase_async
from ottowrite.utils.security_utils import _safe_supabase_call, verify_supabase_jwt

USER_SETTINGS_TABLE = "user_settings"


def _dev_user_id() -> str:
    return os.getenv("OTTOWRITE_DEV_USER_ID", "dev_user")


async def _lookup_role(supabase, user_id: str) -> str:
    row = await _safe_supabase_call(
        query_one(supabase, USER_SETTINGS_TABLE, match={"user_id": user_id}, select_fields="role"),
        detail="supabase_users_unreachable",
    )
    return ((row or {}).get("role") or "authenticated").lower()


def require_user(*, admin_only: bool = False):
    """
    Auth dependency factory.

    Examples:
        # Any signed-in user
        auth: AuthContext = Depends(require_user())

        # Admins only (role from ``user_settings``)
        auth: AuthContext = Depends(require_user(admin_only=True))
    """

    async def _auth_dependency(
        request: Request,
        authorization: str | None = Header(None),
        settings: AccessSettings = Depends(get_settings),
        supabase=Depends(get_supabase_async),
    ) -> AuthContext:
        # Development bypass
        if authorization is None and settings.app_env == "development":
            user_id = _dev_user_id()
            request.state.user_id = user_id
            return AuthContext(user_id=user_id, role="admin")

        if not authorization:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="missing_authorization",
            )

        token = authorization.split(" ")[-1]
        claims = verify_supabase_jwt(token, settings)
        user_id = str(claims["sub"])
        role = await _lookup_role(supabase, user_id)

        if admin_only and role != "admin":
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin_required")

        request.state.user_id = user_id
        return AuthContext(user_id=user_id, role=role, email=claims.get("email"))

    return _auth_dependency


# Convenience alias
def require_admin() -> Any:
    return require_user(admin_only=True)
