"""Thin async helpers over the Supabase PostgREST builders.

Filters are ``{column: value}`` equality matches. Store errors are logged and
re-raised; routes translate them with ``_safe_supabase_call``.
"""

from supabase import AsyncClient
from typing import Any, Optional
from .logger import logger


def _apply_filters(query, filters: dict | None):
    for column, value in (filters or {}).items():
        query = query.eq(column, value)
    return query


def _rows(response) -> list[dict]:
    return getattr(response, "data", None) or []


async def insert_data(supabase: AsyncClient, table_name: str, data: dict) -> list[dict]:
    """Insert one row and return what PostgREST reports back (with generated ids)."""
    try:
        response = await supabase.table(table_name).insert(data).execute()
    except Exception as e:
        logger.error("store.insert_failed", extra={"extra": {"table": table_name, "error": str(e)}})
        raise
    return _rows(response)


async def update_data(
    supabase: AsyncClient,
    table_name: str,
    update_values: dict,
    filters: dict,
) -> list[dict]:
    """Update rows matching *filters*; an empty filter is refused outright."""
    if not filters:
        raise ValueError(f"Refusing unfiltered update on {table_name}")
    try:
        query = _apply_filters(supabase.table(table_name).update(update_values), filters)
        response = await query.execute()
    except Exception as e:
        logger.error("store.update_failed", extra={"extra": {"table": table_name, "error": str(e)}})
        raise
    return _rows(response)


async def call_rpc(supabase: AsyncClient, function_name: str, params: dict) -> Any:
    """Call a Postgres function and return its ``data``."""
    try:
        response = await supabase.rpc(function_name, params).execute()
    except Exception as e:
        logger.error("store.rpc_failed", extra={"extra": {"function": function_name, "error": str(e)}})
        raise
    return getattr(response, "data", None)


async def query_many(
    supabase: AsyncClient,
    table_name: str,
    match: dict | None = None,
    order_by: tuple | None = None,
    select_fields: str = "*",
    limit: Optional[int] = None,
) -> list[dict]:
    """Rows of *table_name* (or a view) matching *match*.

    :param order_by: ``(column, desc)`` tuple.
    """
    query = _apply_filters(supabase.table(table_name).select(select_fields), match)
    if order_by:
        column, desc = order_by
        query = query.order(column, desc=desc)
    if limit:
        query = query.limit(limit)
    try:
        response = await query.execute()
    except Exception as e:
        logger.error("store.query_failed", extra={"extra": {"table": table_name, "error": str(e)}})
        raise
    return _rows(response)


async def query_one(
    supabase: AsyncClient,
    table_name: str,
    match: dict | None = None,
    order_by: tuple | None = None,
    select_fields: str = "*",
):
    """First matching row, or ``None``."""
    rows = await query_many(
        supabase, table_name, match=match, order_by=order_by, select_fields=select_fields, limit=1
    )
    return rows[0] if rows else None
