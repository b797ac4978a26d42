"""Client for the care platform's Supabase backend (tables, RPC and Auth).

Built on the ``supabase`` SDK.  Every request authenticates with the
service-role key, so reads bypass row-level security; the API layer is
responsible for checking the caller's bearer token and roles before the
pipeline runs.

Filters use PostgREST operator expressions, e.g. ``{"agent_id": "eq.42",
"discharge_date": "is.null"}``; each becomes one ``.filter()`` call.

There are no retries here: agent lookups must fail fast, and the analytics
increment is not idempotent.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import httpx
from supabase import AuthApiError, AuthError, Client, ClientOptions, PostgrestAPIError, create_client

from src.config import SUPABASE_SERVICE_ROLE_KEY, SUPABASE_TIMEOUT_SECONDS, SUPABASE_URL
from src.errors import DataAccessError
from src.services.metrics import metrics

logger = logging.getLogger(__name__)


class SupabaseClient:
    """Synchronous facade over the SDK client, with metrics and one error type."""

    def __init__(
        self,
        url: str | None = None,
        service_key: str | None = None,
        *,
        timeout: float = SUPABASE_TIMEOUT_SECONDS,
    ):
        self._client: Client = create_client(
            url or SUPABASE_URL,
            service_key or SUPABASE_SERVICE_ROLE_KEY,
            options=ClientOptions(
                postgrest_client_timeout=timeout,
                auto_refresh_token=False,
                persist_session=False,
            ),
        )

    # ── Internal helpers ─────────────────────────────────────────────

    def _execute(self, operation: str, query: Any) -> Any:
        """Execute one query builder; map SDK and transport errors to ``DataAccessError``."""
        t0 = time.perf_counter()
        try:
            response = query.execute()
        except (PostgrestAPIError, httpx.HTTPError) as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "supabase", operation, error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise DataAccessError(f"Database request {operation} failed: {exc}") from exc

        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("supabase", operation, latency_ms=elapsed)
        return response

    @staticmethod
    def _apply_filters(query: Any, filters: dict[str, str] | None) -> Any:
        for column, expression in (filters or {}).items():
            operator, _, value = expression.partition(".")
            query = query.filter(column, operator, value)
        return query

    # ── Public API methods ───────────────────────────────────────────

    def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: dict[str, str] | None = None,
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return the rows of *table* matching *filters*.

        Args:
            table: Table or view name.
            columns: PostgREST ``select`` expression, embedded resources included
                (e.g. ``"*, profiles:user_id (first_name, last_name)"``).
            filters: Column → PostgREST operator expression.
            order: e.g. ``"priority.desc"``.
            limit: Maximum number of rows.
        """
        query = self._apply_filters(self._client.table(table).select(columns), filters)
        if order:
            column, _, direction = order.partition(".")
            query = query.order(column, desc=direction == "desc")
        if limit is not None:
            query = query.limit(limit)
        return self._execute(f"GET {table}", query).data or []

    def select_one(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: dict[str, str] | None = None,
    ) -> dict[str, Any] | None:
        """Return the first matching row, or ``None`` when nothing matches."""
        rows = self.select(table, columns=columns, filters=filters, limit=1)
        return rows[0] if rows else None

    def count(self, table: str, *, filters: dict[str, str] | None = None) -> int:
        """Return the exact number of rows matching *filters* without fetching them."""
        query = self._apply_filters(
            self._client.table(table).select("*", count="exact", head=True), filters,
        )
        response = self._execute(f"COUNT {table}", query)
        if response.count is None:
            raise DataAccessError(f"Missing row count for {table}")
        return response.count

    def insert(self, table: str, row: dict[str, Any]) -> None:
        """Insert one row."""
        self._execute(f"POST {table}", self._client.table(table).insert(row))

    def rpc(self, function: str, args: dict[str, Any]) -> Any:
        """Call a database function and return its decoded result."""
        return self._execute(f"RPC {function}", self._client.rpc(function, args)).data

    def get_user(self, access_token: str) -> dict[str, Any] | None:
        """Resolve a user access token via the Auth API.

        Returns ``{"id", "email"}`` for the user, or ``None`` if the token is
        invalid or expired.  Other failures raise ``DataAccessError``.
        """
        t0 = time.perf_counter()
        try:
            response = self._client.auth.get_user(access_token)
        except AuthApiError as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            if exc.status in (400, 401, 403):
                metrics.record_success("supabase", "GET auth/user", latency_ms=elapsed)
                return None
            metrics.record_failure(
                "supabase", "GET auth/user", error_type=f"HTTP {exc.status}", latency_ms=elapsed,
            )
            raise DataAccessError(
                f"Auth error {exc.status}: {exc.message}", status_code=exc.status,
            ) from exc
        except (AuthError, httpx.HTTPError) as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "supabase", "GET auth/user", error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise DataAccessError(f"Auth request failed: {exc}") from exc

        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("supabase", "GET auth/user", latency_ms=elapsed)
        user = response.user if response else None
        if user is None or not user.id:
            return None
        return {"id": user.id, "email": user.email}


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: SupabaseClient | None = None
_client_lock = threading.Lock()


def get_supabase_client() -> SupabaseClient:
    """Return a module-level SupabaseClient singleton.

    Uses double-checked locking so that the lock is only acquired during
    the first initialisation, not on every subsequent call.
    """
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = SupabaseClient()
    return _client
