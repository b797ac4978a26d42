"""Shared test fixtures for the Care Agents test suite."""

from __future__ import annotations

import os
import threading
from collections import defaultdict
from typing import Any
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("AI_GATEWAY_API_KEY", "test-gateway-key-123")
    os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
    os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key-456")


# ── In-memory database ───────────────────────────────────────────────


def _matches(row: dict[str, Any], column: str, expr: str) -> bool:
    op, _, expected = expr.partition(".")
    value = row.get(column)
    if op == "is" and expected == "null":
        return value is None
    if op == "eq":
        if isinstance(value, bool):
            value = "true" if value else "false"
        return str(value) == expected
    raise AssertionError(f"Unsupported filter {column}={expr}")


class FakeSupabase:
    """Stands in for ``SupabaseClient``: tables are lists of dicts.

    Only the PostgREST filters the pipeline uses are understood (``eq.`` and
    ``is.null``).  The ``increment_agent_analytics`` function accumulates into
    :attr:`analytics`, keyed by ``(agent_id, date)``.  Set ``fail_writes`` to
    make ``insert`` and ``rpc`` raise like a database outage.
    """

    def __init__(self):
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.users: dict[str, dict[str, Any]] = {}
        self.analytics: dict[tuple[str, str], dict[str, int]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_writes = False
        self._lock = threading.Lock()

    def _track(self, method: str, table: str) -> None:
        with self._lock:
            self.calls.append((method, table))

    # ── Seeding ──────────────────────────────────────────────────────

    def add_agent(
        self,
        name: str,
        *,
        agent_id: str,
        display_name: str,
        system_prompt: str = "You are a helpful care assistant.",
        model: str = "google/gemini-2.5-flash",
        temperature: float | None = 0.7,
        max_tokens: int | None = 1024,
        status: str = "active",
    ) -> None:
        self.tables["ai_agents"].append(
            {
                "id": agent_id,
                "name": name,
                "display_name": display_name,
                "status": status,
                "ai_agent_configurations": [
                    {
                        "agent_id": agent_id,
                        "model": model,
                        "temperature": temperature,
                        "max_tokens": max_tokens,
                        "system_prompt": system_prompt,
                    }
                ],
            }
        )

    # ── SupabaseClient interface ─────────────────────────────────────

    def select(self, table, *, columns="*", filters=None, order=None, limit=None):
        self._track("select", table)
        rows = [
            dict(row)
            for row in self.tables.get(table, [])
            if all(_matches(row, col, expr) for col, expr in (filters or {}).items())
        ]
        if order:
            column, _, direction = order.partition(".")
            rows.sort(key=lambda r: r.get(column), reverse=direction == "desc")
        if limit is not None:
            rows = rows[:limit]
        return rows

    def select_one(self, table, *, columns="*", filters=None):
        rows = self.select(table, columns=columns, filters=filters, limit=1)
        return rows[0] if rows else None

    def count(self, table, *, filters=None):
        self._track("count", table)
        return sum(
            1
            for row in self.tables.get(table, [])
            if all(_matches(row, col, expr) for col, expr in (filters or {}).items())
        )

    def insert(self, table, row):
        from src.errors import DataAccessError

        self._track("insert", table)
        if self.fail_writes:
            raise DataAccessError(f"Database request POST {table} failed: connection reset")
        with self._lock:
            self.tables[table].append(dict(row))

    def rpc(self, function, args):
        from src.errors import DataAccessError

        self._track("rpc", function)
        if self.fail_writes:
            raise DataAccessError(f"Database request RPC {function} failed: connection reset")
        assert function == "increment_agent_analytics"
        with self._lock:
            counters = self.analytics.setdefault(
                (args["p_agent_id"], args["p_date"]),
                {"total_conversations": 0, "successful_resolutions": 0, "escalations": 0},
            )
            counters["total_conversations"] += args["p_conversations"]
            counters["successful_resolutions"] += args["p_resolutions"]
            counters["escalations"] += args["p_escalations"]
            return counters["total_conversations"]

    def get_user(self, access_token):
        self._track("get_user", "auth")
        return self.users.get(access_token)


@pytest.fixture
def fake_supabase():
    """Empty in-memory database."""
    return FakeSupabase()


@pytest.fixture
def seeded_supabase(fake_supabase):
    """Database holding the member-facing agent, the nurse agent and one member."""
    fake_supabase.add_agent(
        "clara-member", agent_id="agent-clara-member", display_name="Clara",
        system_prompt="You are Clara, a friendly care companion.",
    )
    fake_supabase.add_agent(
        "ineke", agent_id="agent-ineke", display_name="Ineke",
        system_prompt="You are Ineke, a registered nurse assistant.",
        temperature=0.3,
    )
    fake_supabase.tables["members"].append(
        {
            "id": "member-1",
            "care_level": "moderate",
            "medical_conditions": ["hypertension"],
            "profiles": {"first_name": "Anna", "last_name": "de Vries"},
        }
    )
    return fake_supabase


@pytest.fixture
def mock_http_response():
    """Factory fixture for creating mock httpx responses."""

    def _make(data: Any = None, status_code: int = 200, headers: dict | None = None):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        mock.content = b"" if data is None else str(data).encode()
        mock.headers = headers or {}
        return mock

    return _make
