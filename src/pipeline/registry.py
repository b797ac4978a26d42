"""Agent Registry: resolve an agent name to its model configuration.

A missing, unconfigured or inactive agent is a configuration error, not a
transient fault, so lookups fail fast with ``AgentNotConfigured``.  Successful
lookups are cached for ``AGENT_CONFIG_TTL_SECONDS``; call :meth:`invalidate`
after an operator edits an agent to drop the cached copy immediately.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from src.config import AGENT_CONFIG_TTL_SECONDS
from src.errors import AgentNotConfigured
from src.models import AgentConfig
from src.services.cache import TTLCache
from src.services.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

_AGENT_COLUMNS = "id, name, display_name, status, ai_agent_configurations(*)"


class AgentRegistry:
    def __init__(self, supabase: SupabaseClient, *, cache: TTLCache | None = None):
        self._supabase = supabase
        self._cache = cache or TTLCache(ttl_seconds=AGENT_CONFIG_TTL_SECONDS)

    def resolve(self, name: str) -> AgentConfig:
        """Return the active configuration for agent *name* (cached)."""
        cached = self._cache.get(name)
        if cached is not None:
            return cached

        row = self._supabase.select_one(
            "ai_agents", columns=_AGENT_COLUMNS, filters={"name": f"eq.{name}"},
        )
        config = self._to_config(name, row)
        self._cache.put(name, config)
        logger.debug("Resolved agent %s → model %s", name, config.model)
        return config

    def invalidate(self, name: str) -> bool:
        """Forget the cached configuration for *name*."""
        return self._cache.invalidate(name)

    @staticmethod
    def _to_config(name: str, row: dict[str, Any] | None) -> AgentConfig:
        if not row:
            raise AgentNotConfigured(name)

        # The embedded resource is an object for a one-to-one FK, a list otherwise
        settings = row.get("ai_agent_configurations")
        if isinstance(settings, list):
            if len(settings) != 1:
                logger.error("Agent %s has %d configurations", name, len(settings))
                raise AgentNotConfigured(name)
            settings = settings[0]
        if not settings:
            raise AgentNotConfigured(name)

        status = row.get("status") or "active"
        if status != "active":
            logger.error("Agent %s is %s", name, status)
            raise AgentNotConfigured(name)

        temperature = settings.get("temperature")
        try:
            return AgentConfig(
                agent_id=str(row["id"]),
                name=row.get("name") or name,
                display_name=row.get("display_name") or name,
                model=settings["model"],
                temperature=0.7 if temperature is None else float(temperature),
                max_tokens=settings.get("max_tokens") or 1024,
                system_prompt=settings["system_prompt"],
                status=status,
            )
        except (KeyError, TypeError, ValueError, ValidationError) as exc:
            logger.error("Agent %s has an invalid configuration: %s", name, exc)
            raise AgentNotConfigured(name) from exc
