"""Knowledge Augmenter: per-agent knowledge snippets for the system prompt."""

from __future__ import annotations

import logging

from src.models import KnowledgeItem
from src.services.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)


class KnowledgeBase:
    def __init__(self, supabase: SupabaseClient):
        self._supabase = supabase

    def fetch(self, agent_id: str) -> list[KnowledgeItem]:
        """Return the agent's active items, highest priority first.

        The query already filters and orders, but the result is filtered and
        stable-sorted again here so inactive items can never slip into a
        prompt and ties keep the order the database returned them in.
        """
        rows = self._supabase.select(
            "ai_agent_knowledge_base",
            columns="category, title, content, priority, is_active",
            filters={"agent_id": f"eq.{agent_id}", "is_active": "eq.true"},
            order="priority.desc",
        )
        items = [
            KnowledgeItem(
                category=row.get("category") or "General",
                title=row.get("title") or "",
                content=row.get("content") or "",
                priority=row.get("priority") or 0,
                is_active=bool(row.get("is_active")),
            )
            for row in rows
        ]
        active = [item for item in items if item.is_active]
        active.sort(key=lambda item: item.priority, reverse=True)
        logger.debug("Loaded %d knowledge items for agent %s", len(active), agent_id)
        return active


def render_knowledge(items: list[KnowledgeItem]) -> str:
    """Format items as the prompt's knowledge block ("" when there are none)."""
    if not items:
        return ""
    lines = ["\n\nKnowledge Base:\n"]
    for item in items:
        lines.append(f"\n[{item.category}] {item.title}:\n{item.content}\n")
    return "".join(lines)
