"""Conversation log + daily analytics counter.

Runs after a successful model call.  Nothing here may cost the user the
reply they already have: each write failure is logged, counted and swallowed.

The daily counter is only ever touched through the ``increment_agent_analytics``
database function (see ``supabase/migrations``), which inserts the
``(agent_id, date)`` row or adds to it in one statement, so concurrent
requests never overwrite each other's counts.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import UTC, date, datetime

from langchain_core.messages import AIMessage, BaseMessage, convert_to_openai_messages

from src.errors import DataAccessError, PersistenceFailure
from src.models import AgentConfig
from src.services.metrics import metrics
from src.services.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

INCREMENT_FUNCTION = "increment_agent_analytics"


def _utc_today() -> date:
    return datetime.now(UTC).date()


class ConversationRecorder:
    def __init__(
        self,
        supabase: SupabaseClient,
        *,
        today: Callable[[], date] = _utc_today,
    ):
        self._supabase = supabase
        self._today = today

    def record(
        self,
        agent: AgentConfig,
        *,
        messages: Sequence[BaseMessage],
        reply: str,
        user_id: str | None = None,
        session_id: str | None = None,
        counts_resolution: bool = False,
        escalated: bool = False,
    ) -> bool:
        """Store the exchange and bump today's counters.  Returns ``True`` if both writes landed.

        ``escalated`` marks a turn in which a specialist agent was consulted.
        """
        ok = True
        try:
            self._insert_conversation(agent, messages, reply, user_id, session_id)
        except PersistenceFailure:
            ok = False
            logger.exception("Could not store conversation for agent %s", agent.name)
            metrics.record_event("PersistenceFailure", agent=agent.name)

        try:
            self._increment_analytics(agent, counts_resolution, escalated)
        except PersistenceFailure:
            ok = False
            logger.exception("Could not update analytics for agent %s", agent.name)
            metrics.record_event("PersistenceFailure", agent=agent.name)
        return ok

    def _insert_conversation(
        self,
        agent: AgentConfig,
        messages: Sequence[BaseMessage],
        reply: str,
        user_id: str | None,
        session_id: str | None,
    ) -> None:
        # One row per turn holding the whole transcript so far
        row = {
            "agent_id": agent.agent_id,
            "user_id": user_id,
            "session_id": session_id,
            "conversation_data": convert_to_openai_messages(
                [*messages, AIMessage(content=reply)]
            ),
        }
        try:
            self._supabase.insert("ai_agent_conversations", row)
        except DataAccessError as exc:
            raise PersistenceFailure(str(exc)) from exc

    def _increment_analytics(
        self, agent: AgentConfig, counts_resolution: bool, escalated: bool,
    ) -> None:
        args = {
            "p_agent_id": agent.agent_id,
            "p_date": self._today().isoformat(),
            "p_conversations": 1,
            "p_resolutions": 1 if counts_resolution else 0,
            "p_escalations": 1 if escalated else 0,
        }
        try:
            self._supabase.rpc(INCREMENT_FUNCTION, args)
        except DataAccessError as exc:
            raise PersistenceFailure(str(exc)) from exc
