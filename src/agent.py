"""LangGraph pipeline that answers one chat request for one agent persona.

Architecture:
  The pipeline is a stateless LangGraph StateGraph whose nodes follow the
  request lifecycle:

    1. **resolve_config**   — Agent Registry lookup (fails closed)
    2. **fetch_knowledge**  — active knowledge snippets, by priority
    3. **fetch_context**    — member / facility / company summaries
    4. **assemble_prompt**  — build the system prompt, classify the latest
                              user message for clinical intent
    5. **consult**          — (optional) ask the specialist agent and splice
                              its reply into the prompt
    6. **invoke_model**     — one chat-completion call
    7. **persist**          — conversation log + daily analytics

  Routing:
    resolve_config → fetch_knowledge ┐
                   → fetch_context   ┴→ assemble_prompt → (clinical?) → consult → invoke_model
                                                        → (otherwise) ─────────→ invoke_model
    invoke_model → persist → END

  ``fetch_knowledge`` and ``fetch_context`` run in the same superstep, so the
  two reads happen concurrently and both must succeed before the prompt is
  assembled.  A failed consultation never fails the request; a failure in
  ``resolve_config`` or ``invoke_model`` propagates to the caller.

  No checkpointer: every request carries its full history, and nothing is
  shared between runs except the agent-config cache.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from langchain_core.messages import AnyMessage, BaseMessage, HumanMessage, convert_to_messages
from langgraph.graph import END, StateGraph
from typing_extensions import TypedDict

from src.config import HANDOFF_URL
from src.errors import InvalidRequestError
from src.models import AgentConfig, ConversationContext, HandoffResult, PipelineResult
from src.pipeline.classifier import IntentClassifier, KeywordClassifier
from src.pipeline.context import ContextAugmenter, page_hint
from src.pipeline.knowledge import KnowledgeBase, render_knowledge
from src.pipeline.persistence import ConversationRecorder
from src.pipeline.personas import Persona, handoff_persona
from src.pipeline.registry import AgentRegistry
from src.prompts import build_system_prompt, consultation_block
from src.services.gateway import ModelGateway
from src.services.handoff import HandoffClient, HttpHandoff, InProcessHandoff
from src.services.supabase_client import SupabaseClient, get_supabase_client

logger = logging.getLogger(__name__)


# ── State schema ─────────────────────────────────────────────────────


class PipelineState(TypedDict, total=False):
    """The state that flows through the graph.

    The first group is the request (set once on invoke); the rest is written
    by exactly one node each, which is what lets the two fetch nodes run in
    parallel without a reducer.
    """

    persona: Persona
    messages: list[AnyMessage]
    conversation: ConversationContext
    language: str
    user_id: str | None
    session_id: str | None

    agent: AgentConfig
    knowledge: str
    context_block: str
    system_prompt: str
    consult_reason: str | None
    handoff: HandoffResult | None
    reply: str
    persisted: bool


def latest_user_message(messages: Sequence[BaseMessage]) -> str:
    """Return the content of the most recent human message ("" if there is none)."""
    for msg in reversed(messages):
        if isinstance(msg, HumanMessage):
            return msg.content if isinstance(msg.content, str) else str(msg.content)
    return ""


# ── Nodes ────────────────────────────────────────────────────────────


def _make_resolve_node(registry: AgentRegistry):
    def resolve_config(state: PipelineState) -> dict:
        return {"agent": registry.resolve(state["persona"].name)}

    return resolve_config


def _make_knowledge_node(knowledge: KnowledgeBase):
    def fetch_knowledge(state: PipelineState) -> dict:
        items = knowledge.fetch(state["agent"].agent_id)
        return {"knowledge": render_knowledge(items)}

    return fetch_knowledge


def _make_context_node(augmenter: ContextAugmenter):
    def fetch_context(state: PipelineState) -> dict:
        conversation = state.get("conversation") or ConversationContext()
        block = augmenter.build(conversation, detail=state["persona"].context_detail)
        return {"context_block": block}

    return fetch_context


def _make_prompt_node(classifier: IntentClassifier):
    """Create the node that assembles the prompt and decides on a consultation.

    Only personas with a handoff target are classified at all; the verdict is
    written to ``consult_reason`` (the matching pattern) for the conditional
    edge to read.
    """

    def assemble_prompt(state: PipelineState) -> dict:
        persona = state["persona"]
        conversation = state.get("conversation") or ConversationContext()
        prompt = build_system_prompt(
            state["agent"].system_prompt,
            knowledge=state.get("knowledge", ""),
            page_hint=page_hint(conversation.page),
            context=state.get("context_block", ""),
            language=state.get("language", "en"),
            tone=persona.tone,
            strict_language=persona.strict_language,
            handoff_request=persona.handoff_request,
        )

        reason = None
        if persona.handoff_target:
            verdict = classifier.classify(latest_user_message(state["messages"]))
            if verdict:
                reason = verdict.reason or "classifier"
                logger.info(
                    "Clinical intent detected for %s (%s), consulting %s",
                    persona.name, reason, persona.handoff_target,
                )
        return {"system_prompt": prompt, "consult_reason": reason}

    return assemble_prompt


def _make_consult_node(handoff: HandoffClient):
    def consult(state: PipelineState) -> dict:
        persona = state["persona"]
        result = handoff.consult(
            persona.handoff_target,
            latest_user_message(state["messages"]),
            state.get("conversation") or ConversationContext(),
            state.get("language", "en"),
            requested_by=persona.name,
        )
        if result is None:
            return {"handoff": None}

        prompt = state["system_prompt"]
        if persona.consultation_template:
            prompt += consultation_block(
                persona.consultation_template, agent=result.agent, message=result.message,
            )
        return {"handoff": result, "system_prompt": prompt}

    return consult


def _make_model_node(gateway: ModelGateway):
    def invoke_model(state: PipelineState) -> dict:
        reply = gateway.complete(state["agent"], state["system_prompt"], state["messages"])
        return {"reply": reply}

    return invoke_model


def _make_persist_node(recorder: ConversationRecorder):
    def persist(state: PipelineState) -> dict:
        persona = state["persona"]
        if not persona.persist:
            return {"persisted": False}
        ok = recorder.record(
            state["agent"],
            messages=state["messages"],
            reply=state["reply"],
            user_id=state.get("user_id"),
            session_id=state.get("session_id"),
            counts_resolution=persona.counts_resolution,
            escalated=state.get("handoff") is not None,
        )
        return {"persisted": ok}

    return persist


# ── Conditional edges ────────────────────────────────────────────────


def route_consultation(state: PipelineState) -> str:
    """Consult the specialist only when the prompt node flagged clinical intent."""
    if state.get("consult_reason"):
        return "consult"
    return "invoke_model"


# ── Graph assembly ───────────────────────────────────────────────────


class CarePipeline:
    """Compiled pipeline plus the components it was built from."""

    def __init__(
        self,
        supabase: SupabaseClient,
        gateway: ModelGateway,
        handoff: HandoffClient | None = None,
        *,
        classifier: IntentClassifier | None = None,
        registry: AgentRegistry | None = None,
        recorder: ConversationRecorder | None = None,
    ):
        self.supabase = supabase
        self.registry = registry or AgentRegistry(supabase)
        self.knowledge = KnowledgeBase(supabase)
        self.context = ContextAugmenter(supabase)
        self.classifier = classifier or KeywordClassifier()
        self.gateway = gateway
        self.handoff = handoff or InProcessHandoff(self.answer_consultation)
        self.recorder = recorder or ConversationRecorder(supabase)
        self.graph = self._build_graph()

    def _build_graph(self):
        graph = StateGraph(PipelineState)

        graph.add_node("resolve_config", _make_resolve_node(self.registry))
        graph.add_node("fetch_knowledge", _make_knowledge_node(self.knowledge))
        graph.add_node("fetch_context", _make_context_node(self.context))
        graph.add_node("assemble_prompt", _make_prompt_node(self.classifier))
        graph.add_node("consult", _make_consult_node(self.handoff))
        graph.add_node("invoke_model", _make_model_node(self.gateway))
        graph.add_node("persist", _make_persist_node(self.recorder))

        graph.set_entry_point("resolve_config")

        # Fan out to both fetches, join once both are done
        graph.add_edge("resolve_config", "fetch_knowledge")
        graph.add_edge("resolve_config", "fetch_context")
        graph.add_edge(["fetch_knowledge", "fetch_context"], "assemble_prompt")

        graph.add_conditional_edges(
            "assemble_prompt",
            route_consultation,
            {"consult": "consult", "invoke_model": "invoke_model"},
        )
        graph.add_edge("consult", "invoke_model")
        graph.add_edge("invoke_model", "persist")
        graph.add_edge("persist", END)

        return graph.compile()

    def run(
        self,
        persona: Persona,
        messages: Sequence[BaseMessage | dict[str, Any]],
        *,
        context: ConversationContext | None = None,
        language: str | None = "en",
        user_id: str | None = None,
        session_id: str | None = None,
    ) -> PipelineResult:
        """Answer the latest message in *messages* as *persona*.

        Raises ``InvalidRequestError`` before any I/O when *messages* is empty.
        """
        if not messages:
            raise InvalidRequestError("Messages array is required")
        history = convert_to_messages(messages)

        state = self.graph.invoke(
            {
                "persona": persona,
                "messages": history,
                "conversation": context or ConversationContext(),
                "language": language or "en",
                "user_id": user_id,
                "session_id": session_id,
            }
        )

        handoff = state.get("handoff")
        logger.debug(
            "Pipeline %s done (handoff: %s, persisted: %s)",
            persona.name, handoff.agent if handoff else None, state.get("persisted"),
        )
        return PipelineResult(
            message=state["reply"],
            agent=state["agent"].display_name,
            handoff=handoff,
        )

    def answer_consultation(
        self,
        target_agent: str,
        message: str,
        context: ConversationContext | None = None,
        language: str | None = "en",
    ) -> HandoffResult:
        """Answer one consultation question as *target_agent*.

        Shared by the handoff route and the in-process consultation path.
        Raises ``AgentNotConfigured`` when the target has no active agent row.
        """
        result = self.run(
            handoff_persona(target_agent),
            [{"role": "user", "content": message}],
            context=context,
            language=language,
        )
        return HandoffResult(agent=result.agent, agent_name=target_agent, message=result.message)


def create_care_pipeline() -> CarePipeline:
    """Build the pipeline against the configured database and gateway.

    Consultations stay in-process unless ``HANDOFF_URL`` points at a remote
    handoff route.
    """
    pipeline = CarePipeline(
        supabase=get_supabase_client(),
        gateway=ModelGateway(),
        handoff=HttpHandoff() if HANDOFF_URL else None,
    )
    logger.debug("Care pipeline compiled")
    return pipeline
