"""Best-effort consultation of a specialist agent.

A consultation can only ever *add* to the primary answer: any failure is
logged, counted, and reported as ``None`` so the user-facing agent still
replies.

Two transports share that policy:

* :class:`InProcessHandoff` (default) runs the target agent's pipeline in
  the calling thread.  No second request and no second worker thread, so a
  burst of clinical chats cannot starve the handoff route of workers.
* :class:`HttpHandoff` POSTs to a remote ``/api/agent-handoff`` when
  ``HANDOFF_URL`` is set, e.g. when the nurse agent runs as its own service.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx
from pydantic import ValidationError

from src.config import HANDOFF_TIMEOUT_SECONDS, HANDOFF_URL, SUPABASE_SERVICE_ROLE_KEY
from src.errors import ConfigurationError, DataAccessError, HandoffFailure, PipelineError
from src.models import ConversationContext, HandoffResult
from src.services.metrics import metrics

logger = logging.getLogger(__name__)


class HandoffClient:
    """Consultation policy; subclasses implement ``_send``."""

    operation = "consult"

    def _send(self, payload: dict[str, Any]) -> HandoffResult:
        raise NotImplementedError

    def consult(
        self,
        target_agent: str,
        message: str,
        context: ConversationContext,
        language: str,
        *,
        requested_by: str,
    ) -> HandoffResult | None:
        """Ask *target_agent* about *message*; ``None`` when no consultation is available."""
        payload = {
            "target_agent": target_agent,
            "message": message,
            "context": context.ids(),
            "language": language,
        }
        logger.info("%s consulting %s…", requested_by, target_agent)

        t0 = time.perf_counter()
        try:
            result = self._send(payload)
        except HandoffFailure as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "handoff", self.operation,
                error_type=str(exc).partition(":")[0], latency_ms=elapsed,
            )
            metrics.record_event("HandoffSkipped", agent=requested_by)
            logger.warning(
                "Consultation with %s failed (%s); %s answers without it",
                target_agent, exc, requested_by,
            )
            return None

        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("handoff", self.operation, latency_ms=elapsed)
        return result


class InProcessHandoff(HandoffClient):
    """Run the target agent through *answer* (normally ``CarePipeline.answer_consultation``)."""

    operation = "consult_local"

    def __init__(
        self,
        answer: Callable[[str, str, ConversationContext, str], HandoffResult],
    ):
        self._answer = answer

    def _send(self, payload: dict[str, Any]) -> HandoffResult:
        # Same context the remote route would see: the ids only
        context = ConversationContext.model_validate(payload["context"])
        try:
            return self._answer(
                payload["target_agent"], payload["message"], context, payload["language"],
            )
        except PipelineError as exc:
            raise HandoffFailure(f"{type(exc).__name__}: {exc.message}") from exc
        except DataAccessError as exc:
            raise HandoffFailure(f"DataAccessError: {exc}") from exc


class HttpHandoff(HandoffClient):
    def __init__(
        self,
        url: str | None = None,
        service_key: str | None = None,
        *,
        timeout: float = HANDOFF_TIMEOUT_SECONDS,
    ):
        self._url = url or HANDOFF_URL
        if not self._url:
            raise ConfigurationError("HANDOFF_URL is not configured")
        self._client = httpx.Client(
            headers={
                "Authorization": f"Bearer {service_key or SUPABASE_SERVICE_ROLE_KEY}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    def _send(self, payload: dict[str, Any]) -> HandoffResult:
        try:
            response = self._client.post(self._url, json=payload)
        except httpx.HTTPError as exc:
            raise HandoffFailure(f"{type(exc).__name__}: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise HandoffFailure(f"HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise HandoffFailure("response body is not JSON") from exc
        if not isinstance(data, dict) or not isinstance(data.get("message"), str):
            raise HandoffFailure("response carries no message")

        try:
            return HandoffResult(
                agent=data.get("agent") or payload["target_agent"],
                agent_name=data.get("agent_name") or payload["target_agent"],
                message=data["message"],
            )
        except ValidationError as exc:
            raise HandoffFailure("malformed response") from exc
