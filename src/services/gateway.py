"""Client for the hosted chat-completion gateway (OpenAI-compatible API).

One call per pipeline run, no retries, no backoff: every failure kind is
surfaced to the HTTP caller, who decides whether to retry.

Status mapping:
  * 429          → ``UpstreamRateLimited``
  * 402          → ``UpstreamUnavailable`` (quota / billing exhausted)
  * other non-2xx → ``UpstreamGatewayError`` carrying the status
  * 2xx without ``choices[0].message.content`` → ``UnexpectedResponseShape``
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import Any

import httpx
from langchain_core.messages import BaseMessage, SystemMessage, convert_to_openai_messages

from src.config import AI_GATEWAY_API_KEY, AI_GATEWAY_URL, GATEWAY_TIMEOUT_SECONDS
from src.errors import (
    ConfigurationError,
    UnexpectedResponseShape,
    UpstreamGatewayError,
    UpstreamRateLimited,
    UpstreamUnavailable,
)
from src.models import AgentConfig
from src.services.metrics import metrics

logger = logging.getLogger(__name__)


class ModelGateway:
    def __init__(
        self,
        api_key: str | None = None,
        url: str | None = None,
        *,
        timeout: float = GATEWAY_TIMEOUT_SECONDS,
    ):
        api_key = api_key if api_key is not None else AI_GATEWAY_API_KEY
        if not api_key:
            raise ConfigurationError("AI gateway API key is not configured")
        self._url = url or AI_GATEWAY_URL
        self._client = httpx.Client(
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    @staticmethod
    def build_payload(
        agent: AgentConfig,
        system_prompt: str,
        messages: Sequence[BaseMessage],
    ) -> dict[str, Any]:
        """Return the request body: system prompt first, then the history."""
        return {
            "model": agent.model,
            "messages": convert_to_openai_messages(
                [SystemMessage(content=system_prompt), *messages]
            ),
            "temperature": agent.temperature,
            "max_tokens": agent.max_tokens,
        }

    def complete(
        self,
        agent: AgentConfig,
        system_prompt: str,
        messages: Sequence[BaseMessage],
    ) -> str:
        """Run one chat completion for *agent* and return the reply text."""
        payload = self.build_payload(agent, system_prompt, messages)
        logger.info("Calling AI gateway for %s (model %s)", agent.name, agent.model)

        t0 = time.perf_counter()
        try:
            response = self._client.post(self._url, json=payload)
        except httpx.HTTPError as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "ai_gateway", "chat_completion",
                error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise UpstreamGatewayError(f"AI gateway request failed: {exc}") from exc

        elapsed = (time.perf_counter() - t0) * 1000
        status = response.status_code
        if not 200 <= status < 300:
            metrics.record_failure(
                "ai_gateway", "chat_completion",
                error_type=f"HTTP {status}", latency_ms=elapsed,
            )
            logger.warning("AI gateway returned %d for %s", status, agent.name)
            if status == 429:
                raise UpstreamRateLimited()
            if status == 402:
                raise UpstreamUnavailable()
            raise UpstreamGatewayError(f"AI gateway error: {status}", upstream_status=status)

        metrics.record_success("ai_gateway", "chat_completion", latency_ms=elapsed)
        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise UnexpectedResponseShape() from exc
        if not isinstance(content, str):
            raise UnexpectedResponseShape()

        logger.debug("AI gateway replied for %s in %.0fms", agent.name, elapsed)
        return content
