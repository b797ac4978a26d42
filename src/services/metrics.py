"""CloudWatch custom metrics emitter with background batching.

Publishes per-call metrics (count, latency, errors) for every external
service the pipeline talks to (``supabase``, ``ai_gateway``, ``handoff``),
plus pipeline events that are otherwise invisible to the caller, such as a
skipped nurse consultation or a failed conversation write.

Design
------
* Metrics are collected in a thread-safe in-memory buffer.
* A daemon thread flushes the buffer to CloudWatch every
  ``FLUSH_INTERVAL_SECONDS`` (default 60 s).
* When running locally (``METRICS_ENABLED != "true"``), metrics are
  logged at DEBUG level but **not** pushed to CloudWatch.
* Each ``put_metric_data`` call sends up to 1 000 metric data points
  (the CloudWatch API limit per request).

Usage
-----
>>> from src.services.metrics import metrics
>>> metrics.record_success("ai_gateway", "chat_completion", latency_ms=812.0)
>>> metrics.record_failure("handoff", "consult", error_type="HTTP 500")
>>> metrics.record_event("HandoffSkipped", agent="clara-member")
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "CareAgents"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # CloudWatch API limit per PutMetricData call


def _dims(**pairs: str) -> list[dict[str, str]]:
    return [{"Name": name, "Value": value} for name, value in pairs.items()]


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None  # lazy-init

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        """Create the boto3 CloudWatch client on first use."""
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Public API ────────────────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        """Record a successful external call."""
        now = datetime.now(UTC)
        self._datum("ExternalAPI/RequestCount", 1, "Count", now,
                    _dims(Service=service, Status="success"))
        self._datum("ExternalAPI/Latency", latency_ms, "Milliseconds", now,
                    _dims(Service=service, Operation=operation))
        logger.debug("Metric: %s %s success latency=%.1fms", service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        """Record a failed external call."""
        now = datetime.now(UTC)
        self._datum("ExternalAPI/RequestCount", 1, "Count", now,
                    _dims(Service=service, Status="failure"))
        self._datum("ExternalAPI/ErrorCount", 1, "Count", now,
                    _dims(Service=service, ErrorType=error_type))
        if latency_ms > 0:
            self._datum("ExternalAPI/Latency", latency_ms, "Milliseconds", now,
                        _dims(Service=service, Operation=operation))
        logger.debug(
            "Metric: %s %s failure error=%s latency=%.1fms",
            service, operation, error_type, latency_ms,
        )

    def record_event(self, event: str, *, agent: str) -> None:
        """Count a pipeline event (``HandoffSkipped``, ``PersistenceFailure``...)."""
        self._datum(f"Pipeline/{event}", 1, "Count", datetime.now(UTC), _dims(Agent=agent))
        logger.debug("Metric: pipeline event %s agent=%s", event, agent)

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
            self._buffer.clear()

        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d items", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    # ── Internal ──────────────────────────────────────────────────────

    def _datum(
        self,
        name: str,
        value: float,
        unit: str,
        timestamp: datetime,
        dimensions: list[dict[str, str]],
    ) -> None:
        with self._lock:
            self._buffer.append(
                {
                    "MetricName": name,
                    "Dimensions": dimensions,
                    "Timestamp": timestamp,
                    "Value": value,
                    "Unit": unit,
                }
            )

    def _start_flush_thread(self) -> None:
        """Start a daemon thread that flushes metrics periodically."""

        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        t = threading.Thread(target=_loop, daemon=True, name="metrics-flush")
        t.start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


# ── Module-level singleton ──────────────────────────────────────────
metrics = MetricsClient()
