"""Centralized configuration for the Care Agents pipeline.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/care-agents/<VARIABLE_NAME>``.

The model-gateway key and the database credentials are required: a missing
value raises at import time so the server never starts half-configured.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415 (lazy import keeps boto3 off the test path)

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/care-agents/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /care-agents/{name} (AWS)."
    )


# ── Model gateway ───────────────────────────────────────────────────
AI_GATEWAY_API_KEY: str = _require_env("AI_GATEWAY_API_KEY")
AI_GATEWAY_URL: str = os.getenv(
    "AI_GATEWAY_URL", "https://ai.gateway.lovable.dev/v1/chat/completions",
)
GATEWAY_TIMEOUT_SECONDS: float = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "60"))

# ── Database (PostgREST + Auth) ─────────────────────────────────────
SUPABASE_URL: str = _require_env("SUPABASE_URL").rstrip("/")
SUPABASE_SERVICE_ROLE_KEY: str = _require_env("SUPABASE_SERVICE_ROLE_KEY")
SUPABASE_TIMEOUT_SECONDS: float = float(os.getenv("SUPABASE_TIMEOUT_SECONDS", "15"))

# Agent configuration is re-read at most once per TTL (0 disables caching)
AGENT_CONFIG_TTL_SECONDS: float = float(os.getenv("AGENT_CONFIG_TTL_SECONDS", "60"))

# ── Handoff ─────────────────────────────────────────────────────────
HANDOFF_TARGET_AGENT: str = os.getenv("HANDOFF_TARGET_AGENT", "ineke")
HANDOFF_TIMEOUT_SECONDS: float = float(os.getenv("HANDOFF_TIMEOUT_SECONDS", "60"))

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")

# Remote handoff route; unset means consultations run in-process
HANDOFF_URL: str | None = os.getenv("HANDOFF_URL") or None
