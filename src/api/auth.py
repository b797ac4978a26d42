"""Bearer-token and role checks performed before a pipeline runs.

Failures raise ``AuthorizationError`` (401) with a generic message; the role
a persona requires is logged server-side but not echoed to the caller.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass

from src.config import SUPABASE_SERVICE_ROLE_KEY
from src.errors import AuthorizationError
from src.pipeline.personas import Persona
from src.services.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    user_id: str | None = None


ANONYMOUS = Caller()


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def authenticate(
    authorization: str | None,
    persona: Persona,
    supabase: SupabaseClient,
) -> Caller:
    """Resolve the caller behind *authorization* and enforce *persona*'s policy.

    Personas that don't require auth still identify a signed-in caller so the
    conversation is attributed, but an invalid token is then simply anonymous.
    """
    token = _bearer_token(authorization)
    if token is None:
        if persona.requires_auth:
            raise AuthorizationError("Authorization required")
        return ANONYMOUS

    user = supabase.get_user(token)
    if user is None:
        if persona.requires_auth:
            raise AuthorizationError("Unauthorized")
        return ANONYMOUS

    caller = Caller(user_id=user["id"])
    if not persona.allowed_roles:
        return caller

    rows = supabase.select("user_roles", columns="role", filters={"user_id": f"eq.{user['id']}"})
    roles = frozenset(row["role"] for row in rows if row.get("role"))
    if not roles & persona.allowed_roles:
        logger.info(
            "User %s denied access to %s (roles: %s)",
            user["id"], persona.name, sorted(roles) or "none",
        )
        raise AuthorizationError("You do not have access to this agent")
    return caller


def require_service_key(authorization: str | None, service_key: str | None = None) -> None:
    """Allow only internal callers holding the service-role key (handoff route)."""
    token = _bearer_token(authorization)
    expected = service_key or SUPABASE_SERVICE_ROLE_KEY
    if token is None or not secrets.compare_digest(token.encode(), expected.encode()):
        raise AuthorizationError("Unauthorized")
