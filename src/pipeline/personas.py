"""Per-endpoint policy for each agent persona.

A persona says *who may talk to* an agent and *how* its pipeline behaves:
whether a bearer token is needed, which roles are allowed, which context
detail it sees, whether it consults a specialist, and what it records.  The
agent's model configuration itself comes from the database (see
:mod:`src.pipeline.registry`).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from src.config import HANDOFF_TARGET_AGENT
from src.errors import UnknownPersonaError
from src.pipeline.context import CLINICAL, SUMMARY
from src.prompts import FAMILY_CONSULTATION_TEMPLATE, MEMBER_CONSULTATION_TEMPLATE


@dataclass(frozen=True)
class Persona:
    name: str
    tone: str = ""
    requires_auth: bool = True
    # Empty means any authenticated user
    allowed_roles: frozenset[str] = field(default_factory=frozenset)
    context_detail: str = SUMMARY
    strict_language: bool = False
    handoff_target: str | None = None
    consultation_template: str | None = None
    counts_resolution: bool = False
    persist: bool = True
    handoff_request: bool = False


PERSONAS: dict[str, Persona] = {
    p.name: p
    for p in (
        # Public sales assistant on the marketing site; signed-in visitors are recorded by id
        Persona(
            name="clara",
            requires_auth=False,
            strict_language=True,
            counts_resolution=True,
        ),
        Persona(
            name="clara-member",
            tone="Be warm, caring, and personal.",
            handoff_target=HANDOFF_TARGET_AGENT,
            consultation_template=MEMBER_CONSULTATION_TEMPLATE,
        ),
        Persona(
            name="clara-family",
            tone="Be supportive and reassuring.",
            handoff_target=HANDOFF_TARGET_AGENT,
            consultation_template=FAMILY_CONSULTATION_TEMPLATE,
        ),
        Persona(
            name="ineke",
            tone="Be precise and clinically focused.",
            allowed_roles=frozenset({"nurse", "admin"}),
            context_detail=CLINICAL,
            counts_resolution=True,
        ),
        Persona(
            name="isabella",
            tone="Be professional and data-driven.",
            allowed_roles=frozenset(
                {"facility_admin", "company_admin", "insurance_admin", "admin"}
            ),
        ),
        Persona(
            name="lee",
            tone="Be concise and operational.",
            allowed_roles=frozenset({"admin"}),
        ),
    )
}


def get_persona(name: str) -> Persona:
    try:
        return PERSONAS[name]
    except KeyError:
        raise UnknownPersonaError(f"Unknown agent: {name}") from None


def handoff_persona(target_agent: str) -> Persona:
    """Policy for answering a consultation on behalf of another agent.

    Summary context only, never consults further, and leaves recording to the
    agent that asked.
    """
    base = PERSONAS.get(target_agent, Persona(name=target_agent))
    return replace(
        base,
        requires_auth=False,
        allowed_roles=frozenset(),
        context_detail=SUMMARY,
        handoff_target=None,
        consultation_template=None,
        persist=False,
        handoff_request=True,
    )
