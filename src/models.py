"""Domain models shared by the pipeline components."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AgentConfig(BaseModel):
    """Resolved configuration for one agent persona (read-only to the pipeline)."""

    model_config = ConfigDict(frozen=True)

    agent_id: str
    name: str
    display_name: str
    model: str
    temperature: float = Field(0.7, ge=0.0, le=1.0)
    max_tokens: int = Field(1024, gt=0)
    system_prompt: str
    status: str = "active"


class KnowledgeItem(BaseModel):
    category: str = "General"
    title: str
    content: str
    priority: int = 0
    is_active: bool = True


class ConversationContext(BaseModel):
    """Request-scoped foreign ids and hints used for prompt augmentation.

    Never persisted.  Field aliases accept the camelCase keys the front end
    sends (``memberId``) as well as the snake_case names.
    """

    model_config = ConfigDict(populate_by_name=True)

    member_id: str | None = Field(None, alias="memberId")
    facility_id: str | None = Field(None, alias="facilityId")
    company_id: str | None = Field(None, alias="companyId")
    page: str | None = None
    alerts: list[Any] = Field(default_factory=list)
    tasks: list[Any] = Field(default_factory=list)

    def ids(self) -> dict[str, str]:
        """Return the camelCase id mapping forwarded on a handoff."""
        return self.model_dump(
            by_alias=True,
            include={"member_id", "facility_id", "company_id"},
            exclude_none=True,
        )


class HandoffResult(BaseModel):
    """Reply obtained from a consulted agent; attached to the response, never stored."""

    agent: str
    message: str
    agent_name: str | None = None


class PipelineResult(BaseModel):
    message: str
    agent: str
    handoff: HandoffResult | None = None
