"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from src.models import ConversationContext


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str = Field(..., max_length=20_000)


class ChatRequest(BaseModel):
    """Incoming chat turn from the frontend: the full history so far."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage] = Field(
        ..., min_length=1, description="Conversation history, oldest first",
    )
    member_id: str | None = Field(None, alias="memberId")
    facility_id: str | None = Field(None, alias="facilityId")
    company_id: str | None = Field(None, alias="companyId")
    session_id: str | None = Field(None, alias="sessionId", max_length=100)
    context: ConversationContext | None = Field(
        None, description="Page hint, alerts, tasks (ids may also be given here)",
    )
    language: str | None = Field("en", max_length=10)

    def conversation(self) -> ConversationContext:
        """Merge top-level ids over the nested ``context`` object."""
        base = self.context or ConversationContext()
        return base.model_copy(
            update={
                "member_id": self.member_id or base.member_id,
                "facility_id": self.facility_id or base.facility_id,
                "company_id": self.company_id or base.company_id,
            }
        )


class HandoffRequest(BaseModel):
    """Consultation request from another agent's pipeline."""

    target_agent: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., min_length=1, max_length=20_000)
    context: ConversationContext = Field(default_factory=ConversationContext)
    language: str | None = Field("en", max_length=10)


class HandoffInfo(BaseModel):
    agent: str = Field(..., description="Display name of the consulted agent")
    message: str = Field(..., description="The consulted agent's raw reply")


class ChatResponse(BaseModel):
    """Response from the agent."""

    message: str = Field(..., description="The agent's reply")
    agent: str = Field(..., description="Display name of the answering agent")
    handoff: HandoffInfo | None = None


class HandoffResponse(BaseModel):
    message: str
    agent: str
    agent_name: str


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "care-agents"
