"""Error taxonomy for the care-agent pipeline.

Every error that may reach an HTTP caller derives from :class:`PipelineError`
and carries the status code the API layer responds with.  ``HandoffFailure``
and ``PersistenceFailure`` are internal: the pipeline logs them and carries
on, so they never reach a caller.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for errors surfaced to the caller as ``{"error": ...}``."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        if status_code is not None:
            self.status_code = status_code
        self.message = message
        super().__init__(message)


class InvalidRequestError(PipelineError):
    status_code = 400


class AuthorizationError(PipelineError):
    """Missing/invalid bearer token, or the caller lacks a required role."""

    status_code = 401


class ConfigurationError(PipelineError):
    status_code = 500


class AgentNotConfigured(ConfigurationError):
    """The agent name does not resolve to exactly one active configuration."""

    def __init__(self, agent_name: str):
        self.agent_name = agent_name
        super().__init__(f"Agent {agent_name} not configured")


class UnknownPersonaError(PipelineError):
    status_code = 404


class UpstreamRateLimited(PipelineError):
    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(message)


class UpstreamUnavailable(PipelineError):
    """The model gateway reported quota or billing exhaustion (HTTP 402)."""

    status_code = 402

    def __init__(self, message: str = "Service unavailable. Please contact support."):
        super().__init__(message)


class UpstreamGatewayError(PipelineError):
    """Any other model-gateway failure; ``upstream_status`` is ``None`` for transport errors."""

    status_code = 500

    def __init__(self, message: str, upstream_status: int | None = None):
        self.upstream_status = upstream_status
        super().__init__(message)


class UnexpectedResponseShape(UpstreamGatewayError):
    def __init__(self, message: str = "AI gateway returned an unexpected response shape"):
        super().__init__(message)


class DataAccessError(Exception):
    """Raised when a database read or write fails."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class HandoffFailure(Exception):
    """A consultation with another agent did not produce a reply."""


class PersistenceFailure(Exception):
    """The conversation log or analytics counter could not be written."""
