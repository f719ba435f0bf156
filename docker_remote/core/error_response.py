"""RFC 7807 style error responses for callers that expose the core over HTTP.

Maps the core exception taxonomy to problem-details dictionaries with an
HTTP status, so a routing layer can render failures without knowing the
exception classes.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from .exceptions import (
    ConfigurationError,
    DockerCommandError,
    NotFoundError,
    SSHConnectionError,
    ValidationError,
)


class ErrorDetail(BaseModel):
    """RFC 7807 compliant error detail structure."""

    success: bool = Field(default=False, description="Always False for errors")
    error: str = Field(description="Human-readable error message")
    status: int = Field(default=500, description="Suggested HTTP status code")
    type: str | None = Field(default=None, description="Problem type URI")
    title: str | None = Field(default=None, description="Problem type summary")
    detail: str | None = Field(default=None, description="Specific problem details")
    instance: str | None = Field(default=None, description="Problem occurrence URI")
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class DockerRemoteErrorResponse:
    """Factory for standardized error responses."""

    PROBLEM_TYPES: dict[str, dict[str, Any]] = {
        "validation-error": {
            "type": "/problems/validation-error",
            "title": "Input Validation Failed",
            "status": 400,
        },
        "not-found": {
            "type": "/problems/not-found",
            "title": "Resource Not Found",
            "status": 404,
        },
        "docker-command-error": {
            "type": "/problems/docker-command-error",
            "title": "Docker Command Failed",
            "status": 502,
        },
        "connection-error": {
            "type": "/problems/connection-error",
            "title": "SSH Connection Failed",
            "status": 503,
        },
        "timeout-error": {
            "type": "/problems/timeout-error",
            "title": "Operation Timed Out",
            "status": 504,
        },
        "configuration-error": {
            "type": "/problems/configuration-error",
            "title": "Configuration Error",
            "status": 500,
        },
    }

    @classmethod
    def create_error(
        cls,
        error_message: str,
        problem_type: str | None = None,
        detail: str | None = None,
        instance: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Create a standardized error response.

        Args:
            error_message: Primary error message
            problem_type: Standard problem type key or custom type URI
            detail: Additional problem-specific details
            instance: Identifier for this specific occurrence
            context: Additional context fields (container_id, project, ...)

        Returns:
            RFC 7807 compliant error response dictionary
        """
        error_detail = ErrorDetail(error=error_message, detail=detail, instance=instance)

        if problem_type and problem_type in cls.PROBLEM_TYPES:
            problem_info = cls.PROBLEM_TYPES[problem_type]
            error_detail.type = problem_info["type"]
            error_detail.title = problem_info["title"]
            error_detail.status = problem_info["status"]
        elif problem_type:
            error_detail.type = problem_type

        response = error_detail.model_dump(exclude_none=True)

        if context:
            reserved_fields = set(ErrorDetail.model_fields)
            response.update({k: v for k, v in context.items() if k not in reserved_fields})

        return response

    @classmethod
    def from_exception(
        cls, error: Exception, instance: str | None = None, context: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Render any core exception as a problem-details response."""
        context = dict(context or {})
        if isinstance(error, ValidationError):
            problem_type = "validation-error"
        elif isinstance(error, NotFoundError):
            problem_type = "not-found"
        elif isinstance(error, DockerCommandError):
            problem_type = "docker-command-error"
            if error.exit_status is not None:
                context.setdefault("exit_status", error.exit_status)
        elif isinstance(error, SSHConnectionError):
            problem_type = "timeout-error" if error.timeout is not None else "connection-error"
            if error.timeout is not None:
                context.setdefault("timeout", error.timeout)
        elif isinstance(error, ConfigurationError):
            problem_type = "configuration-error"
        else:
            return cls.create_error(
                str(error) or "Internal error", instance=instance, context=context
            )

        return cls.create_error(
            error_message=str(error),
            problem_type=problem_type,
            instance=instance,
            context=context,
        )
