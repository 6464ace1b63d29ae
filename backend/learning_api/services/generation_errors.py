"""
Error taxonomy for the problem generation pipeline.

Every failure a caller can observe carries a stable ``kind`` tag plus a
human-readable message. Routers turn these into JSON bodies; raw SDK
exceptions never leave the service layer.

Usage:
    from learning_api.services.generation_errors import ModelEndpointError

    try:
        result = await generator.generate(request, user_id)
    except ModelEndpointError as e:
        if e.retryable:
            ...
"""

from typing import Any, Dict, Optional


class GenerationError(Exception):
    """Base exception for generation pipeline errors."""

    kind = "generation_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "retryable": self.retryable,
        }


class InputError(GenerationError, ValueError):
    """Request violates grade/count/field constraints. Raised before any model call."""

    kind = "input_error"


class ModelEndpointError(GenerationError):
    """
    The model endpoint failed (auth, rate limit, server, network, timeout).

    Attributes:
        kind: One of ENDPOINT_ERROR_KINDS
        status_code: HTTP status reported by the endpoint, when there was one
    """

    ENDPOINT_ERROR_KINDS = (
        "unauthorized",
        "rate_limited",
        "server_error",
        "network_error",
        "bad_request",
        "timeout",
    )
    RETRYABLE_KINDS = frozenset({"rate_limited", "server_error", "network_error", "timeout"})

    def __init__(self, kind: str, message: str, status_code: Optional[int] = None):
        if kind not in self.ENDPOINT_ERROR_KINDS:
            raise ValueError(f"Unknown endpoint error kind: {kind}")
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.retryable = kind in self.RETRYABLE_KINDS

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.status_code is not None:
            data["status_code"] = self.status_code
        return data


class ProblemValidationError(GenerationError):
    """
    The model answered, but its output breaks the problem set contract.

    Distinct from ModelEndpointError: the transport succeeded.
    """

    VALIDATION_ERROR_KINDS = (
        "no_json_found",
        "malformed_json",
        "missing_problems_field",
        "invalid_problem",
    )

    def __init__(
        self,
        kind: str,
        message: str,
        index: Optional[int] = None,
        reason: Optional[str] = None,
    ):
        if kind not in self.VALIDATION_ERROR_KINDS:
            raise ValueError(f"Unknown validation error kind: {kind}")
        super().__init__(message)
        self.kind = kind
        self.index = index
        self.reason = reason

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProblemValidationError):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash((self.kind, self.message, self.index, self.reason))

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.index is not None:
            data["index"] = self.index
        if self.reason is not None:
            data["reason"] = self.reason
        return data


class NotFoundError(GenerationError):
    """Record does not exist, or exists but belongs to someone else."""

    kind = "not_found"

    def __init__(self, message: str = "Log not found"):
        super().__init__(message)
