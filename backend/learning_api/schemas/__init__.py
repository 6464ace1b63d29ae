"""
Learning API Schemas Package

Pydantic models for request/response validation.
"""

from learning_api.schemas.problems import (
    # Request bodies
    ProblemGenerationBody,
    AskBody,
    ChatBody,

    # Responses
    ProblemOut,
    ProblemSetOut,
    UsageOut,
    GenerationMetadataOut,
    GenerationResponse,
    LogSummaryOut,
    LogPageResponse,
)

__all__ = [
    "ProblemGenerationBody",
    "AskBody",
    "ChatBody",
    "ProblemOut",
    "ProblemSetOut",
    "UsageOut",
    "GenerationMetadataOut",
    "GenerationResponse",
    "LogSummaryOut",
    "LogPageResponse",
]
