# Services module

# Problem generation pipeline
from learning_api.services.generation_errors import (
    GenerationError,
    InputError,
    ModelEndpointError,
    ProblemValidationError,
    NotFoundError,
)

from learning_api.services.generation_types import (
    GenerationRequest,
    Problem,
    ProblemSet,
    TokenUsage,
    GenerationResult,
    GenerationLogEntry,
    RequestContext,
)

from learning_api.services.prompt_builder import build_problem_prompt
from learning_api.services.problem_validator import validate_problem_set

__all__ = [
    # Errors
    "GenerationError",
    "InputError",
    "ModelEndpointError",
    "ProblemValidationError",
    "NotFoundError",
    # Types
    "GenerationRequest",
    "Problem",
    "ProblemSet",
    "TokenUsage",
    "GenerationResult",
    "GenerationLogEntry",
    "RequestContext",
    # Pipeline
    "build_problem_prompt",
    "validate_problem_set",
]
