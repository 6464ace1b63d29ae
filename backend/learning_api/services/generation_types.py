"""
Domain types for problem generation.

Plain frozen dataclasses shared by the prompt builder, the validator,
both generators and the generation log store. Nothing here performs I/O.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from learning_api.services.generation_errors import InputError

DIFFICULTIES = ("easy", "medium", "hard")
MIN_GRADE, MAX_GRADE = 1, 12
MIN_QUESTION_COUNT, MAX_QUESTION_COUNT = 1, 10
CHOICES_PER_PROBLEM = 4


def _is_int(value: Any) -> bool:
    # bool is an int subclass; "grade": true is not a grade
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class GenerationRequest:
    """
    A validated request for a set of multiple-choice problems.

    Construction enforces every constraint, so any instance that exists
    is safe to hand to the prompt builder and the model.

    Raises:
        InputError: If any field violates its constraint
    """

    subject: str
    grade: int
    question_type: str
    question_count: int
    difficulty: str
    include_explanation: bool = True

    def __post_init__(self):
        if not isinstance(self.subject, str) or not self.subject.strip():
            raise InputError("subject is required")
        if not isinstance(self.question_type, str) or not self.question_type.strip():
            raise InputError("question_type is required")
        if not _is_int(self.grade) or not MIN_GRADE <= self.grade <= MAX_GRADE:
            raise InputError(f"grade must be an integer between {MIN_GRADE} and {MAX_GRADE}")
        if not _is_int(self.question_count) or not (
            MIN_QUESTION_COUNT <= self.question_count <= MAX_QUESTION_COUNT
        ):
            raise InputError(
                f"question_count must be an integer between "
                f"{MIN_QUESTION_COUNT} and {MAX_QUESTION_COUNT}"
            )
        if self.difficulty not in DIFFICULTIES:
            raise InputError(f"difficulty must be one of: {', '.join(DIFFICULTIES)}")
        if not isinstance(self.include_explanation, bool):
            raise InputError("include_explanation must be a boolean")

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GenerationRequest":
        """
        Build a request from a JSON payload.

        Accepts both camelCase (questionType) and snake_case (question_type)
        keys, since both shapes reach us from clients.
        """
        def pick(snake: str, camel: str, default: Any = None) -> Any:
            if snake in payload:
                return payload[snake]
            return payload.get(camel, default)

        return cls(
            subject=pick("subject", "subject"),
            grade=pick("grade", "grade"),
            question_type=pick("question_type", "questionType"),
            question_count=pick("question_count", "questionCount"),
            difficulty=pick("difficulty", "difficulty"),
            include_explanation=pick("include_explanation", "includeExplanation", True),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject": self.subject,
            "grade": self.grade,
            "question_type": self.question_type,
            "question_count": self.question_count,
            "difficulty": self.difficulty,
            "include_explanation": self.include_explanation,
        }


@dataclass(frozen=True)
class Problem:
    """One multiple-choice question. answer is always one of choices."""

    question: str
    choices: Tuple[str, ...]
    answer: str
    explanation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "question": self.question,
            "choices": list(self.choices),
            "answer": self.answer,
        }
        if self.explanation is not None:
            data["explanation"] = self.explanation
        return data


@dataclass(frozen=True)
class ProblemSet:
    """Validated problems plus the request metadata they were generated for."""

    subject: str
    grade: int
    question_type: str
    difficulty: str
    question_count: int
    problems: Tuple[Problem, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject": self.subject,
            "grade": self.grade,
            "question_type": self.question_type,
            "difficulty": self.difficulty,
            "question_count": self.question_count,
            "problems": [p.to_dict() for p in self.problems],
        }


@dataclass(frozen=True)
class TokenUsage:
    """Token counts for one attempt. estimated=True when counts were inferred from fragments."""

    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    estimated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "estimated": self.estimated,
        }


@dataclass(frozen=True)
class PromptPair:
    system_prompt: str
    user_prompt: str


@dataclass(frozen=True)
class CompletionParams:
    """Sampling parameters forwarded to the model endpoint."""

    max_tokens: int = 1000
    temperature: float = 0.7


@dataclass(frozen=True)
class Completion:
    """A full (non-streamed) completion from the model endpoint."""

    text: str
    usage: TokenUsage
    model: str


@dataclass(frozen=True)
class StreamFragment:
    """
    One item from a streamed completion.

    The final fragment has is_final=True, usually empty text, and carries
    usage when the endpoint reported it.
    """

    text: str
    is_final: bool = False
    usage: Optional[TokenUsage] = None
    finish_reason: Optional[str] = None


@dataclass(frozen=True)
class RequestContext:
    """Request-side details recorded with every log entry."""

    api_endpoint: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of a successful generation attempt."""

    problem_set: ProblemSet
    model: str
    usage: TokenUsage
    timestamp: datetime
    response_time_ms: int
    log_id: Optional[str] = None

    def metadata(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "usage": self.usage.to_dict(),
            "timestamp": self.timestamp.isoformat(),
            "response_time_ms": self.response_time_ms,
            "log_id": self.log_id,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.problem_set.to_dict()
        data["metadata"] = self.metadata()
        return data


@dataclass
class GenerationLogEntry:
    """
    One generation attempt, as handed to the log store.

    id and created_at are assigned by the store at write time unless set
    (tests backdate created_at to exercise the stats windows).
    """

    request: GenerationRequest
    status: str
    model: str
    user_id: Optional[str] = None
    problem_set: Optional[ProblemSet] = None
    raw_response: Optional[str] = None
    usage: TokenUsage = field(default_factory=TokenUsage)
    response_time_ms: Optional[int] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    context: RequestContext = field(default_factory=RequestContext)
    created_at: Optional[datetime] = None

    STATUSES = ("success", "error")

    def __post_init__(self):
        if self.status not in self.STATUSES:
            raise ValueError(f"status must be one of {self.STATUSES}, got {self.status!r}")


ChatMessages = List[Dict[str, str]]
