"""
Request/response schemas for problem generation and tutoring endpoints.

Range checks (grade, count, difficulty) live on GenerationRequest so the
sync, streaming and programmatic entry points share one set of rules;
the bodies here only shape the payload.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from learning_api.services.generation_types import GenerationRequest


# =============================================================================
# REQUEST BODIES
# =============================================================================

class ProblemGenerationBody(BaseModel):
    """Accepts camelCase (questionType) or snake_case (question_type) keys."""
    model_config = ConfigDict(populate_by_name=True)

    subject: str
    grade: int
    question_type: str = Field(..., alias="questionType")
    question_count: int = Field(..., alias="questionCount")
    difficulty: str
    include_explanation: bool = Field(True, alias="includeExplanation")

    def to_request(self) -> GenerationRequest:
        return GenerationRequest(
            subject=self.subject,
            grade=self.grade,
            question_type=self.question_type,
            question_count=self.question_count,
            difficulty=self.difficulty,
            include_explanation=self.include_explanation,
        )


class AskBody(BaseModel):
    question: str


class ChatBody(BaseModel):
    messages: List[Dict[str, Any]] = Field(..., description="OpenAI-style {role, content} messages")


# =============================================================================
# RESPONSES
# =============================================================================

class ProblemOut(BaseModel):
    question: str
    choices: List[str]
    answer: str
    explanation: Optional[str] = None


class ProblemSetOut(BaseModel):
    subject: str
    grade: int
    question_type: str
    difficulty: str
    question_count: int
    problems: List[ProblemOut]


class UsageOut(BaseModel):
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    estimated: bool = False


class GenerationMetadataOut(BaseModel):
    model: str
    usage: UsageOut
    timestamp: str
    response_time_ms: int
    log_id: Optional[str] = None


class GenerationResponse(BaseModel):
    success: bool = True
    data: ProblemSetOut
    metadata: GenerationMetadataOut


class LogSummaryOut(BaseModel):
    id: str
    subject: Optional[str] = None
    grade: Optional[int] = None
    question_type: Optional[str] = None
    question_count: Optional[int] = None
    difficulty: Optional[str] = None
    status: str
    error_kind: Optional[str] = None
    total_tokens: Optional[int] = None
    response_time_ms: Optional[int] = None
    created_at: Optional[str] = None


class LogPageResponse(BaseModel):
    success: bool = True
    items: List[LogSummaryOut]
    total: int
    limit: int
    offset: int
