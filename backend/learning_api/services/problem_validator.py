"""
Problem Set Extraction and Validation

Turns raw model text (a full completion, or text accumulated from a stream)
into a validated ProblemSet. Models wrap JSON in prose and code fences, drop
fields and invent answers that are not among the choices; everything that
reaches a caller passes through validate_problem_set first.

The validator is pure: identical input yields an identical ProblemSet or an
identical ProblemValidationError.
"""

import json
import logging
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Tuple

from learning_api.services.generation_errors import ProblemValidationError
from learning_api.services.generation_types import (
    CHOICES_PER_PROBLEM,
    GenerationRequest,
    Problem,
    ProblemSet,
)

logger = logging.getLogger(__name__)


# Bounds the rescans of prose that is full of stray braces
MAX_OBJECT_CANDIDATES = 16


class _Selection(NamedTuple):
    candidate: Optional[str]
    data: Optional[Dict[str, Any]]
    found: bool
    decode_error: Optional[Exception]


def _balanced_object_at(raw_text: str, start: int) -> Optional[str]:
    """The {...} literal opening at raw_text[start], or None if it never closes."""
    depth = 0
    in_string = False
    escaped = False

    for pos in range(start, len(raw_text)):
        char = raw_text[pos]

        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return raw_text[start:pos + 1]

    return None


def _object_candidates(raw_text: str) -> Iterator[str]:
    """Balanced {...} literals, one per opening brace, in text order."""
    start = raw_text.find("{")
    tried = 0
    while start != -1 and tried < MAX_OBJECT_CANDIDATES:
        tried += 1
        candidate = _balanced_object_at(raw_text, start)
        if candidate is not None:
            yield candidate
        start = raw_text.find("{", start + 1)


def _select_object(raw_text: str) -> _Selection:
    """
    Pick the object to validate.

    The first candidate that decodes and has a "problems" key wins; failing
    that, the first candidate that decodes at all.
    """
    found = False
    decode_error: Optional[Exception] = None
    fallback: Optional[Tuple[str, Dict[str, Any]]] = None

    for candidate in _object_candidates(raw_text or ""):
        found = True
        try:
            data = json.loads(candidate)
        except (json.JSONDecodeError, RecursionError) as e:
            decode_error = decode_error or e
            continue
        if not isinstance(data, dict):
            continue
        if "problems" in data:
            return _Selection(candidate, data, True, decode_error)
        if fallback is None:
            fallback = (candidate, data)

    if fallback is not None:
        return _Selection(fallback[0], fallback[1], True, decode_error)
    return _Selection(None, None, found, decode_error)


def extract_json_object(raw_text: str) -> Optional[str]:
    """
    Return the JSON object literal embedded in raw_text.

    Every opening brace starts a candidate, so stray braces in surrounding
    prose are skipped. Braces inside JSON strings (including escaped quotes)
    do not count toward nesting. Returns None when no candidate both closes
    and decodes as an object.
    """
    return _select_object(raw_text).candidate


def _malformed(error: Optional[Exception]) -> ProblemValidationError:
    if isinstance(error, json.JSONDecodeError):
        detail = f"{error.msg} (line {error.lineno}, column {error.colno})"
    elif isinstance(error, RecursionError):
        detail = "nesting is too deep"
    else:
        detail = "no object could be decoded"
    return ProblemValidationError("malformed_json", f"Model response is not valid JSON: {detail}")


def _invalid(index: int, reason: str) -> ProblemValidationError:
    return ProblemValidationError(
        "invalid_problem",
        f"Problem {index} is invalid: {reason}",
        index=index,
        reason=reason,
    )


def _non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def validate_problem(item: Any, index: int, include_explanation: bool) -> Problem:
    """
    Validate one element of the problems array.

    Raises:
        ProblemValidationError: kind invalid_problem, on the first violation
    """
    if not isinstance(item, dict):
        raise _invalid(index, "problem must be an object")

    question = item.get("question")
    if not _non_empty_string(question):
        raise _invalid(index, "question must be a non-empty string")

    choices = item.get("choices")
    if not isinstance(choices, list):
        raise _invalid(index, "choices must be a list")
    if len(choices) != CHOICES_PER_PROBLEM:
        raise _invalid(
            index, f"choices must contain exactly {CHOICES_PER_PROBLEM} entries, got {len(choices)}"
        )
    if not all(_non_empty_string(choice) for choice in choices):
        raise _invalid(index, "every choice must be a non-empty string")
    if len(set(choices)) != len(choices):
        raise _invalid(index, "choices must be distinct")

    answer = item.get("answer")
    if not isinstance(answer, str) or answer not in choices:
        raise _invalid(index, "answer must exactly match one of the choices")

    explanation = item.get("explanation")
    if include_explanation:
        if not _non_empty_string(explanation):
            raise _invalid(index, "explanation is required")
    elif not isinstance(explanation, str) or not explanation.strip():
        explanation = None

    return Problem(
        question=question,
        choices=tuple(choices),
        answer=answer,
        explanation=explanation,
    )


def validate_problem_set(raw_text: str, request: GenerationRequest) -> ProblemSet:
    """
    Extract, parse and validate a problem set from raw model output.

    Steps:
    1. Try each balanced {...} literal in text order (prose, code fences
       and stray braces ignored) until one decodes
    2. Prefer the first decoded object that has a "problems" key
    3. Require a "problems" list
    4. Validate each problem in order
    5. Enforce the requested count: short batches are rejected, extra
       problems are dropped after they have been validated

    Args:
        raw_text: Model output text
        request: The request the output was generated for; metadata is copied from it

    Returns:
        ProblemSet with exactly request.question_count problems

    Raises:
        ProblemValidationError: no_json_found, malformed_json,
            missing_problems_field or invalid_problem
    """
    selection = _select_object(raw_text)
    if not selection.found:
        raise ProblemValidationError("no_json_found", "No JSON object found in model response")
    if selection.data is None:
        raise _malformed(selection.decode_error) from selection.decode_error

    data = selection.data
    problems_data = data.get("problems")
    if not isinstance(problems_data, list):
        raise ProblemValidationError(
            "missing_problems_field", 'Model response has no "problems" list'
        )

    problems: List[Problem] = [
        validate_problem(item, index, request.include_explanation)
        for index, item in enumerate(problems_data)
    ]

    expected = request.question_count
    if len(problems) < expected:
        raise _invalid(len(problems), f"expected {expected} problems, got {len(problems)}")
    if len(problems) > expected:
        logger.warning(
            "Model returned %d problems, %d requested - keeping the first %d",
            len(problems), expected, expected
        )
        problems = problems[:expected]

    return ProblemSet(
        subject=request.subject,
        grade=request.grade,
        question_type=request.question_type,
        difficulty=request.difficulty,
        question_count=expected,
        problems=tuple(problems),
    )
