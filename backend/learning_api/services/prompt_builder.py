"""
Prompt templates for multiple-choice problem generation.

One fixed template, one fixed output schema. build_problem_prompt is pure:
the same request always produces the same prompts.
"""

import json
import os
from typing import Any, Dict

from learning_api.services.generation_types import (
    CHOICES_PER_PROBLEM,
    GenerationRequest,
    PromptPair,
)

# Output language for questions, choices and explanations
PROBLEM_LANGUAGE = os.getenv("PROBLEM_LANGUAGE", "Korean")

DIFFICULTY_GUIDANCE = {
    "easy": "recall of core facts and single-step reasoning",
    "medium": "applying a concept to a familiar situation with two or three steps",
    "hard": "multi-step reasoning, unfamiliar contexts and plausible distractors",
}

SYSTEM_PROMPT = f"""You are an experienced teacher and professional exam writer.
Create educational multiple-choice problems that match the requested conditions.
Problems must fit the student's grade level and reflect the school curriculum.
Explanations must walk the student through the reasoning step by step.
Write all problem text in {PROBLEM_LANGUAGE}.
Respond with JSON only. Do not include any other text."""


def problem_schema(request: GenerationRequest) -> Dict[str, Any]:
    """The JSON document shape the model is told to emit for this request."""
    problem: Dict[str, Any] = {
        "question": "string - the question text",
        "choices": [f"string - choice {i + 1}" for i in range(CHOICES_PER_PROBLEM)],
        "answer": "string - exactly one of the choices, copied verbatim",
    }
    if request.include_explanation:
        problem["explanation"] = "string - why the answer is correct and why each other choice is wrong"

    return {
        "subject": request.subject,
        "grade": request.grade,
        "question_type": request.question_type,
        "difficulty": request.difficulty,
        "question_count": request.question_count,
        "problems": [problem],
    }


def build_problem_prompt(request: GenerationRequest) -> PromptPair:
    """
    Build the system and user prompts for a generation request.

    The user prompt restates every request field, spells out the output
    schema, demands JSON only and asks for grade-appropriate difficulty.

    Args:
        request: Already-validated generation request

    Returns:
        PromptPair with system_prompt and user_prompt
    """
    schema = json.dumps(problem_schema(request), ensure_ascii=False, indent=2)

    rule_lines = [
        "- question: a clear, specific, non-empty question",
        f"- choices: exactly {CHOICES_PER_PROBLEM} distinct choices",
        "- answer: must match one of the choices exactly, character for character",
    ]
    if request.include_explanation:
        rule_lines.append(
            "- explanation: a detailed explanation of why the answer is correct "
            "and why the other choices are wrong"
        )
    rules = "\n".join(rule_lines)

    explanation_line = (
        "Include an explanation for every problem."
        if request.include_explanation
        else "Explanations are not required."
    )

    user_prompt = f"""Create problems that match the following conditions:

Subject: {request.subject}
Grade: {request.grade}
Question type: {request.question_type}
Number of problems: {request.question_count}
Difficulty: {request.difficulty} ({DIFFICULTY_GUIDANCE[request.difficulty]})
Include explanations: {"yes" if request.include_explanation else "no"}

Respond ONLY with a JSON object in exactly this format:

{schema}

The "problems" array must contain exactly {request.question_count} problems. Each problem must contain:
{rules}

Calibrate the difficulty to what a grade {request.grade} student can reasonably handle at the "{request.difficulty}" level. {explanation_line}
Output the JSON object only, with no code fences and no commentary."""

    return PromptPair(system_prompt=SYSTEM_PROMPT, user_prompt=user_prompt)
