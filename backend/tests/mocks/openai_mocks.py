"""
Deterministic OpenAI mocks for Learning API testing.

These mocks mirror the shapes the AsyncOpenAI SDK returns (completions,
stream chunks, usage) so OpenAIModelClient can be tested without API costs.
"""

import copy
import json
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field


# =============================================================================
# Mock Data - Deterministic Responses
# =============================================================================

SCENARIO_REQUEST = {
    "subject": "English",
    "grade": 3,
    "questionType": "curriculum",
    "questionCount": 5,
    "difficulty": "hard",
    "includeExplanation": True,
}

MOCK_PROBLEMS = [
    {
        "question": "Which word is a noun?",
        "choices": ["run", "happy", "apple", "quickly"],
        "answer": "apple",
        "explanation": "An apple is a thing, so 'apple' is a noun.",
    },
    {
        "question": "Which word is the opposite of 'hot'?",
        "choices": ["warm", "cold", "big", "fast"],
        "answer": "cold",
        "explanation": "'Cold' means the opposite of 'hot'.",
    },
    {
        "question": "Choose the correct plural of 'child'.",
        "choices": ["childs", "childes", "children", "childrens"],
        "answer": "children",
        "explanation": "'Child' has an irregular plural: 'children'.",
    },
    {
        "question": "Which sentence ends with the correct punctuation?",
        "choices": ["Where is my hat.", "Where is my hat?", "Where is my hat,", "Where is my hat;"],
        "answer": "Where is my hat?",
        "explanation": "A question ends with a question mark.",
    },
    {
        "question": "Which word rhymes with 'cat'?",
        "choices": ["dog", "hat", "cup", "sun"],
        "answer": "hat",
        "explanation": "'Hat' and 'cat' end with the same '-at' sound.",
    },
]


def make_problem_payload(
    count: int = 5,
    include_explanation: bool = True,
    subject: str = "English",
    grade: int = 3,
    question_type: str = "curriculum",
    difficulty: str = "hard",
) -> Dict[str, Any]:
    """Build a well-formed problem set document with `count` problems."""
    problems = []
    for i in range(count):
        problem = copy.deepcopy(MOCK_PROBLEMS[i % len(MOCK_PROBLEMS)])
        problem["question"] = f"{problem['question']} ({i + 1})"
        if not include_explanation:
            problem.pop("explanation")
        problems.append(problem)

    return {
        "subject": subject,
        "grade": grade,
        "question_type": question_type,
        "difficulty": difficulty,
        "question_count": count,
        "problems": problems,
    }


def make_problem_json(count: int = 5, include_explanation: bool = True, **kwargs) -> str:
    return json.dumps(make_problem_payload(count, include_explanation, **kwargs), ensure_ascii=False)


# =============================================================================
# Mock Classes - SDK response shapes
# =============================================================================

@dataclass
class MockUsage:
    """Mock OpenAI usage object"""
    prompt_tokens: int = 120
    completion_tokens: int = 480
    total_tokens: int = 600


@dataclass
class MockMessage:
    """Mock OpenAI message object"""
    content: Optional[str]
    role: str = "assistant"


@dataclass
class MockChoice:
    """Mock OpenAI choice object"""
    message: MockMessage
    index: int = 0
    finish_reason: str = "stop"


@dataclass
class MockChatCompletion:
    """Mock OpenAI chat completion response"""
    id: str = "mock-completion-123"
    object: str = "chat.completion"
    created: int = 1699999999
    model: str = "gpt-4o-mini"
    choices: List[MockChoice] = None
    usage: Optional[MockUsage] = field(default_factory=MockUsage)

    def __post_init__(self):
        if self.choices is None:
            self.choices = [MockChoice(message=MockMessage(content="{}"))]


@dataclass
class MockDelta:
    content: Optional[str] = None
    role: Optional[str] = None


@dataclass
class MockStreamChoice:
    delta: MockDelta
    index: int = 0
    finish_reason: Optional[str] = None


@dataclass
class MockChunk:
    """Mock OpenAI streaming chunk"""
    choices: List[MockStreamChoice]
    model: str = "gpt-4o-mini"
    usage: Optional[MockUsage] = None


class MockAsyncStream:
    """
    Mock AsyncStream: async-iterable chunks with close().

    Raises `error` after `fail_after` chunks when both are set.
    """

    def __init__(self, chunks: List[MockChunk], error: Exception = None, fail_after: int = 0):
        self.chunks = chunks
        self.error = error
        self.fail_after = fail_after
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for index, chunk in enumerate(self.chunks):
            if self.error is not None and index == self.fail_after:
                raise self.error
            yield chunk
        if self.error is not None and self.fail_after >= len(self.chunks):
            raise self.error

    async def close(self):
        self.closed = True


def make_stream_chunks(pieces: List[str], usage: Optional[MockUsage] = None) -> List[MockChunk]:
    """Content chunks, a finish chunk, and (optionally) a trailing usage-only chunk."""
    chunks = [MockChunk(choices=[MockStreamChoice(delta=MockDelta(content=piece))]) for piece in pieces]
    chunks.append(MockChunk(choices=[MockStreamChoice(delta=MockDelta(), finish_reason="stop")]))
    if usage is not None:
        chunks.append(MockChunk(choices=[], usage=usage))
    return chunks


class MockCompletions:
    """Mock for client.chat.completions; async create() like AsyncOpenAI."""

    def __init__(self):
        self.response: Any = mock_openai_completion(make_problem_json())
        self.stream: Optional[MockAsyncStream] = None
        self.error: Optional[Exception] = None
        self.call_history: List[Dict[str, Any]] = []

    async def create(self, **kwargs):
        self.call_history.append(kwargs)
        if self.error is not None:
            raise self.error
        if kwargs.get("stream"):
            return self.stream
        return self.response


class MockChatEndpoint:
    """Mock for client.chat endpoint"""

    def __init__(self):
        self.completions = MockCompletions()


class MockModels:
    def __init__(self):
        self.error: Optional[Exception] = None

    async def list(self):
        if self.error is not None:
            raise self.error
        return [{"id": "gpt-4o-mini"}]


class MockAsyncOpenAI:
    """
    Mock AsyncOpenAI client for testing.
    Set chat.completions.response / .stream / .error to shape the next call.
    """

    def __init__(self):
        self.chat = MockChatEndpoint()
        self.models = MockModels()

    def get_call_count(self) -> int:
        """Get number of API calls made"""
        return len(self.chat.completions.call_history)

    def get_last_call(self) -> Optional[Dict[str, Any]]:
        """Get the last API call made"""
        history = self.chat.completions.call_history
        return history[-1] if history else None


# =============================================================================
# Helper Functions
# =============================================================================

def mock_openai_completion(content: Any = None, usage: Optional[MockUsage] = None) -> MockChatCompletion:
    """
    Create a mock chat completion response.

    Args:
        content: Response content (dict will be JSON-encoded)
        usage: Token usage (default MockUsage())

    Returns:
        MockChatCompletion object
    """
    if content is None:
        content = make_problem_payload()

    if isinstance(content, dict):
        content = json.dumps(content)

    return MockChatCompletion(
        choices=[
            MockChoice(
                message=MockMessage(content=content)
            )
        ],
        usage=usage or MockUsage(),
    )
