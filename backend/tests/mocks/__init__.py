"""
Mock infrastructure for Learning API testing.
Provides deterministic mocks for OpenAI and the model endpoint client.
"""

from .openai_mocks import (
    SCENARIO_REQUEST,
    MOCK_PROBLEMS,
    MockAsyncOpenAI,
    MockAsyncStream,
    MockChatCompletion,
    MockUsage,
    make_problem_json,
    make_problem_payload,
    make_stream_chunks,
    mock_openai_completion,
)
from .model_fakes import (
    FAKE_MODEL,
    FAKE_USAGE,
    FakeModelClient,
    FailingLogStore,
    RecordingLogStore,
    split_into_fragments,
)

__all__ = [
    "SCENARIO_REQUEST",
    "MOCK_PROBLEMS",
    "MockAsyncOpenAI",
    "MockAsyncStream",
    "MockChatCompletion",
    "MockUsage",
    "make_problem_json",
    "make_problem_payload",
    "make_stream_chunks",
    "mock_openai_completion",
    "FAKE_MODEL",
    "FAKE_USAGE",
    "FakeModelClient",
    "FailingLogStore",
    "RecordingLogStore",
    "split_into_fragments",
]
