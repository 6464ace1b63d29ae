"""
Lazy-initialized async OpenAI client to prevent import-time errors
when OPENAI_API_KEY is not set.
"""

import os
from typing import Optional
import httpx
from openai import AsyncOpenAI

_client: Optional[AsyncOpenAI] = None

# Timeout configuration: 60s total request, 10s connect
OPENAI_TIMEOUT_SECONDS = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "60"))
DEFAULT_TIMEOUT = httpx.Timeout(OPENAI_TIMEOUT_SECONDS, connect=10.0)


def get_openai_client() -> AsyncOpenAI:
    """
    Get a lazily-initialized AsyncOpenAI client with timeout configuration.

    This prevents the client from being initialized at module import time,
    which would cause errors if OPENAI_API_KEY is not set in the environment.

    Retries are disabled: callers decide whether a failed generation is
    worth repeating.

    Returns:
        AsyncOpenAI: The client instance

    Raises:
        ValueError: If OPENAI_API_KEY is not set
    """
    global _client

    if _client is None:
        api_key = os.getenv('OPENAI_API_KEY')
        if not api_key:
            raise ValueError(
                "OPENAI_API_KEY environment variable is not set. "
                "Please set it before using AI features."
            )
        _client = AsyncOpenAI(api_key=api_key, timeout=DEFAULT_TIMEOUT, max_retries=0)

    return _client


def reset_client() -> None:
    """
    Reset the client (useful for testing or when API key changes).
    """
    global _client
    _client = None
