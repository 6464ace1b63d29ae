"""
Learning API Utilities Package

Contains:
- openai_client: Lazy-initialized async OpenAI client
"""

from learning_api.utils.openai_client import get_openai_client, reset_client

__all__ = [
    "get_openai_client",
    "reset_client"
]
