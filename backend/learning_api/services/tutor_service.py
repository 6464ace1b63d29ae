"""
Tutor Service

Free-form study help alongside problem generation: a single question
(ask) or a conversation with history (chat). Both go through the same
OpenAIModelClient as generation; answers are not logged.
"""

import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from learning_api.services.generation_errors import InputError
from learning_api.services.generation_types import ChatMessages, Completion, CompletionParams

logger = logging.getLogger(__name__)

MAX_QUESTION_LENGTH = 2000
MAX_HISTORY_MESSAGES = 20
CHAT_ROLES = ("system", "user", "assistant")

TUTOR_PARAMS = CompletionParams(max_tokens=1000, temperature=0.7)

TUTOR_LANGUAGE = os.getenv("PROBLEM_LANGUAGE", "Korean")

TUTOR_SYSTEM_PROMPT = f"""You are a friendly and helpful AI study assistant.
Answer the student's questions accurately and in a way that is easy to understand.
Explain complex concepts step by step and use suitable examples.
Answer in {TUTOR_LANGUAGE}."""


def trim_history(messages: ChatMessages, max_messages: int = MAX_HISTORY_MESSAGES) -> ChatMessages:
    """
    Keep every system message plus the most recent non-system messages.

    System messages move to the front; conversation order is preserved.
    """
    system_messages = [m for m in messages if m["role"] == "system"]
    conversation = [m for m in messages if m["role"] != "system"]
    return system_messages + conversation[-max_messages:]


def validate_messages(messages: Any) -> ChatMessages:
    """
    Check a chat history payload.

    Raises:
        InputError: Not a non-empty list of {role, content} with a known role
    """
    if not isinstance(messages, list) or not messages:
        raise InputError("messages must be a non-empty list")

    cleaned: List[Dict[str, str]] = []
    for index, message in enumerate(messages):
        if not isinstance(message, dict):
            raise InputError(f"message {index} must be an object")
        role = message.get("role")
        content = message.get("content")
        if role not in CHAT_ROLES:
            raise InputError(f"message {index} role must be one of: {', '.join(CHAT_ROLES)}")
        if not isinstance(content, str) or not content.strip():
            raise InputError(f"message {index} content must be a non-empty string")
        cleaned.append({"role": role, "content": content})
    return cleaned


class TutorService:
    """Ask/chat on top of a model client."""

    def __init__(self, client):
        self.client = client

    async def ask(self, question: Any, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Answer a single question.

        Raises:
            InputError: Empty question or longer than MAX_QUESTION_LENGTH
            ModelEndpointError: Endpoint failure
        """
        if not isinstance(question, str) or not question.strip():
            raise InputError("question is required")
        if len(question) > MAX_QUESTION_LENGTH:
            raise InputError(f"question is too long (max {MAX_QUESTION_LENGTH} characters)")

        logger.info("Tutor question from %s (%d chars)", user_id or "anonymous", len(question))

        completion = await self.client.complete(
            TUTOR_SYSTEM_PROMPT, question.strip(), TUTOR_PARAMS
        )
        return self._answer(completion)

    async def chat(self, messages: Any, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Continue a conversation.

        A default tutor system message is prepended when the history has
        none; long histories are trimmed with trim_history().

        Raises:
            InputError: Malformed history
            ModelEndpointError: Endpoint failure
        """
        history = validate_messages(messages)
        if not any(m["role"] == "system" for m in history):
            history.insert(0, {"role": "system", "content": TUTOR_SYSTEM_PROMPT})
        history = trim_history(history)

        logger.info("Tutor chat from %s (%d messages)", user_id or "anonymous", len(history))

        completion = await self.client.complete_messages(history, TUTOR_PARAMS)
        result = self._answer(completion)
        result["message"] = {"role": "assistant", "content": completion.text}
        return result

    @staticmethod
    def _answer(completion: Completion) -> Dict[str, Any]:
        logger.info("Tutor answer complete (tokens=%s)", completion.usage.total_tokens)
        return {
            "answer": completion.text,
            "metadata": {
                "model": completion.model,
                "usage": completion.usage.to_dict(),
                "timestamp": datetime.utcnow().isoformat(),
            },
        }
