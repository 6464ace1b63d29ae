"""
OpenAI Model Endpoint Client

Wraps the async OpenAI chat completions API behind the small surface the
generation pipeline needs:
- complete(): one blocking (awaited) completion
- complete_stream(): incremental fragments, ending with one final fragment
- SDK exceptions translated into ModelEndpointError kinds
- Sentry error tracking

The client holds configuration only; nothing about an individual request is
stored on it, so one instance is shared by every request.

Usage:
    from learning_api.services.openai_service import OpenAIModelClient

    client = OpenAIModelClient()
    completion = await client.complete(system_prompt, user_prompt)
"""

import logging
import os
from typing import AsyncIterator, Callable, Optional

import openai
import sentry_sdk
from openai import AsyncOpenAI

from learning_api.services.generation_errors import ModelEndpointError
from learning_api.services.generation_types import (
    ChatMessages,
    Completion,
    CompletionParams,
    StreamFragment,
    TokenUsage,
)
from learning_api.utils.openai_client import get_openai_client

logger = logging.getLogger(__name__)

DEFAULT_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")


def _usage_from_sdk(usage) -> TokenUsage:
    if usage is None:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=usage.prompt_tokens,
        completion_tokens=usage.completion_tokens,
        total_tokens=usage.total_tokens,
    )


def translate_openai_error(error: Exception) -> ModelEndpointError:
    """
    Map an OpenAI SDK exception onto the endpoint error taxonomy.

    401/403 -> unauthorized, 429 -> rate_limited, 400/404/422 -> bad_request,
    5xx -> server_error, timeouts -> timeout, connection failures -> network_error.
    """
    if isinstance(error, ModelEndpointError):
        return error

    # APITimeoutError subclasses APIConnectionError, so check it first
    if isinstance(error, openai.APITimeoutError):
        return ModelEndpointError("timeout", "The model endpoint timed out.")
    if isinstance(error, openai.APIConnectionError):
        return ModelEndpointError("network_error", "Could not connect to the model endpoint.")

    if isinstance(error, openai.APIStatusError):
        status = error.status_code
        if status in (401, 403):
            return ModelEndpointError(
                "unauthorized", "The OpenAI API key is invalid or lacks permission.", status
            )
        if status == 429:
            return ModelEndpointError(
                "rate_limited", "The model endpoint rate limit was exceeded. Try again shortly.", status
            )
        if status >= 500:
            return ModelEndpointError(
                "server_error", "The model endpoint had a temporary server error.", status
            )
        return ModelEndpointError(
            "bad_request", f"The model endpoint rejected the request: {error.message}", status
        )

    return ModelEndpointError("server_error", f"Unexpected model endpoint failure: {error}")


class OpenAIModelClient:
    """
    Stateless async client for the OpenAI chat completions endpoint.

    Args:
        client: Pre-built AsyncOpenAI client; defaults to the lazily
            created shared client
        model: Model name (default: OPENAI_MODEL or gpt-4o-mini)
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: str = DEFAULT_MODEL):
        self._client = client
        self._client_factory: Callable[[], AsyncOpenAI] = get_openai_client
        self.model = model

    @property
    def client(self) -> AsyncOpenAI:
        # Resolve lazily so a missing API key only fails when a call is made
        if self._client is not None:
            return self._client
        return self._client_factory()

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        params: Optional[CompletionParams] = None,
    ) -> Completion:
        """
        Request a single full completion for a system + user prompt.

        Raises:
            ModelEndpointError: On any endpoint failure
        """
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        return await self.complete_messages(messages, params)

    async def complete_messages(
        self,
        messages: ChatMessages,
        params: Optional[CompletionParams] = None,
    ) -> Completion:
        """
        Request a single full completion for an arbitrary message history.

        Raises:
            ModelEndpointError: On any endpoint failure, or when no choices come back
        """
        params = params or CompletionParams()
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=params.max_tokens,
                temperature=params.temperature,
            )
        except Exception as e:
            raise self._endpoint_failure(e, streaming=False) from e

        if not response.choices:
            raise ModelEndpointError("server_error", "The model endpoint returned no choices.")

        return Completion(
            text=response.choices[0].message.content or "",
            usage=_usage_from_sdk(response.usage),
            model=response.model or self.model,
        )

    async def complete_stream(
        self,
        system_prompt: str,
        user_prompt: str,
        params: Optional[CompletionParams] = None,
    ) -> AsyncIterator[StreamFragment]:
        """
        Stream a completion as StreamFragments.

        Yields one fragment per non-empty content delta, in arrival order,
        then exactly one fragment with is_final=True carrying usage when the
        endpoint reported it. The underlying HTTP stream is closed when the
        iterator finishes or is closed early.

        Raises:
            ModelEndpointError: At any point in the sequence
        """
        params = params or CompletionParams()
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

        try:
            stream = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=params.max_tokens,
                temperature=params.temperature,
                stream=True,
                stream_options={"include_usage": True},
            )
        except Exception as e:
            raise self._endpoint_failure(e, streaming=True) from e

        usage: Optional[TokenUsage] = None
        finish_reason: Optional[str] = None
        try:
            async for chunk in stream:
                if chunk.usage is not None:
                    usage = _usage_from_sdk(chunk.usage)
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                if choice.delta is not None and choice.delta.content:
                    yield StreamFragment(text=choice.delta.content)
                if choice.finish_reason:
                    finish_reason = choice.finish_reason
        except Exception as e:
            raise self._endpoint_failure(e, streaming=True) from e
        finally:
            await stream.close()

        yield StreamFragment(text="", is_final=True, usage=usage, finish_reason=finish_reason)

    async def validate_api_key(self) -> bool:
        """Return True if the configured API key can list models."""
        try:
            await self.client.models.list()
            return True
        except Exception as e:
            logger.error("OpenAI API key validation failed: %s", e)
            return False

    def _endpoint_failure(self, error: Exception, streaming: bool) -> ModelEndpointError:
        translated = translate_openai_error(error)
        sentry_sdk.capture_exception(error)
        logger.error(
            "OpenAI %s call failed: kind=%s status=%s error=%s",
            "streaming" if streaming else "completion",
            translated.kind,
            translated.status_code,
            error,
        )
        return translated
