"""
Problem Generator

Runs one generation attempt end to end: prompt -> model -> validator,
with exactly one generation log write per attempt.

Two entry points share the same pipeline:
- generate(): awaits a single full completion and returns a GenerationResult
- stream(): async generator of lifecycle events (start, progress,
  stream_start, chunk..., parsing, then complete or error)

generate_streaming() drives stream() for callers that prefer callbacks.

Usage:
    generator = ProblemGenerator(OpenAIModelClient(), GenerationLogStore(SessionLocal))

    result = await generator.generate(request, caller_id=user_id)

    async for event in generator.stream(request, caller_id=user_id):
        ...
"""

import asyncio
import inspect
import logging
import os
import time
from contextlib import aclosing
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import sentry_sdk

from learning_api.services.generation_errors import (
    GenerationError,
    ModelEndpointError,
    ProblemValidationError,
)
from learning_api.services.generation_types import (
    CompletionParams,
    GenerationLogEntry,
    GenerationRequest,
    GenerationResult,
    ProblemSet,
    RequestContext,
    TokenUsage,
)
from learning_api.services.problem_validator import validate_problem_set
from learning_api.services.prompt_builder import build_problem_prompt

logger = logging.getLogger(__name__)

# Ceiling for one attempt: the sync call, or the stream from dispatch to final fragment
GENERATION_TIMEOUT_SECONDS = float(os.getenv("GENERATION_TIMEOUT_SECONDS", "90"))

# Problem sets are long and benefit from a little more variety than tutoring answers
PROBLEM_PARAMS = CompletionParams(max_tokens=3000, temperature=0.8)

TERMINAL_EVENTS = ("complete", "error")


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _timeout_error(seconds: float) -> ModelEndpointError:
    return ModelEndpointError(
        "timeout", f"The model did not finish within {seconds:g} seconds."
    )


def _unexpected_error() -> ModelEndpointError:
    return ModelEndpointError("server_error", "Unexpected error while generating problems.")


def estimate_usage(fragment_count: int) -> TokenUsage:
    """Fallback usage for streams whose endpoint reported no token counts."""
    return TokenUsage(
        prompt_tokens=None,
        completion_tokens=fragment_count,
        total_tokens=fragment_count,
        estimated=True,
    )


class ProblemGenerator:
    """
    Generates validated problem sets through an injected model client.

    Args:
        client: Model endpoint client (OpenAIModelClient or a test fake).
            Must expose complete(), complete_stream() and a model attribute.
        log_store: GenerationLogStore receiving one entry per attempt
        timeout_seconds: Ceiling for a single attempt
        params: Sampling parameters sent with every request
    """

    def __init__(
        self,
        client,
        log_store,
        timeout_seconds: float = GENERATION_TIMEOUT_SECONDS,
        params: CompletionParams = PROBLEM_PARAMS,
    ):
        self.client = client
        self.log_store = log_store
        self.timeout_seconds = timeout_seconds
        self.params = params

    # =========================================================================
    # Synchronous generation
    # =========================================================================

    async def generate(
        self,
        request: GenerationRequest,
        caller_id: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> GenerationResult:
        """
        Generate a problem set with one full completion.

        Returns:
            GenerationResult with the validated problem set and usage metadata

        Raises:
            ModelEndpointError: Endpoint failure or timeout
            ProblemValidationError: The model's output broke the contract

        Any other exception is logged as a server_error attempt and re-raised.
        """
        context = context or RequestContext()
        self._log_request(request, caller_id, streaming=False)

        prompt = build_problem_prompt(request)
        started = time.perf_counter()

        try:
            completion = await asyncio.wait_for(
                self.client.complete(prompt.system_prompt, prompt.user_prompt, self.params),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            error = _timeout_error(self.timeout_seconds)
            await self._record_failure(request, caller_id, context, error, started)
            raise error from None
        except ModelEndpointError as e:
            await self._record_failure(request, caller_id, context, e, started)
            raise
        except Exception:
            logger.exception("Unexpected error while calling the model")
            await self._record_failure(request, caller_id, context, _unexpected_error(), started)
            raise

        try:
            problem_set = validate_problem_set(completion.text, request)
        except ProblemValidationError as e:
            await self._record_failure(
                request, caller_id, context, e, started,
                raw_response=completion.text,
                usage=completion.usage,
                model=completion.model,
            )
            raise
        except Exception:
            logger.exception("Unexpected error while validating model output")
            await self._record_failure(
                request, caller_id, context, _unexpected_error(), started,
                raw_response=completion.text,
                usage=completion.usage,
                model=completion.model,
            )
            raise

        response_time_ms = _elapsed_ms(started)
        log_id = await self._write_log(GenerationLogEntry(
            request=request,
            status="success",
            model=completion.model,
            user_id=caller_id,
            problem_set=problem_set,
            raw_response=completion.text,
            usage=completion.usage,
            response_time_ms=response_time_ms,
            context=context,
        ))

        logger.info(
            "Generated %d problems in %dms (tokens=%s)",
            len(problem_set.problems), response_time_ms, completion.usage.total_tokens
        )

        return GenerationResult(
            problem_set=problem_set,
            model=completion.model,
            usage=completion.usage,
            timestamp=datetime.utcnow(),
            response_time_ms=response_time_ms,
            log_id=log_id,
        )

    # =========================================================================
    # Streaming generation
    # =========================================================================

    async def stream(
        self,
        request: GenerationRequest,
        caller_id: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Generate a problem set as a sequence of event dicts.

        Events arrive in this order: start, progress, stream_start (first
        fragment only), one chunk per fragment, parsing, then exactly one of
        complete or error. Nothing follows the terminal event.

        Closing the generator early (consumer disconnect) closes the model
        stream, emits nothing further and writes no log entry.
        """
        context = context or RequestContext()
        self._log_request(request, caller_id, streaming=True)

        prompt = build_problem_prompt(request)
        started = time.perf_counter()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_seconds

        parts: List[str] = []
        fragment_count = 0
        usage: Optional[TokenUsage] = None
        error: Optional[GenerationError] = None

        yield self._event("start", message="Starting problem generation")

        fragments = self.client.complete_stream(
            prompt.system_prompt, prompt.user_prompt, self.params
        )
        yield self._event("progress", message="Request sent to the model, waiting for output")

        try:
            async with aclosing(fragments):
                while True:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        raise asyncio.TimeoutError()
                    try:
                        fragment = await asyncio.wait_for(fragments.__anext__(), timeout=remaining)
                    except StopAsyncIteration:
                        break

                    if fragment.is_final:
                        usage = fragment.usage
                        break
                    if not fragment.text:
                        continue

                    fragment_count += 1
                    parts.append(fragment.text)
                    if fragment_count == 1:
                        yield self._event("stream_start", message="Receiving problems from the model")
                    yield self._event(
                        "chunk",
                        content=fragment.text,
                        full_response="".join(parts),
                        token_count=fragment_count,
                    )
        except (GeneratorExit, asyncio.CancelledError):
            logger.info(
                "Streaming generation cancelled by consumer after %d fragments (user=%s)",
                fragment_count, caller_id or "anonymous"
            )
            raise
        except asyncio.TimeoutError:
            error = _timeout_error(self.timeout_seconds)
            logger.error("Streaming generation timed out after %d fragments", fragment_count)
        except ModelEndpointError as e:
            error = e
        except Exception as e:
            logger.exception("Unexpected error while streaming from the model")
            sentry_sdk.capture_exception(e)
            error = _unexpected_error()

        raw_text = "".join(parts)
        if usage is None or usage.total_tokens is None:
            usage = estimate_usage(fragment_count)

        problem_set: Optional[ProblemSet] = None
        if error is None:
            yield self._event("parsing", message="Validating generated problems")
            try:
                problem_set = validate_problem_set(raw_text, request)
            except ProblemValidationError as e:
                error = e
            except Exception as e:
                logger.exception("Unexpected error while validating streamed output")
                sentry_sdk.capture_exception(e)
                error = _unexpected_error()

        if error is not None:
            await self._record_failure(
                request, caller_id, context, error, started,
                raw_response=raw_text or None,
                usage=usage,
            )
            yield self._event("error", error=error.to_dict())
            return

        response_time_ms = _elapsed_ms(started)
        log_id = await self._write_log(GenerationLogEntry(
            request=request,
            status="success",
            model=self.client.model,
            user_id=caller_id,
            problem_set=problem_set,
            raw_response=raw_text,
            usage=usage,
            response_time_ms=response_time_ms,
            context=context,
        ))

        logger.info(
            "Streamed %d problems in %dms (fragments=%d, tokens=%s%s)",
            len(problem_set.problems), response_time_ms, fragment_count,
            usage.total_tokens, ", estimated" if usage.estimated else ""
        )

        result = GenerationResult(
            problem_set=problem_set,
            model=self.client.model,
            usage=usage,
            timestamp=datetime.utcnow(),
            response_time_ms=response_time_ms,
            log_id=log_id,
        )
        yield self._event("complete", data=problem_set.to_dict(), metadata=result.metadata())

    async def generate_streaming(
        self,
        request: GenerationRequest,
        caller_id: Optional[str],
        on_chunk: Callable[[Dict[str, Any]], Any],
        on_complete: Callable[[Dict[str, Any]], Any],
        on_error: Callable[[Dict[str, Any]], Any],
        context: Optional[RequestContext] = None,
    ) -> None:
        """
        Callback form of stream().

        on_chunk receives every non-terminal event, then exactly one of
        on_complete / on_error receives the terminal event. Callbacks may be
        plain functions or coroutines.

        An exception raised by a callback propagates to the caller. Raised
        from on_chunk, it abandons the session like a consumer disconnect:
        the model stream is closed, no terminal callback fires and no log
        entry is written. Raised from a terminal callback, the log entry
        has already been written.
        """
        async with aclosing(self.stream(request, caller_id, context)) as events:
            async for event in events:
                if event["type"] == "complete":
                    callback = on_complete
                elif event["type"] == "error":
                    callback = on_error
                else:
                    callback = on_chunk

                outcome = callback(event)
                if inspect.isawaitable(outcome):
                    await outcome

                if event["type"] in TERMINAL_EVENTS:
                    return

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _event(event_type: str, **fields) -> Dict[str, Any]:
        event = {"type": event_type, "timestamp": datetime.utcnow().isoformat()}
        event.update(fields)
        return event

    @staticmethod
    def _log_request(request: GenerationRequest, caller_id: Optional[str], streaming: bool):
        logger.info(
            "%s generation requested by %s: subject=%s grade=%d difficulty=%s count=%d",
            "Streaming" if streaming else "Sync",
            caller_id or "anonymous",
            request.subject,
            request.grade,
            request.difficulty,
            request.question_count,
        )

    async def _record_failure(
        self,
        request: GenerationRequest,
        caller_id: Optional[str],
        context: RequestContext,
        error: GenerationError,
        started: float,
        raw_response: Optional[str] = None,
        usage: Optional[TokenUsage] = None,
        model: Optional[str] = None,
    ) -> Optional[str]:
        if isinstance(error, ProblemValidationError):
            logger.warning(
                "Model output failed validation: kind=%s index=%s reason=%s",
                error.kind, error.index, error.reason
            )

        return await self._write_log(GenerationLogEntry(
            request=request,
            status="error",
            model=model or self.client.model,
            user_id=caller_id,
            raw_response=raw_response,
            usage=usage or TokenUsage(),
            response_time_ms=_elapsed_ms(started),
            error_kind=error.kind,
            error_message=error.message,
            context=context,
        ))

    async def _write_log(self, entry: GenerationLogEntry) -> Optional[str]:
        """Append to the log store off the event loop. A failed write is reported, never raised."""
        try:
            return await asyncio.to_thread(self.log_store.append, entry)
        except Exception as e:
            logger.error("Failed to write generation log (status=%s): %s", entry.status, e)
            sentry_sdk.capture_exception(e)
            return None
