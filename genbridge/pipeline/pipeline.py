"""ProviderPipeline — one logical generation call per invocation.

Builds the wire request (converter + provider shaping), runs it streamed
or forced-synchronous, converts results back, and reports telemetry.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import uuid
from typing import Any, AsyncIterator, Awaitable, Callable

from genbridge.core.config import PipelineConfig
from genbridge.core.errors import GenerationCancelled, classify_error, is_retryable
from genbridge.core.models import (
    EmbedRequest,
    EmbedResponse,
    GenerationRequest,
    GenerationResponse,
    TokenBreakdown,
    UsageMetadata,
)
from genbridge.pipeline.converter import ToolCallAccumulator, WireConverter
from genbridge.pipeline.providers import ProviderCapability
from genbridge.pipeline.tokens import TokenAccountant
from genbridge.tracing.interface import TelemetryEvent, TelemetryOutcome, TelemetryService
from genbridge.tracing.logging_telemetry import LoggingTelemetryService
from genbridge.tracing.request_logger import OpenAIRequestLogger

logger = logging.getLogger(__name__)


async def _close_stream(stream: Any) -> None:
    close = getattr(stream, "close", None) or getattr(stream, "aclose", None)
    if close is None:
        return
    result = close()
    if inspect.isawaitable(result):
        await result


_END_OF_STREAM = object()


async def _next_chunk(chunks: AsyncIterator[Any]) -> Any:
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return _END_OF_STREAM


def _merge_trailing(final: GenerationResponse, fragment: GenerationResponse) -> GenerationResponse:
    """Fold a fragment that arrived after the finish fragment into it."""
    if final.candidates and fragment.parts:
        final.candidates[0].content.parts.extend(fragment.parts)
    if fragment.usage_metadata is not None:
        final.usage_metadata = fragment.usage_metadata
    return final


class ProviderPipeline:
    """Public API: ``generate``, ``generate_stream``, ``count_tokens``, ``embed``.

    An instance is bound to one (config, provider, converter, telemetry)
    tuple and keeps no per-call state.
    """

    def __init__(
        self,
        config: PipelineConfig,
        provider: ProviderCapability,
        converter: WireConverter | None = None,
        telemetry: TelemetryService | None = None,
        accountant: TokenAccountant | None = None,
        request_logger: OpenAIRequestLogger | None = None,
    ) -> None:
        self.config = config
        self.provider = provider
        self.converter = converter or WireConverter(provider.supported_modalities, provider.name)
        self.telemetry = telemetry or LoggingTelemetryService()
        self.accountant = accountant or TokenAccountant()
        if request_logger is None and config.enable_openai_logging:
            request_logger = OpenAIRequestLogger(config.openai_log_dir)
        self.request_logger = request_logger
        self.client = provider.build_client(config)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def should_suppress_error_logging(
        self, error: BaseException, request: GenerationRequest | EmbedRequest,
    ) -> bool:
        """Return True to skip failure telemetry for ``error``. The error still propagates."""
        return False

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def generate(
        self,
        request: GenerationRequest,
        prompt_id: str,
        signal: asyncio.Event | None = None,
    ) -> GenerationResponse:
        start = time.monotonic()
        wire: dict[str, Any] | None = None
        try:
            wire = self._build_wire_request(request, prompt_id)
            raw = await self._call_with_retry(lambda: self.client.chat.completions.create(**wire), signal)
            response = self.converter.from_wire_response(raw)
        except (GenerationCancelled, asyncio.CancelledError):
            await self._report_cancelled(request, prompt_id, start, streamed=False)
            raise
        except Exception as exc:
            await self._report_failure(exc, request, prompt_id, start, wire, streamed=False)
            raise

        if self.request_logger is not None:
            await self.request_logger.log_interaction(wire, raw)
        await self.telemetry.log_success(TelemetryEvent(
            prompt_id=prompt_id,
            model=wire.get("model", self.config.model),
            outcome=TelemetryOutcome.SUCCESS,
            duration_ms=self._elapsed_ms(start),
            usage=response.usage_metadata or self._estimate_usage(request),
            response_id=response.response_id,
        ))
        return response

    async def generate_stream(
        self,
        request: GenerationRequest,
        prompt_id: str,
        signal: asyncio.Event | None = None,
    ) -> AsyncIterator[GenerationResponse]:
        """Yield response fragments; a cancelled ``signal`` ends the sequence early."""
        if self.config.force_synchronous:
            try:
                response = await self.generate(request, prompt_id, signal)
            except GenerationCancelled:
                return
            yield response
            return

        fragments = self._stream(request, prompt_id, signal)
        try:
            async for fragment in fragments:
                yield fragment
        finally:
            # propagates consumer abandonment to the transport
            await fragments.aclose()

    async def count_tokens(self, request: GenerationRequest) -> TokenBreakdown:
        return self.accountant.estimate(request)

    async def embed(
        self,
        request: EmbedRequest,
        prompt_id: str | None = None,
        signal: asyncio.Event | None = None,
    ) -> EmbedResponse:
        prompt_id = prompt_id or f"embed########{uuid.uuid4().hex[:12]}"
        start = time.monotonic()
        wire: dict[str, Any] | None = None
        try:
            wire = self.converter.to_wire_embedding_request(request, self.config)
            raw = await self._call_with_retry(lambda: self.client.embeddings.create(**wire), signal)
            response = self.converter.from_wire_embedding_response(raw)
        except (GenerationCancelled, asyncio.CancelledError):
            await self._report_cancelled(request, prompt_id, start, streamed=False)
            raise
        except Exception as exc:
            await self._report_failure(exc, request, prompt_id, start, wire, streamed=False)
            raise

        await self.telemetry.log_success(TelemetryEvent(
            prompt_id=prompt_id,
            model=wire["model"],
            outcome=TelemetryOutcome.SUCCESS,
            duration_ms=self._elapsed_ms(start),
            usage=response.usage_metadata,
        ))
        return response

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _stream(
        self,
        request: GenerationRequest,
        prompt_id: str,
        signal: asyncio.Event | None,
    ) -> AsyncIterator[GenerationResponse]:
        start = time.monotonic()
        wire: dict[str, Any] | None = None
        stream: Any = None
        tool_calls = ToolCallAccumulator()
        usage: UsageMetadata | None = None
        final: GenerationResponse | None = None
        response_id: str | None = None
        completed = False
        try:
            wire = self._build_wire_request(request, prompt_id)
            stream_request = {**wire, "stream": True, "stream_options": {"include_usage": True}}
            stream = await self._call_with_retry(
                lambda: self.client.chat.completions.create(**stream_request), signal,
            )
            chunks = stream.__aiter__()
            while True:
                chunk = await self._abortable(_next_chunk(chunks), signal)
                if chunk is _END_OF_STREAM:
                    break
                fragment = self.converter.from_wire_chunk(chunk, tool_calls)
                response_id = response_id or fragment.response_id
                if fragment.usage_metadata is not None:
                    usage = fragment.usage_metadata
                if final is not None:
                    final = _merge_trailing(final, fragment)
                elif fragment.finish_reason is not None:
                    # held back so a trailing usage-only chunk can be merged
                    final = fragment
                elif fragment.candidates:
                    yield fragment

            if final is not None and final.usage_metadata is None:
                final.usage_metadata = usage
            if self.request_logger is not None:
                await self.request_logger.log_interaction(stream_request, final)
            await self.telemetry.log_success(TelemetryEvent(
                prompt_id=prompt_id,
                model=wire.get("model", self.config.model),
                outcome=TelemetryOutcome.SUCCESS,
                duration_ms=self._elapsed_ms(start),
                usage=usage or self._estimate_usage(request),
                streamed=True,
                response_id=response_id,
            ))
            completed = True
            if final is not None:
                yield final
        except GenerationCancelled:
            await self._report_cancelled(request, prompt_id, start, streamed=True)
            return
        except (asyncio.CancelledError, GeneratorExit):
            if not completed:
                await self._report_cancelled(request, prompt_id, start, streamed=True)
            raise
        except Exception as exc:
            await self._report_failure(exc, request, prompt_id, start, wire, streamed=True)
            raise
        finally:
            if stream is not None:
                await _close_stream(stream)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build_wire_request(self, request: GenerationRequest, prompt_id: str) -> dict[str, Any]:
        wire = self.converter.to_wire_request(request, self.config)
        return self.provider.build_request(wire, prompt_id)

    async def _call_with_retry(
        self,
        call: Callable[[], Awaitable[Any]],
        signal: asyncio.Event | None,
    ) -> Any:
        attempt = 0
        while True:
            try:
                return await self._abortable(call(), signal)
            except Exception as exc:
                if attempt >= self.config.max_retries or not is_retryable(exc):
                    raise
                delay = self.config.retry_base_delay * (2 ** attempt)
                logger.warning(
                    "Transient provider error (attempt %d/%d), retrying in %.2fs: %s",
                    attempt + 1, self.config.max_retries + 1, delay, exc,
                )
                attempt += 1
                await self._abortable(asyncio.sleep(delay), signal)

    @staticmethod
    async def _abortable(awaitable: Awaitable[Any], signal: asyncio.Event | None) -> Any:
        """Await ``awaitable`` unless ``signal`` fires first."""
        if signal is None:
            return await awaitable
        if signal.is_set():
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise GenerationCancelled("generation cancelled")

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(signal.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                # let the cancelled step unwind before the caller closes the transport
                await asyncio.wait({task})
        if task.cancelled():
            raise GenerationCancelled("generation cancelled")
        return task.result()

    def _estimate_usage(self, request: GenerationRequest) -> UsageMetadata:
        tokens = self.accountant.estimate(request).total_tokens
        return UsageMetadata(prompt_token_count=tokens, total_token_count=tokens)

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return round((time.monotonic() - start) * 1000, 2)

    async def _report_cancelled(
        self,
        request: GenerationRequest | EmbedRequest,
        prompt_id: str,
        start: float,
        streamed: bool,
    ) -> None:
        logger.info("Generation cancelled (prompt=%s)", prompt_id)
        await self.telemetry.log_cancelled(TelemetryEvent(
            prompt_id=prompt_id,
            model=request.model or self.config.model,
            outcome=TelemetryOutcome.CANCELLED,
            duration_ms=self._elapsed_ms(start),
            streamed=streamed,
        ))

    async def _report_failure(
        self,
        error: Exception,
        request: GenerationRequest | EmbedRequest,
        prompt_id: str,
        start: float,
        wire: dict[str, Any] | None,
        streamed: bool,
    ) -> None:
        if self.request_logger is not None and wire is not None:
            await self.request_logger.log_interaction(wire, error=error)
        if self.should_suppress_error_logging(error, request):
            return

        kind = classify_error(error)
        logger.error("Generation failed (prompt=%s kind=%s): %s", prompt_id, kind.value, error)
        await self.telemetry.log_error(TelemetryEvent(
            prompt_id=prompt_id,
            model=request.model or self.config.model,
            outcome=TelemetryOutcome.FAILED,
            duration_ms=self._elapsed_ms(start),
            streamed=streamed,
            error_kind=kind.value,
            error_message=str(error),
        ))
