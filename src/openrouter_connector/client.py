"""HTTP transport for the OpenRouter chat-completion API.

Sends chat requests over ``httpx``, either as a single JSON response or as a
server-sent-event stream, maps HTTP failures onto the error hierarchy, and
schedules the detached generation-metrics fetch after each completion.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .errors import (
    ApiError,
    InvalidConfigurationError,
    RequestTimeoutError,
    TransportError,
    api_error_from_response,
)
from .metrics import GenerationMetricsFetcher
from .models import ChatRequest, ChatResponse, StreamChunk
from .telemetry import OpenRouterTelemetry

logger = logging.getLogger(__name__)

__version__ = "0.1.0"

USER_AGENT = f"openrouter-connector/{__version__}"

SSE_DATA_PREFIX = "data: "
SSE_DONE = "[DONE]"

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class WireSerializer:
    """JSON codec for wire models: nulls omitted, wire field names."""

    exclude_none: bool = True
    by_alias: bool = True

    def encode(self, model: BaseModel) -> str:
        return model.model_dump_json(exclude_none=self.exclude_none, by_alias=self.by_alias)

    def decode(self, model_cls: type[ModelT], data: str | bytes) -> ModelT:
        return model_cls.model_validate_json(data)


class OpenRouterClient:
    """Low-level OpenRouter client.

    Configuration:
    - api_key: Required, sent as a bearer token.
    - base_url: Defaults to https://openrouter.ai/api/v1
    - http_client: Optional shared ``httpx.AsyncClient``; only a client
      created here is closed by ``aclose``.
    - http_referer / app_title: Optional OpenRouter app identification.
    """

    DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
    DEFAULT_TIMEOUT = 60.0

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
        telemetry: OpenRouterTelemetry | None = None,
        http_referer: str | None = None,
        app_title: str | None = None,
        metrics_delay: float | None = None,
        metrics_timeout: float | None = None,
        max_pending_metrics: int | None = None,
    ):
        """Initialize the client.

        Args:
            api_key: OpenRouter API key.
            base_url: API base URL. Defaults to DEFAULT_BASE_URL.
            http_client: Shared HTTP client. A new one is created if omitted.
            timeout: Request timeout in seconds for a client created here.
            telemetry: Receives generation metrics.
            http_referer: Value for the ``HTTP-Referer`` header.
            app_title: Value for the ``X-Title`` header.
            metrics_delay: Seconds to wait before fetching generation metrics.
            metrics_timeout: Timeout of the metrics request.
            max_pending_metrics: Cap on concurrently pending metrics fetches.

        Raises:
            InvalidConfigurationError: If the API key is blank.
        """
        if not api_key or not api_key.strip():
            raise InvalidConfigurationError("OpenRouter API key must not be empty")

        self._base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self._timeout = timeout if timeout is not None else self.DEFAULT_TIMEOUT
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=self._timeout)
        self._serializer = WireSerializer()
        self._configure_headers(api_key, http_referer, app_title)
        self._metrics = GenerationMetricsFetcher(
            self._http_client,
            self._base_url,
            telemetry=telemetry,
            delay=metrics_delay,
            timeout=metrics_timeout,
            max_pending=max_pending_metrics,
        )

    def _configure_headers(
        self,
        api_key: str,
        http_referer: str | None,
        app_title: str | None,
    ) -> None:
        headers = self._http_client.headers
        headers["Authorization"] = f"Bearer {api_key}"
        headers["Accept"] = "application/json"

        user_agent = headers.get("User-Agent")
        if not user_agent or user_agent.startswith("python-httpx/"):
            headers["User-Agent"] = USER_AGENT

        if http_referer:
            headers["HTTP-Referer"] = http_referer
        if app_title:
            headers["X-Title"] = app_title

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def serializer(self) -> WireSerializer:
        return self._serializer

    @property
    def metrics(self) -> GenerationMetricsFetcher:
        return self._metrics

    @property
    def _completions_url(self) -> str:
        return f"{self._base_url}/chat/completions"

    async def get_chat_completion(self, request: ChatRequest) -> ChatResponse:
        """Send a non-streaming chat completion.

        The request is sent with ``stream=False`` regardless of its own flag;
        the caller's object is not modified.

        Args:
            request: Chat request to send.

        Returns:
            The decoded chat response.

        Raises:
            ApiError: On a non-2xx status (status-specific subclass) or an
                undecodable body (``status_code`` None).
            RequestTimeoutError: If the request timed out.
            TransportError: On connection failures.
        """
        payload = self._serializer.encode(request.model_copy(update={"stream": False}))
        start_time = time.perf_counter()

        logger.debug("Sending OpenRouter chat completion", extra={"model": request.model})
        try:
            response = await self._http_client.post(
                self._completions_url,
                content=payload,
                headers={"Content-Type": "application/json"},
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(
                f"OpenRouter request timed out after {self._timeout}s",
                model_id=request.model,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"Failed to connect to OpenRouter: {e}",
                model_id=request.model,
            ) from e

        if not response.is_success:
            raise api_error_from_response(
                response.status_code,
                response.text,
                reason=response.reason_phrase,
                headers=response.headers,
                model_id=request.model,
            )

        try:
            chat_response = self._serializer.decode(ChatResponse, response.content)
        except ValidationError as e:
            raise ApiError(
                "Failed to decode OpenRouter response",
                status_code=None,
                response_content=response.text,
                model_id=request.model,
            ) from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        usage = chat_response.usage
        logger.info(
            "OpenRouter request succeeded",
            extra={
                "model": chat_response.model or request.model,
                "request_id": chat_response.id,
                "latency_ms": latency_ms,
                "input_tokens": usage.prompt_tokens if usage else None,
                "output_tokens": usage.completion_tokens if usage else None,
            },
        )

        self._metrics.schedule(chat_response.id, request.model, streamed=False)
        return chat_response

    async def stream_chat_completion(
        self,
        request: ChatRequest,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a chat completion as decoded chunks.

        The request is sent with ``stream=True``. Lines without the
        ``data: `` prefix are ignored, ``data: [DONE]`` ends the stream and
        malformed chunks are logged and skipped. Setting ``cancel_event``
        stops iteration before the next line is processed.

        Args:
            request: Chat request to send.
            cancel_event: Optional event that stops the stream when set.

        Yields:
            Stream chunks in arrival order.

        Raises:
            ApiError: If the response status is not 2xx (nothing is yielded).
            RequestTimeoutError: If the request timed out.
            TransportError: On connection failures.
        """
        payload = self._serializer.encode(request.model_copy(update={"stream": True}))
        last_chunk_id: str | None = None

        try:
            async with self._http_client.stream(
                "POST",
                self._completions_url,
                content=payload,
                headers={"Content-Type": "application/json"},
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise api_error_from_response(
                        response.status_code,
                        body,
                        reason=response.reason_phrase,
                        headers=response.headers,
                        model_id=request.model,
                    )

                async for line in response.aiter_lines():
                    if cancel_event is not None and cancel_event.is_set():
                        logger.debug("OpenRouter stream cancelled", extra={"model": request.model})
                        return

                    if not line.startswith(SSE_DATA_PREFIX):
                        continue

                    data = line[len(SSE_DATA_PREFIX):].strip()
                    if data == SSE_DONE:
                        self._metrics.schedule(last_chunk_id, request.model, streamed=True)
                        return

                    try:
                        chunk = self._serializer.decode(StreamChunk, data)
                    except ValidationError as e:
                        logger.warning(
                            "Failed to parse streaming chunk: %s",
                            e,
                            extra={"model": request.model, "line": data},
                        )
                        continue

                    if chunk.id:
                        last_chunk_id = chunk.id
                    yield chunk
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(
                f"OpenRouter stream timed out after {self._timeout}s",
                model_id=request.model,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"Failed to connect to OpenRouter: {e}",
                model_id=request.model,
            ) from e

    async def drain_background_tasks(self) -> None:
        """Wait for pending generation-metrics fetches."""
        await self._metrics.drain()

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> "OpenRouterClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
