"""Unit tests for the OpenRouter transport client.

Tests cover:
- Default headers and configuration
- Non-streaming completions and the stream-flag override
- Error mapping for HTTP statuses, bad bodies and transport failures
- SSE stream parsing, malformed lines and cancellation
"""

import asyncio
import json

import httpx
import pytest

from fakes import BASE_URL, MODEL_ID, MockOpenRouter, chat_response_payload, sse_body, stream_chunk
from openrouter_connector.client import USER_AGENT, OpenRouterClient
from openrouter_connector.errors import (
    ApiError,
    AuthenticationError,
    InvalidConfigurationError,
    ModelNotFoundError,
    ProviderError,
    RateLimitError,
    RequestTimeoutError,
    TransportError,
)
from openrouter_connector.models import ChatRequest, Message


def make_request(stream: bool = False) -> ChatRequest:
    return ChatRequest(model=MODEL_ID, messages=[Message(role="user", content="Hello")], stream=stream)


async def collect(iterator) -> list:
    return [item async for item in iterator]


class TestClientInit:
    """Tests for client construction."""

    @pytest.mark.parametrize("api_key", ["", "   "])
    def test_blank_api_key(self, api_key):
        """Test a blank API key is rejected."""
        with pytest.raises(InvalidConfigurationError):
            OpenRouterClient(api_key)

    @pytest.mark.asyncio
    async def test_default_headers(self, http_client):
        """Test auth, accept and user-agent headers are set once."""
        OpenRouterClient("sk-test", http_client=http_client)

        assert http_client.headers["Authorization"] == "Bearer sk-test"
        assert http_client.headers["Accept"] == "application/json"
        assert http_client.headers["User-Agent"] == USER_AGENT

    @pytest.mark.asyncio
    async def test_custom_user_agent_kept(self):
        """Test a caller-set user agent is not replaced."""
        async with httpx.AsyncClient(headers={"User-Agent": "my-app/2.0"}) as http_client:
            OpenRouterClient("sk-test", http_client=http_client)
            assert http_client.headers["User-Agent"] == "my-app/2.0"

    @pytest.mark.asyncio
    async def test_identification_headers(self, http_client):
        """Test optional OpenRouter app headers."""
        OpenRouterClient("sk-test", http_client=http_client, http_referer="https://myapp.dev", app_title="My App")

        assert http_client.headers["HTTP-Referer"] == "https://myapp.dev"
        assert http_client.headers["X-Title"] == "My App"

    def test_default_base_url(self):
        """Test the default base URL."""
        client = OpenRouterClient("sk-test")
        assert client.base_url == "https://openrouter.ai/api/v1"

    @pytest.mark.asyncio
    async def test_shared_client_not_closed(self, http_client):
        """Test aclose leaves a caller-supplied client open."""
        client = OpenRouterClient("sk-test", http_client=http_client)
        await client.aclose()
        assert not http_client.is_closed


class TestGetChatCompletion:
    """Tests for non-streaming completions."""

    @pytest.mark.asyncio
    async def test_success(self, openrouter_client, mock_openrouter: MockOpenRouter):
        """Test the response is decoded and the request posted to /chat/completions."""
        mock_openrouter.completion(chat_response_payload())

        response = await openrouter_client.get_chat_completion(make_request())

        assert response.id == "chatcmpl-test123"
        assert response.choices[0].message.content == "Hello! How can I help you today?"
        sent = mock_openrouter.requests_to("/chat/completions")[0]
        assert str(sent.url) == f"{BASE_URL}/chat/completions"
        assert sent.method == "POST"

    @pytest.mark.asyncio
    async def test_stream_flag_forced_off(self, openrouter_client, mock_openrouter: MockOpenRouter):
        """Test a request with stream=True is sent with stream=False."""
        mock_openrouter.completion(chat_response_payload())
        request = make_request(stream=True)

        await openrouter_client.get_chat_completion(request)

        assert mock_openrouter.json_bodies()[0]["stream"] is False
        assert request.stream is True

    @pytest.mark.asyncio
    async def test_body_omits_nulls(self, openrouter_client, mock_openrouter: MockOpenRouter):
        """Test null fields are not sent."""
        mock_openrouter.completion(chat_response_payload())

        await openrouter_client.get_chat_completion(make_request())

        body = mock_openrouter.json_bodies()[0]
        assert "temperature" not in body
        assert body["messages"] == [{"role": "user", "content": "Hello"}]

    @pytest.mark.asyncio
    async def test_unauthorized(self, openrouter_client, mock_openrouter: MockOpenRouter, error_body):
        """Test 401 raises an ApiError carrying status and body."""
        mock_openrouter.error(401, error_body)

        with pytest.raises(ApiError) as exc_info:
            await openrouter_client.get_chat_completion(make_request())

        error = exc_info.value
        assert isinstance(error, AuthenticationError)
        assert error.status_code == 401
        assert "Invalid API key" in error.response_content
        assert "401" in str(error)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,error_type",
        [(404, ModelNotFoundError), (500, ProviderError), (502, ProviderError), (418, ApiError)],
    )
    async def test_status_mapping(self, openrouter_client, mock_openrouter: MockOpenRouter, status, error_type):
        """Test statuses map to their error classes."""
        mock_openrouter.error(status, "{}")

        with pytest.raises(error_type) as exc_info:
            await openrouter_client.get_chat_completion(make_request())
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_rate_limit_retry_after(self, openrouter_client, mock_openrouter: MockOpenRouter):
        """Test 429 carries the retry-after hint."""
        mock_openrouter.error(429, "{}", headers={"retry-after": "12"})

        with pytest.raises(RateLimitError) as exc_info:
            await openrouter_client.get_chat_completion(make_request())
        assert exc_info.value.retry_after == 12.0

    @pytest.mark.asyncio
    async def test_undecodable_body(self, openrouter_client, mock_openrouter: MockOpenRouter):
        """Test a 2xx body that fails to decode raises ApiError without status."""
        mock_openrouter.add("POST", "/chat/completions", lambda request: httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(ApiError) as exc_info:
            await openrouter_client.get_chat_completion(make_request())

        assert exc_info.value.status_code is None
        assert exc_info.value.response_content == "<html>oops</html>"

    @pytest.mark.asyncio
    async def test_timeout(self, openrouter_client, mock_openrouter: MockOpenRouter):
        """Test httpx timeouts become RequestTimeoutError."""
        def raise_timeout(request):
            raise httpx.ReadTimeout("timed out", request=request)

        mock_openrouter.add("POST", "/chat/completions", raise_timeout)

        with pytest.raises(RequestTimeoutError) as exc_info:
            await openrouter_client.get_chat_completion(make_request())
        assert isinstance(exc_info.value.__cause__, httpx.ReadTimeout)

    @pytest.mark.asyncio
    async def test_connection_error(self, openrouter_client, mock_openrouter: MockOpenRouter):
        """Test connection failures become TransportError."""
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        mock_openrouter.add("POST", "/chat/completions", refuse)

        with pytest.raises(TransportError):
            await openrouter_client.get_chat_completion(make_request())


class TestStreamChatCompletion:
    """Tests for SSE streaming."""

    @pytest.mark.asyncio
    async def test_three_chunk_stream(self, openrouter_client, mock_openrouter: MockOpenRouter, sample_stream_body):
        """Test chunks are yielded in order and [DONE] ends the stream."""
        mock_openrouter.stream(sample_stream_body)

        chunks = await collect(openrouter_client.stream_chat_completion(make_request()))

        assert len(chunks) == 3
        assert chunks[0].choices[0].delta.role == "assistant"
        assert chunks[0].choices[0].delta.content == "Hello"
        assert chunks[1].choices[0].delta.content == "! How can I help you today?"
        assert chunks[2].choices[0].finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_stream_flag_forced_on(self, openrouter_client, mock_openrouter: MockOpenRouter, sample_stream_body):
        """Test a request with stream=False is sent with stream=True."""
        mock_openrouter.stream(sample_stream_body)
        request = make_request(stream=False)

        await collect(openrouter_client.stream_chat_completion(request))

        assert mock_openrouter.json_bodies()[0]["stream"] is True
        assert request.stream is False

    @pytest.mark.asyncio
    async def test_ignores_non_data_lines(self, openrouter_client, mock_openrouter: MockOpenRouter):
        """Test comments, event fields and blank lines are skipped."""
        mock_openrouter.stream(sse_body([
            ": OPENROUTER PROCESSING",
            "event: message",
            "",
            stream_chunk({"content": "Hi"}),
        ]))

        chunks = await collect(openrouter_client.stream_chat_completion(make_request()))

        assert [c.choices[0].delta.content for c in chunks] == ["Hi"]

    @pytest.mark.asyncio
    async def test_malformed_line_skipped(self, openrouter_client, mock_openrouter: MockOpenRouter, caplog):
        """Test a malformed data line is logged and the stream continues."""
        mock_openrouter.stream(sse_body([
            stream_chunk({"content": "A"}),
            "data: {not json",
            stream_chunk({"content": "B"}),
        ]))

        with caplog.at_level("WARNING", logger="openrouter_connector.client"):
            chunks = await collect(openrouter_client.stream_chat_completion(make_request()))

        assert [c.choices[0].delta.content for c in chunks] == ["A", "B"]
        assert "Failed to parse streaming chunk" in caplog.text

    @pytest.mark.asyncio
    async def test_nothing_after_done(self, openrouter_client, mock_openrouter: MockOpenRouter):
        """Test lines after [DONE] are not read."""
        body = sse_body([stream_chunk({"content": "A"})]) + f"data: {json.dumps(stream_chunk({'content': 'late'}))}\n\n"
        mock_openrouter.stream(body)

        chunks = await collect(openrouter_client.stream_chat_completion(make_request()))

        assert len(chunks) == 1

    @pytest.mark.asyncio
    async def test_error_status_before_stream(self, openrouter_client, mock_openrouter: MockOpenRouter, error_body):
        """Test a non-2xx status raises before any chunk is yielded."""
        mock_openrouter.error(401, error_body)
        received = []

        with pytest.raises(ApiError) as exc_info:
            async for chunk in openrouter_client.stream_chat_completion(make_request()):
                received.append(chunk)

        assert received == []
        assert exc_info.value.status_code == 401
        assert "Invalid API key" in exc_info.value.response_content

    @pytest.mark.asyncio
    async def test_cancel_event_stops_stream(self, openrouter_client, mock_openrouter: MockOpenRouter, sample_stream_body):
        """Test setting the cancel event ends iteration without an error."""
        mock_openrouter.stream(sample_stream_body)
        cancel = asyncio.Event()
        received = []

        async for chunk in openrouter_client.stream_chat_completion(make_request(), cancel_event=cancel):
            received.append(chunk)
            cancel.set()

        assert len(received) == 1


class TestGenerationMetricsScheduling:
    """Tests for the detached metrics fetch after completions."""

    @pytest.mark.asyncio
    async def test_fetch_after_completion(self, openrouter_client, mock_openrouter: MockOpenRouter):
        """Test a completion schedules GET /generation for its id."""
        mock_openrouter.completion(chat_response_payload())
        mock_openrouter.generation()

        await openrouter_client.get_chat_completion(make_request())
        await openrouter_client.drain_background_tasks()

        fetches = mock_openrouter.requests_to("/generation")
        assert len(fetches) == 1
        assert fetches[0].url.params["id"] == "chatcmpl-test123"

    @pytest.mark.asyncio
    async def test_fetch_after_stream(self, openrouter_client, mock_openrouter: MockOpenRouter, sample_stream_body):
        """Test [DONE] schedules a fetch for the last chunk id."""
        mock_openrouter.stream(sample_stream_body)
        mock_openrouter.generation()

        await collect(openrouter_client.stream_chat_completion(make_request()))
        await openrouter_client.drain_background_tasks()

        assert mock_openrouter.requests_to("/generation")[0].url.params["id"] == "chatcmpl-test123"

    @pytest.mark.asyncio
    async def test_metrics_failure_does_not_fail_completion(self, openrouter_client, mock_openrouter: MockOpenRouter):
        """Test a failing metrics endpoint leaves the completion intact."""
        mock_openrouter.completion(chat_response_payload())
        mock_openrouter.generation(status_code=500)

        response = await openrouter_client.get_chat_completion(make_request())
        await openrouter_client.drain_background_tasks()

        assert response.id == "chatcmpl-test123"
        assert openrouter_client.metrics.pending == 0

    @pytest.mark.asyncio
    async def test_fetch_survives_caller_cancellation(self, http_client, mock_openrouter: MockOpenRouter):
        """Test cancelling the caller after the completion leaves the fetch running."""
        mock_openrouter.completion(chat_response_payload())
        mock_openrouter.generation()
        client = OpenRouterClient("test-api-key", base_url=BASE_URL, http_client=http_client, metrics_delay=0.05)
        returned = asyncio.Event()

        async def caller():
            await client.get_chat_completion(make_request())
            returned.set()
            await asyncio.sleep(10)

        task = asyncio.create_task(caller())
        await returned.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await client.drain_background_tasks()

        assert len(mock_openrouter.requests_to("/generation")) == 1
