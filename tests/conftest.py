"""Pytest fixtures for testing."""

import json
from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio

from fakes import BASE_URL, MODEL_ID, MockOpenRouter, sse_body, stream_chunk
from openrouter_connector import OpenRouterChatCompletionService, OpenRouterClient


@pytest.fixture
def mock_openrouter() -> MockOpenRouter:
    """Recording fake of the OpenRouter HTTP API."""
    return MockOpenRouter()


@pytest_asyncio.fixture
async def http_client(mock_openrouter: MockOpenRouter) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client wired to the fake API."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(mock_openrouter)) as client:
        yield client


@pytest_asyncio.fixture
async def openrouter_client(http_client: httpx.AsyncClient) -> AsyncGenerator[OpenRouterClient, None]:
    """Low-level client with no metrics delay."""
    client = OpenRouterClient(
        "test-api-key",
        base_url=BASE_URL,
        http_client=http_client,
        metrics_delay=0,
    )
    yield client
    await client.drain_background_tasks()


@pytest_asyncio.fixture
async def service(http_client: httpx.AsyncClient) -> AsyncGenerator[OpenRouterChatCompletionService, None]:
    """Chat completion service with a default model."""
    svc = OpenRouterChatCompletionService(
        api_key="test-api-key",
        model_id=MODEL_ID,
        base_url=BASE_URL,
        http_client=http_client,
        metrics_delay=0,
    )
    yield svc
    await svc.drain_background_tasks()


@pytest.fixture
def sample_stream_body() -> str:
    """The three-chunk stream used across streaming tests."""
    return sse_body([
        stream_chunk({"role": "assistant", "content": "Hello"}),
        stream_chunk({"content": "! How can I help you today?"}),
        stream_chunk({}, finish_reason="stop"),
    ])


@pytest.fixture
def error_body() -> str:
    """OpenRouter error body for a bad API key."""
    return json.dumps({
        "error": {
            "message": "Invalid API key",
            "type": "invalid_request_error",
            "code": "invalid_api_key",
        }
    })
