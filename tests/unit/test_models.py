"""Unit tests for OpenRouter wire models."""

import json

import pytest
from pydantic import ValidationError

from fakes import chat_response_payload, generation_payload, stream_chunk
from openrouter_connector.client import WireSerializer
from openrouter_connector.models import (
    ChatRequest,
    ChatResponse,
    GenerationResponse,
    Message,
    ResponseFormat,
    StreamChunk,
    ToolChoiceFunction,
)


def encode(model) -> dict:
    return json.loads(WireSerializer().encode(model))


class TestChatRequest:
    """Tests for ChatRequest serialization."""

    def test_nulls_omitted(self):
        """Test unset optional fields are not serialized."""
        request = ChatRequest(model="openai/gpt-4o", messages=[Message(role="user", content="Hi")])

        assert encode(request) == {
            "model": "openai/gpt-4o",
            "messages": [{"role": "user", "content": "Hi"}],
            "stream": False,
        }

    def test_model_required(self):
        """Test an empty model id is rejected."""
        with pytest.raises(ValidationError):
            ChatRequest(model="", messages=[])

    def test_routing_and_sampling_fields(self):
        """Test OpenRouter-specific fields use wire names."""
        request = ChatRequest(
            model="openai/gpt-4o",
            messages=[],
            stop=["\n\n"],
            models=["anthropic/claude-3-haiku"],
            provider={"order": ["OpenAI"], "allow_fallbacks": False},
            logit_bias={50256: -100},
            top_k=40,
            repetition_penalty=1.1,
        )

        body = encode(request)

        assert body["stop"] == ["\n\n"]
        assert body["models"] == ["anthropic/claude-3-haiku"]
        assert body["provider"] == {"order": ["OpenAI"], "allow_fallbacks": False}
        assert body["logit_bias"] == {"50256": -100}
        assert body["top_k"] == 40
        assert body["repetition_penalty"] == 1.1

    def test_tool_choice_function(self):
        """Test a specific-function tool choice serializes as an object."""
        request = ChatRequest(
            model="m",
            messages=[],
            tool_choice=ToolChoiceFunction.for_function("Weather-GetForecast"),
        )
        assert encode(request)["tool_choice"] == {
            "type": "function",
            "function": {"name": "Weather-GetForecast"},
        }

    def test_tool_choice_string(self):
        """Test string tool choices pass through."""
        request = ChatRequest(model="m", messages=[], tool_choice="auto")
        assert encode(request)["tool_choice"] == "auto"


class TestResponseFormat:
    """Tests for ResponseFormat helpers."""

    def test_text_and_json_object(self):
        """Test the simple formats."""
        assert ResponseFormat.text().model_dump(exclude_none=True) == {"type": "text"}
        assert ResponseFormat.json_object().model_dump(exclude_none=True) == {"type": "json_object"}

    def test_json_schema_uses_schema_key(self):
        """Test the schema is serialized under the wire name ``schema``."""
        schema = {"type": "object", "properties": {"city": {"type": "string"}}}
        request = ChatRequest(
            model="m",
            messages=[],
            response_format=ResponseFormat.from_schema("weather", schema, description="Forecast"),
        )

        assert encode(request)["response_format"] == {
            "type": "json_schema",
            "json_schema": {
                "name": "weather",
                "description": "Forecast",
                "schema": schema,
                "strict": True,
            },
        }

    def test_json_schema_requires_definition(self):
        """Test json_schema type without a schema is rejected."""
        with pytest.raises(ValidationError):
            ResponseFormat(type="json_schema")


class TestChatResponse:
    """Tests for response decoding."""

    def test_decode_sample_response(self):
        """Test the canonical non-streaming response decodes."""
        response = ChatResponse.model_validate(chat_response_payload())

        assert response.id == "chatcmpl-test123"
        assert response.created == 1677652288
        assert response.choices[0].message.content == "Hello! How can I help you today?"
        assert response.choices[0].finish_reason == "stop"
        assert response.usage.total_tokens == 22

    def test_unknown_fields_ignored(self):
        """Test extra response fields do not break decoding."""
        payload = chat_response_payload()
        payload["system_fingerprint"] = "fp_123"
        payload["provider"] = "OpenAI"

        response = ChatResponse.model_validate(payload)

        assert response.model == "openai/gpt-3.5-turbo"

    def test_tool_calls_decoded(self):
        """Test tool calls in a response message."""
        payload = chat_response_payload(
            content=None,
            tool_calls=[{
                "id": "call_abc",
                "type": "function",
                "function": {"name": "Math-Add", "arguments": "{\"a\": 1}"},
            }],
            finish_reason="tool_calls",
        )

        message = ChatResponse.model_validate(payload).choices[0].message

        assert message.content is None
        assert message.tool_calls[0].function.name == "Math-Add"


class TestStreamChunk:
    """Tests for stream chunk decoding."""

    def test_empty_delta(self):
        """Test a final chunk with an empty delta."""
        chunk = StreamChunk.model_validate(stream_chunk({}, finish_reason="stop"))
        assert chunk.choices[0].delta.content is None
        assert chunk.choices[0].finish_reason == "stop"

    def test_tool_call_fragment(self):
        """Test streamed tool-call fragments keep their index."""
        chunk = StreamChunk.model_validate(stream_chunk({
            "tool_calls": [{"index": 1, "function": {"arguments": "{\"ci"}}],
        }))
        fragment = chunk.choices[0].delta.tool_calls[0]
        assert fragment.index == 1
        assert fragment.id is None
        assert fragment.function.arguments == "{\"ci"


class TestGenerationMetrics:
    """Tests for generation metrics."""

    def test_totals(self):
        """Test native and normalized token totals."""
        metrics = GenerationResponse.model_validate(generation_payload()).data

        assert metrics.total_native_tokens() == 14 + 11 + 3
        assert metrics.total_normalized_tokens() == 22
        assert metrics.provider_name == "OpenAI"

    def test_reasoning_tokens_optional(self):
        """Test missing reasoning tokens count as zero."""
        metrics = GenerationResponse.model_validate({
            "data": {"id": "gen-1", "native_tokens_prompt": 5, "native_tokens_completion": 7}
        }).data
        assert metrics.total_native_tokens() == 12
