"""In-process telemetry for OpenRouter calls.

Records request counts, durations, token usage and generation metrics.
Each measurement is logged with structured ``extra`` context and passed to
any registered listeners, so applications can forward it to their own
metrics backend.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .models import GenerationMetrics

logger = logging.getLogger(__name__)


class OperationType:
    CHAT_COMPLETION = "chat_completion"
    TEXT_GENERATION = "text_generation"


class TagName:
    MODEL_ID = "openrouter.model_id"
    OPERATION = "openrouter.operation"
    STREAMING = "openrouter.streaming"
    ERROR = "openrouter.error"
    REQUEST_ID = "openrouter.request_id"
    PROVIDER = "openrouter.provider"


class MetricName:
    REQUESTS = "openrouter.requests"
    DURATION = "openrouter.duration"
    PROMPT_TOKENS = "openrouter.tokens.prompt"
    COMPLETION_TOKENS = "openrouter.tokens.completion"
    TOTAL_TOKENS = "openrouter.tokens.total"
    COST = "openrouter.cost"
    NATIVE_TOKENS = "openrouter.tokens.native"
    GENERATION_TIME = "openrouter.generation_time"
    LATENCY = "openrouter.latency"


@dataclass
class TelemetryEvent:
    """One measurement: a metric name, its value and its tags."""

    name: str
    value: float
    tags: dict[str, Any] = field(default_factory=dict)


TelemetryListener = Callable[[TelemetryEvent], None]


def create_tags(
    model_id: str | None,
    operation: str,
    streaming: bool,
    request_id: str | None = None,
) -> dict[str, Any]:
    tags: dict[str, Any] = {
        TagName.MODEL_ID: model_id or "unknown",
        TagName.OPERATION: operation,
        TagName.STREAMING: streaming,
    }
    if request_id:
        tags[TagName.REQUEST_ID] = request_id
    return tags


class OpenRouterTelemetry:
    """Collects measurements and fans them out to listeners.

    Running totals per metric name are kept in ``totals`` for inspection.
    """

    def __init__(self, listeners: list[TelemetryListener] | None = None):
        self._listeners: list[TelemetryListener] = list(listeners or [])
        self.totals: dict[str, float] = {}

    def add_listener(self, listener: TelemetryListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: TelemetryListener) -> None:
        self._listeners.remove(listener)

    def _emit(self, name: str, value: float, tags: dict[str, Any]) -> None:
        self.totals[name] = self.totals.get(name, 0) + value
        event = TelemetryEvent(name=name, value=value, tags=dict(tags))
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Telemetry listener failed for %s", name)

    def record_request(self, tags: dict[str, Any], error: bool = False) -> None:
        self._emit(MetricName.REQUESTS, 1, {**tags, TagName.ERROR: error})

    def record_duration(self, operation: str, seconds: float, tags: dict[str, Any]) -> None:
        self._emit(MetricName.DURATION, seconds, {**tags, TagName.OPERATION: operation})
        logger.debug(
            "OpenRouter %s took %.3fs",
            operation,
            seconds,
            extra={"model": tags.get(TagName.MODEL_ID), "latency_ms": int(seconds * 1000)},
        )

    def record_token_usage(
        self,
        tags: dict[str, Any],
        prompt_tokens: int,
        completion_tokens: int,
        total_tokens: int,
    ) -> None:
        self._emit(MetricName.PROMPT_TOKENS, prompt_tokens, tags)
        self._emit(MetricName.COMPLETION_TOKENS, completion_tokens, tags)
        self._emit(MetricName.TOTAL_TOKENS, total_tokens, tags)

    def record_generation_metrics(self, tags: dict[str, Any], metrics: GenerationMetrics) -> None:
        """Record the post-hoc accounting record of one generation."""
        tags = {TagName.REQUEST_ID: metrics.id, **tags, TagName.PROVIDER: metrics.provider_name}
        if metrics.total_cost is not None:
            self._emit(MetricName.COST, metrics.total_cost, tags)
        self._emit(MetricName.NATIVE_TOKENS, metrics.total_native_tokens(), tags)
        if metrics.generation_time is not None:
            self._emit(MetricName.GENERATION_TIME, metrics.generation_time, tags)
        if metrics.latency is not None:
            self._emit(MetricName.LATENCY, metrics.latency, tags)

        logger.info(
            "OpenRouter generation metrics recorded",
            extra={
                "request_id": metrics.id,
                "model": metrics.model,
                "provider": metrics.provider_name,
                "total_cost": metrics.total_cost,
                "native_tokens": metrics.total_native_tokens(),
            },
        )
