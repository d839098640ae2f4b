"""Best-effort fetch of generation metrics.

After a completion finishes, OpenRouter exposes cost and native token
accounting under ``GET /generation?id=...``. The fetch runs in a detached
task: it never blocks or fails the completion, and the caller cancelling
its own request does not cancel it.
"""

import asyncio
import logging

import httpx

from .models import GenerationMetrics, GenerationResponse
from .telemetry import OpenRouterTelemetry, OperationType, create_tags

logger = logging.getLogger(__name__)


class GenerationMetricsFetcher:
    """Schedules detached ``/generation`` lookups and records the results.

    Pending tasks are held in a bounded set so they are not garbage
    collected mid-flight; fetches beyond ``max_pending`` are dropped.
    """

    DEFAULT_DELAY = 0.1
    DEFAULT_TIMEOUT = 5.0
    DEFAULT_MAX_PENDING = 64

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        telemetry: OpenRouterTelemetry | None = None,
        delay: float | None = None,
        timeout: float | None = None,
        max_pending: int | None = None,
    ):
        self._http_client = http_client
        self._url = f"{base_url.rstrip('/')}/generation"
        self._telemetry = telemetry
        self._delay = delay if delay is not None else self.DEFAULT_DELAY
        self._timeout = timeout if timeout is not None else self.DEFAULT_TIMEOUT
        self._max_pending = max_pending if max_pending is not None else self.DEFAULT_MAX_PENDING
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(
        self,
        generation_id: str | None,
        model_id: str | None,
        streamed: bool,
    ) -> asyncio.Task | None:
        """Start a detached metrics fetch for ``generation_id``.

        Returns:
            The scheduled task, or None when there is no id or too many
            fetches are already pending.
        """
        if not generation_id:
            return None
        if len(self._tasks) >= self._max_pending:
            logger.debug(
                "Dropping generation metrics fetch for %s, %d already pending",
                generation_id,
                len(self._tasks),
            )
            return None

        task = asyncio.create_task(self.fetch(generation_id, model_id, streamed))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def fetch(
        self,
        generation_id: str,
        model_id: str | None = None,
        streamed: bool = False,
    ) -> GenerationMetrics | None:
        """Wait briefly, then fetch and record metrics for one generation.

        Failures other than cancellation are logged at debug level and
        swallowed; cancellation is logged and re-raised.
        """
        try:
            await asyncio.sleep(self._delay)
            response = await self._http_client.get(
                self._url,
                params={"id": generation_id},
                timeout=self._timeout,
            )
            if not response.is_success:
                logger.debug(
                    "Generation details not available for %s, status: %s",
                    generation_id,
                    response.status_code,
                )
                return None

            metrics = GenerationResponse.model_validate_json(response.content).data
        except asyncio.CancelledError:
            logger.debug("Generation metrics fetch for %s cancelled", generation_id)
            raise
        except Exception as e:
            logger.debug("Failed to fetch generation details for %s: %s", generation_id, e)
            return None

        if self._telemetry is not None:
            tags = create_tags(model_id, OperationType.CHAT_COMPLETION, streamed, generation_id)
            self._telemetry.record_generation_metrics(tags, metrics)

        logger.debug(
            "Recorded generation metrics for %s",
            generation_id,
            extra={
                "request_id": generation_id,
                "total_cost": metrics.total_cost,
                "native_tokens": metrics.total_native_tokens(),
                "generation_time": metrics.generation_time,
            },
        )
        return metrics

    async def drain(self) -> None:
        """Wait for every pending fetch to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
