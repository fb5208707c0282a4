# app/core/dispatch/coordinator.py
"""
Dispatch coordinator: one logical notification → many provider calls.

Per call: filter → batch → send each batch (bounded concurrency) → fold.

- A ``TransportError`` on one batch never stops the other batches. Its
  recipients are reported as ``unknown``, not as failed.
- Per-recipient failures are folded into the report, never raised.
- Anything else raised by the delivery client is a bug and propagates.
"""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Mapping, Sequence

from app.core.dispatch.analyzer import ReportAccumulator, analyze
from app.core.dispatch.batching import PROVIDER_MAX_BATCH_SIZE, filter_recipients, split_batches
from app.core.dispatch.errors import TransportError
from app.core.dispatch.models import DeliveryOutcome, DispatchReport, NotificationRequest, Recipient
from app.core.dispatch.payload import build_notification
from app.core.dispatch.ports import DeliveryClient
from app.infra.logging_config import LogContext, get_logger
from app.infra.metrics import DispatchMetrics

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransportRetryPolicy:
    """
    Bounded retry around whole-batch transport failures.

    ``max_retries=0`` means a single attempt per batch. Only retryable
    ``TransportError``s are retried; per-recipient failures never are.
    """
    max_retries: int = 0
    initial_delay: float = 1.0
    backoff_factor: float = 2.0
    max_delay: float = 10.0

    def delay_for(self, retry_number: int) -> float:
        """Delay before retry ``retry_number`` (1-based)"""
        delay = self.initial_delay * (self.backoff_factor ** (retry_number - 1))
        return min(delay, self.max_delay)


@dataclass(frozen=True)
class DispatchConfig:
    enabled: bool = True
    batch_size: int = PROVIDER_MAX_BATCH_SIZE
    max_concurrency: int = 4
    retry: TransportRetryPolicy = field(default_factory=TransportRetryPolicy)

    def __post_init__(self):
        if not 0 < self.batch_size <= PROVIDER_MAX_BATCH_SIZE:
            raise ValueError(
                f"batch_size must be in 1..{PROVIDER_MAX_BATCH_SIZE}, got {self.batch_size}"
            )
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        if self.retry.max_retries < 0:
            raise ValueError(f"retry.max_retries must be >= 0, got {self.retry.max_retries}")

    @classmethod
    def from_settings(cls, settings) -> "DispatchConfig":
        return cls(
            enabled=settings.push_notifications_enabled,
            batch_size=settings.push_batch_size,
            max_concurrency=settings.push_max_concurrency,
            retry=TransportRetryPolicy(
                max_retries=settings.push_transport_max_retries,
                initial_delay=settings.push_transport_retry_delay,
                max_delay=settings.push_transport_max_retry_delay,
            ),
        )


class DispatchCoordinator:
    """Entry point used by event handlers to deliver one notification"""

    def __init__(
        self,
        client: DeliveryClient,
        config: DispatchConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._client = client
        self._config = config or DispatchConfig()
        self._sleep = sleep

    @property
    def config(self) -> DispatchConfig:
        return self._config

    async def dispatch(
        self,
        recipients: Iterable[Any],
        title: str | None,
        body: str | None,
        data: Mapping[str, Any] | None = None,
        *,
        source: str = "direct",
        event_id: str | None = None,
    ) -> DispatchReport:
        """
        Deliver one notification to every valid recipient.

        ``recipients`` may contain junk (``None``, empty or non-string
        values); it is dropped before batching and counted in
        ``skipped_invalid``.

        Always returns a completed report for partial provider problems.
        """
        dispatch_id = uuid.uuid4().hex[:8]
        log = LogContext(logger, event_id=event_id, dispatch_id=dispatch_id)

        # Built before anything else: reserved-key clashes are caller bugs
        request = build_notification(title, body, data)

        selection = filter_recipients(recipients)
        DispatchMetrics.invalid_recipients(selection.invalid)
        if selection.invalid or selection.duplicates:
            log.debug(
                "Skipped recipients: invalid=%d, duplicate=%d",
                selection.invalid, selection.duplicates,
            )

        accumulator = ReportAccumulator(
            skipped_invalid=selection.invalid,
            skipped_duplicate=selection.duplicates,
        )

        if not selection.valid:
            log.info("No recipients for %r, nothing to send", request.title)
            return accumulator.build()

        if not self._config.enabled:
            log.info(
                "Push notifications disabled, skipping %r for %d recipients",
                request.title, len(selection.valid),
            )
            return accumulator.build()

        DispatchMetrics.dispatch_started(source)
        batches = split_batches(selection.valid, self._config.batch_size)
        log.info(
            "Dispatching %r: recipients=%d, batches=%d, via=%s",
            request.title, len(selection.valid), len(batches), self._client.name,
        )

        semaphore = asyncio.Semaphore(self._config.max_concurrency)
        await asyncio.gather(*(
            self._run_batch(index, batch, request, accumulator, semaphore, log)
            for index, batch in enumerate(batches)
        ))

        report = accumulator.build()
        log.info(
            "Dispatch finished %r: attempted=%d, succeeded=%d, failed=%d, "
            "stale=%d, unknown=%d, transport_errors=%d",
            request.title, report.attempted, report.succeeded, report.failed,
            len(report.stale_recipients), report.unknown, report.transport_errors,
        )
        return report

    async def _run_batch(
        self,
        index: int,
        batch: Sequence[Recipient],
        request: NotificationRequest,
        accumulator: ReportAccumulator,
        semaphore: asyncio.Semaphore,
        log: LogContext,
    ) -> None:
        async with semaphore:
            try:
                outcomes = await self._send_with_retry(index, batch, request, log)
            except TransportError as exc:
                log.error(
                    "Batch %d failed in transport (%d recipients, outcome unknown): %s",
                    index, len(batch), exc,
                    extra={"batch_index": index},
                    exc_info=True,
                )
                accumulator.add_transport_error(len(batch))
                return

        summary = analyze(outcomes, batch_index=index)
        accumulator.add_summary(len(batch), summary)
        DispatchMetrics.batch_sent()
        DispatchMetrics.recipients_succeeded(summary.succeeded)
        DispatchMetrics.recipients_failed(summary.failed)
        DispatchMetrics.recipients_stale(len(summary.stale))

        log.info(
            "Batch %d sent: %d devices, success=%d, failure=%d",
            index, len(batch), summary.succeeded, summary.failed,
            extra={"batch_index": index},
        )

    async def _send_with_retry(
        self,
        index: int,
        batch: Sequence[Recipient],
        request: NotificationRequest,
        log: LogContext,
    ) -> list[DeliveryOutcome]:
        policy = self._config.retry
        attempt = 0

        while True:
            try:
                with DispatchMetrics.track_batch_send():
                    return await self._client.send(batch, request)
            except TransportError as exc:
                DispatchMetrics.transport_error(exc.retryable)
                if not exc.retryable or attempt >= policy.max_retries:
                    raise

                attempt += 1
                delay = policy.delay_for(attempt)
                log.warning(
                    "Batch %d transport error (retry %d/%d in %.2fs): %s",
                    index, attempt, policy.max_retries, delay, exc,
                    extra={"batch_index": index},
                )
                await self._sleep(delay)
