# app/core/dispatch/analyzer.py
"""
Per-recipient outcome classification.

Failure classes:
- stale     → token is permanently invalid, the provider will never accept
              it again. Callers should remove it from the audience.
- transient → anything else. Counted as failed, possibly fine next time.

Classification is conservative: only an explicit "unregistered" signal
makes a token stale.
"""
from __future__ import annotations

from threading import Lock
from typing import Iterable

from app.core.dispatch.models import DeliveryOutcome, DispatchReport, OutcomeSummary, Recipient
from app.infra.logging_config import get_logger, mask_token

logger = get_logger(__name__)

STALE_ERROR_CODE = "messaging/registration-token-not-registered"

# Compatibility shim: some responses carry the unregistered signal only in
# the message text. The provider does not guarantee this wording.
_STALE_MESSAGE_MARKER = "Unregistered"


def is_stale_outcome(outcome: DeliveryOutcome) -> bool:
    """True if a failed outcome marks its token as permanently invalid"""
    if outcome.success:
        return False
    if outcome.error_code == STALE_ERROR_CODE:
        return True
    return _STALE_MESSAGE_MARKER in (outcome.error_message or "")


def analyze(outcomes: Iterable[DeliveryOutcome], *, batch_index: int | None = None) -> OutcomeSummary:
    """Fold the outcomes of one batch into counts and a stale set"""
    succeeded = 0
    failed = 0
    stale: set[Recipient] = set()
    failures: list[DeliveryOutcome] = []
    extra = {"batch_index": batch_index} if batch_index is not None else {}

    for outcome in outcomes:
        if outcome.success:
            succeeded += 1
            continue

        failed += 1
        failures.append(outcome)
        masked = mask_token(outcome.recipient)
        logger.error(
            "Token failure [token=%s]: code=%s, message=%s",
            masked,
            outcome.error_code or "UNKNOWN_ERROR",
            outcome.error_message or "No specific error message provided.",
            extra={**extra, "recipient": masked, "error_code": outcome.error_code},
        )

        if is_stale_outcome(outcome):
            stale.add(outcome.recipient)
            logger.error(
                "Token %s is stale and should be removed from the audience",
                masked,
                extra={**extra, "recipient": masked},
            )

    return OutcomeSummary(
        succeeded=succeeded,
        failed=failed,
        stale=frozenset(stale),
        failures=tuple(failures),
    )


class ReportAccumulator:
    """
    Thread-safe running totals for one dispatch.

    Batches may complete concurrently, so every update happens under a lock.
    """

    def __init__(self, *, skipped_invalid: int = 0, skipped_duplicate: int = 0):
        self._lock = Lock()
        self._attempted = 0
        self._succeeded = 0
        self._failed = 0
        self._unknown = 0
        self._batches = 0
        self._transport_errors = 0
        self._stale: set[Recipient] = set()
        self._failures: list[DeliveryOutcome] = []
        self._skipped_invalid = skipped_invalid
        self._skipped_duplicate = skipped_duplicate

    def add_summary(self, batch_size: int, summary: OutcomeSummary) -> None:
        with self._lock:
            self._batches += 1
            self._attempted += batch_size
            self._succeeded += summary.succeeded
            self._failed += summary.failed
            self._stale.update(summary.stale)
            self._failures.extend(summary.failures)

    def add_transport_error(self, batch_size: int) -> None:
        with self._lock:
            self._batches += 1
            self._attempted += batch_size
            self._unknown += batch_size
            self._transport_errors += 1

    def build(self) -> DispatchReport:
        with self._lock:
            return DispatchReport(
                attempted=self._attempted,
                succeeded=self._succeeded,
                failed=self._failed,
                unknown=self._unknown,
                stale_recipients=frozenset(self._stale),
                skipped_invalid=self._skipped_invalid,
                skipped_duplicate=self._skipped_duplicate,
                batches=self._batches,
                transport_errors=self._transport_errors,
                failures=tuple(self._failures),
            )
