# app/core/dispatch/models.py
"""
Request-scoped data carried through one dispatch.

Nothing here outlives a single ``DispatchCoordinator.dispatch`` call.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Opaque device registration token
Recipient = str


@dataclass(frozen=True)
class NotificationRequest:
    """Provider-agnostic notification content.

    ``data`` already contains ``title`` and ``body`` so that clients reading
    only the data section (background / killed app state) can still render.
    """
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result for one recipient of one provider call"""
    recipient: Recipient
    success: bool
    error_code: str | None = None
    error_message: str | None = None
    message_id: str | None = None


@dataclass(frozen=True)
class OutcomeSummary:
    """Folded outcomes of one batch"""
    succeeded: int = 0
    failed: int = 0
    stale: frozenset[Recipient] = frozenset()
    failures: tuple[DeliveryOutcome, ...] = ()


@dataclass(frozen=True)
class DispatchReport:
    """
    Aggregate over all batches of one dispatch.

    ``succeeded + failed + unknown == attempted`` always holds. ``unknown``
    counts recipients whose batch hit a transport error, so their fate is
    not known. Skipped recipients never reach a batch and are not part of
    ``attempted``.
    """
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    unknown: int = 0
    stale_recipients: frozenset[Recipient] = frozenset()
    skipped_invalid: int = 0
    skipped_duplicate: int = 0
    batches: int = 0
    transport_errors: int = 0
    failures: tuple[DeliveryOutcome, ...] = ()

    @property
    def transient_recipients(self) -> frozenset[Recipient]:
        """Failed recipients that may succeed on a later attempt"""
        return frozenset(
            o.recipient for o in self.failures
            if o.recipient not in self.stale_recipients
        )

    @property
    def has_failures(self) -> bool:
        return bool(self.failed or self.unknown)

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "unknown": self.unknown,
            "stale_recipients": sorted(self.stale_recipients),
            "skipped_invalid": self.skipped_invalid,
            "skipped_duplicate": self.skipped_duplicate,
            "batches": self.batches,
            "transport_errors": self.transport_errors,
        }
