# app/core/dispatch/ports.py
from __future__ import annotations
from typing import Protocol, Sequence
from app.core.dispatch.models import DeliveryOutcome, NotificationRequest, Recipient


class DeliveryClient(Protocol):
    @property
    def name(self) -> str: ...

    async def send(self, batch: Sequence[Recipient], request: NotificationRequest) -> list[DeliveryOutcome]:
        """
        Deliver one batch in a single provider call.

        Returns one outcome per recipient, in batch order.

        Raises:
            TransportError:      the call as a whole failed
            BatchTooLargeError:  ``batch`` exceeds the provider ceiling
        """
        ...
