# app/core/dispatch/errors.py
"""
Typed errors for push dispatch.

Only ``TransportError`` is expected at runtime and it is always handled
per batch by the coordinator. The other errors signal caller bugs and
propagate.
"""
from __future__ import annotations


class TransportError(Exception):
    """The provider call for a whole batch could not be completed.

    Attributes:
        batch_size: Number of recipients in the affected batch.
        retryable:  Whether resending the same batch may succeed.
                    False for credential / invalid-request failures,
                    True for network, quota and availability failures.
    """

    def __init__(self, message: str, *, batch_size: int = 0, retryable: bool = True):
        self.batch_size = batch_size
        self.retryable = retryable
        super().__init__(message)


class BatchTooLargeError(ValueError):
    """A batch exceeded the provider's per-call recipient ceiling."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Batch of {size} recipients exceeds provider limit of {limit}")


class ReservedDataKeyError(ValueError):
    """Caller data tried to override a key the payload builder owns."""
