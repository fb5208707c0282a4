# app/core/dispatch/batching.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from app.core.dispatch.models import Recipient

# Hard ceiling of the multicast endpoint (tokens per call)
PROVIDER_MAX_BATCH_SIZE = 500


@dataclass(frozen=True)
class RecipientSelection:
    """Valid recipients in first-seen order, plus what was dropped"""
    valid: list[Recipient] = field(default_factory=list)
    invalid: int = 0
    duplicates: int = 0


def is_valid_recipient(value: Any) -> bool:
    """A deliverable token is a non-empty string"""
    return isinstance(value, str) and value != ""


def filter_recipients(candidates: Iterable[Any]) -> RecipientSelection:
    """
    Drop absent, empty or non-string tokens and repeated tokens.

    Two user records sharing one device token would otherwise get the
    same notification twice.
    """
    valid: list[Recipient] = []
    seen: set[str] = set()
    invalid = 0
    duplicates = 0

    for candidate in candidates:
        if not is_valid_recipient(candidate):
            invalid += 1
            continue
        if candidate in seen:
            duplicates += 1
            continue
        seen.add(candidate)
        valid.append(candidate)

    return RecipientSelection(valid=valid, invalid=invalid, duplicates=duplicates)


def split_batches(recipients: Sequence[Recipient], max_size: int) -> list[list[Recipient]]:
    """
    Partition recipients into contiguous batches of ``max_size``.

    Only the last batch may be shorter. Order is preserved, so position
    ``i`` in a provider response maps back to ``batch[i]``.
    """
    if max_size <= 0:
        raise ValueError(f"max_size must be positive, got {max_size}")

    return [
        list(recipients[start:start + max_size])
        for start in range(0, len(recipients), max_size)
    ]
