# app/core/events/messages.py
"""
User-facing notification text for each event kind.
"""
from __future__ import annotations

from datetime import datetime, timezone, tzinfo

from app.core.events.schemas import CollectionRequestDocument, ItemDocument

PICKUP_TIME_UNKNOWN = "N/A"


def format_pickup_time(value: datetime | None, tz: tzinfo = timezone.utc) -> str:
    """
    Medium date + short time, e.g. ``18 Oct 2026, 3:30 pm``.

    Naive datetimes are taken as UTC.
    """
    if value is None:
        return PICKUP_TIME_UNKNOWN

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    local = value.astimezone(tz)

    hour = local.hour % 12 or 12
    meridiem = "am" if local.hour < 12 else "pm"
    return f"{local.day} {local:%b} {local.year}, {hour}:{local:%M} {meridiem}"


def new_item_message(item: ItemDocument) -> tuple[str, str]:
    title = f"📢 New {item.type or 'item'} reported"
    body = f"{item.title or 'Untitled'} at {item.location or 'Unknown'}"
    return title, body


def collection_request_message(item_title: str) -> tuple[str, str]:
    return "📬 New Collection Request", f"Request received for item: {item_title}."


def pickup_scheduled_message(
    item_title: str,
    request: CollectionRequestDocument,
    tz: tzinfo = timezone.utc,
) -> tuple[str, str]:
    when = format_pickup_time(request.pickup_time, tz)
    return "📅 Pickup Scheduled", f'Your item "{item_title}" is scheduled for pickup at {when}'
