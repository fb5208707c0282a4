# app/core/dispatch/payload.py
"""
Notification payload construction.

The same ``NotificationRequest`` feeds two sections of the provider message:

- ``notification`` (title, body) - rendered by the OS when the app is in
  the background or killed
- ``data`` (title, body + event keys) - read by app code in the foreground
  and used for deep linking

Platform delivery options are fixed per deployment, never per request.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from app.core.dispatch.errors import ReservedDataKeyError
from app.core.dispatch.models import NotificationRequest

RESERVED_DATA_KEYS = frozenset({"title", "body"})


@dataclass(frozen=True)
class AndroidDelivery:
    """High-priority delivery on a named channel with the default sound"""
    priority: str = "high"
    channel_id: str = "high_importance_channel"
    click_action: str = "FLUTTER_NOTIFICATION_CLICK"
    sound: str = "default"


@dataclass(frozen=True)
class IosDelivery:
    """Immediate delivery with the default sound, content-available for silent wake-up"""
    priority_header: str = "10"
    sound: str = "default"
    content_available: bool = True


@dataclass(frozen=True)
class PlatformDelivery:
    android: AndroidDelivery = field(default_factory=AndroidDelivery)
    ios: IosDelivery = field(default_factory=IosDelivery)

    @classmethod
    def from_settings(cls, settings) -> "PlatformDelivery":
        return cls(
            android=AndroidDelivery(
                channel_id=settings.push_android_channel_id,
                click_action=settings.push_android_click_action,
            ),
            ios=IosDelivery(),
        )


def build_notification(
    title: str | None,
    body: str | None,
    data: Mapping[str, Any] | None = None,
) -> NotificationRequest:
    """
    Build the notification content for one dispatch.

    ``title`` and ``body`` are copied into ``data`` next to the caller's
    keys. Data values are sent as strings; ``None`` values are dropped.

    Raises:
        ReservedDataKeyError: if ``data`` contains ``title`` or ``body``.
    """
    title = title or ""
    body = body or ""
    extra = dict(data or {})

    clashes = RESERVED_DATA_KEYS.intersection(extra)
    if clashes:
        raise ReservedDataKeyError(
            f"Notification data may not set reserved keys: {', '.join(sorted(clashes))}"
        )

    merged: dict[str, str] = {"title": title, "body": body}
    for key, value in extra.items():
        if value is None:
            continue
        merged[str(key)] = value if isinstance(value, str) else str(value)

    return NotificationRequest(title=title, body=body, data=merged)
