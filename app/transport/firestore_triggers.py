# app/transport/firestore_triggers.py
"""
Cloud Functions for Firebase triggers.

Converts data-store snapshots into typed events and runs the matching
EventNotifier handler. No notification logic lives here.

Process wiring (settings → Firebase app → delivery client → coordinator)
is built once per process on the first invocation and passed explicitly.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Awaitable, Callable

import firebase_admin
from firebase_functions import firestore_fn

from app.config import Settings, load_settings
from app.core.dispatch.coordinator import DispatchConfig, DispatchCoordinator
from app.core.events.handlers import EventNotifier
from app.core.events.schemas import (
    CollectionRequestCreated,
    CollectionRequestUpdated,
    EventValidationError,
    ItemReported,
)
from app.infra.audience_directory import FirestoreAudienceDirectory
from app.infra.delivery_client import get_delivery_client, init_firebase_app
from app.infra.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


@dataclass(frozen=True)
class Runtime:
    settings: Settings
    firebase_app: firebase_admin.App
    coordinator: DispatchCoordinator


@lru_cache(maxsize=1)
def get_runtime() -> Runtime:
    settings = load_settings()
    setup_logging(settings.log_level, use_json=settings.use_json_logs)
    app = init_firebase_app(settings)
    coordinator = DispatchCoordinator(
        get_delivery_client(settings, app),
        DispatchConfig.from_settings(settings),
    )
    return Runtime(settings=settings, firebase_app=app, coordinator=coordinator)


def _run(handler: Callable[[EventNotifier], Awaitable[Any]]) -> None:
    runtime = get_runtime()

    async def _invoke() -> None:
        directory = FirestoreAudienceDirectory.from_app(runtime.firebase_app)
        notifier = EventNotifier(
            directory,
            runtime.coordinator,
            display_timezone=runtime.settings.display_tzinfo,
        )
        try:
            await handler(notifier)
        finally:
            await directory.close()

    asyncio.run(_invoke())


def _snapshot_dict(snapshot: firestore_fn.DocumentSnapshot | None) -> dict | None:
    if snapshot is None:
        return None
    return snapshot.to_dict()


@firestore_fn.on_document_created(document="items/{itemId}")
def notify_new_item(event: firestore_fn.Event[firestore_fn.DocumentSnapshot | None]) -> None:
    doc = _snapshot_dict(event.data)
    if not doc:
        return

    try:
        item_event = ItemReported.from_document(event.params["itemId"], doc)
    except EventValidationError:
        logger.error("Dropping malformed item event", exc_info=True)
        return

    _run(lambda notifier: notifier.notify_new_item(item_event))


@firestore_fn.on_document_created(document="collectionRequests/{reqId}")
def notify_collection_request(event: firestore_fn.Event[firestore_fn.DocumentSnapshot | None]) -> None:
    doc = _snapshot_dict(event.data)
    if not doc:
        return

    try:
        request_event = CollectionRequestCreated.from_document(event.params["reqId"], doc)
    except EventValidationError:
        logger.error("Dropping malformed collection request event", exc_info=True)
        return

    _run(lambda notifier: notifier.notify_collection_request(request_event))


@firestore_fn.on_document_updated(document="collectionRequests/{reqId}")
def notify_pickup_scheduled(
    event: firestore_fn.Event[firestore_fn.Change[firestore_fn.DocumentSnapshot | None]],
) -> None:
    if event.data is None:
        return
    before = _snapshot_dict(event.data.before)
    after = _snapshot_dict(event.data.after)
    if not before or not after:
        return

    try:
        update_event = CollectionRequestUpdated.from_documents(event.params["reqId"], before, after)
    except EventValidationError:
        logger.error("Dropping malformed collection request update", exc_info=True)
        return

    if not update_event.became_scheduled():
        return

    _run(lambda notifier: notifier.notify_pickup_scheduled(update_event))
