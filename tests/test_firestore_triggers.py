# tests/test_firestore_triggers.py
"""Tests for the Cloud Functions trigger glue (app/transport/firestore_triggers.py)."""
from __future__ import annotations

from datetime import timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.core.events.schemas import CollectionRequestCreated, CollectionRequestUpdated, ItemReported
from app.transport import firestore_triggers as triggers

RUN_PATH = "app.transport.firestore_triggers._run"


def _snapshot(doc):
    return SimpleNamespace(to_dict=lambda: doc)


def _event(data, **params):
    return SimpleNamespace(data=data, params=params)


def _change(before, after):
    return SimpleNamespace(before=_snapshot(before), after=_snapshot(after))


def _dispatched(run_mock, method: str):
    """Run the handler passed to _run against a mock notifier, return the event it forwarded"""
    [handler] = run_mock.call_args.args
    notifier = MagicMock()
    handler(notifier)
    getattr(notifier, method).assert_called_once()
    return getattr(notifier, method).call_args.args[0]


class TestNotifyNewItem:
    def test_item_forwarded(self):
        event = _event(_snapshot({"type": "bag", "title": "Blue bag"}), itemId="item-1")
        with patch(RUN_PATH) as run:
            triggers.notify_new_item.__wrapped__(event)

        item_event = _dispatched(run, "notify_new_item")
        assert isinstance(item_event, ItemReported)
        assert item_event.item_id == "item-1"
        assert item_event.item.title == "Blue bag"

    @pytest.mark.parametrize("data", [None, _snapshot(None), _snapshot({})])
    def test_missing_snapshot_skipped(self, data):
        with patch(RUN_PATH) as run:
            triggers.notify_new_item.__wrapped__(_event(data, itemId="item-1"))
        run.assert_not_called()

    def test_malformed_event_dropped(self, caplog):
        with patch(RUN_PATH) as run:
            triggers.notify_new_item.__wrapped__(_event(_snapshot({"title": "x"}), itemId=""))

        run.assert_not_called()
        assert "Dropping malformed item event" in caplog.text


class TestNotifyCollectionRequest:
    def test_request_forwarded(self):
        doc = {"itemId": "item-1", "verifiedOfficeId": "office-9"}
        with patch(RUN_PATH) as run:
            triggers.notify_collection_request.__wrapped__(_event(_snapshot(doc), reqId="req-1"))

        request_event = _dispatched(run, "notify_collection_request")
        assert isinstance(request_event, CollectionRequestCreated)
        assert request_event.req_id == "req-1"
        assert request_event.request.verified_office_id == "office-9"

    def test_missing_snapshot_skipped(self):
        with patch(RUN_PATH) as run:
            triggers.notify_collection_request.__wrapped__(_event(None, reqId="req-1"))
        run.assert_not_called()

    def test_malformed_event_dropped(self, caplog):
        with patch(RUN_PATH) as run:
            triggers.notify_collection_request.__wrapped__(_event(_snapshot({"itemId": "i"}), reqId=""))

        run.assert_not_called()
        assert "Dropping malformed collection request event" in caplog.text


class TestNotifyPickupScheduled:
    def test_transition_to_scheduled_forwarded(self):
        change = _change({"status": "approved"}, {"status": "scheduled", "requesterId": "user-1"})
        with patch(RUN_PATH) as run:
            triggers.notify_pickup_scheduled.__wrapped__(_event(change, reqId="req-1"))

        update_event = _dispatched(run, "notify_pickup_scheduled")
        assert isinstance(update_event, CollectionRequestUpdated)
        assert update_event.after.requester_id == "user-1"

    @pytest.mark.parametrize("before, after", [
        ({"status": "scheduled"}, {"status": "scheduled"}),
        ({"status": "scheduled"}, {"status": "collected"}),
        ({"status": "pending"}, {"status": "approved"}),
    ])
    def test_other_updates_not_dispatched(self, before, after):
        with patch(RUN_PATH) as run:
            triggers.notify_pickup_scheduled.__wrapped__(_event(_change(before, after), reqId="req-1"))
        run.assert_not_called()

    @pytest.mark.parametrize("data", [
        None,
        SimpleNamespace(before=None, after=_snapshot({"status": "scheduled"})),
        SimpleNamespace(before=_snapshot({"status": "approved"}), after=_snapshot(None)),
    ])
    def test_missing_snapshots_skipped(self, data):
        with patch(RUN_PATH) as run:
            triggers.notify_pickup_scheduled.__wrapped__(_event(data, reqId="req-1"))
        run.assert_not_called()

    def test_malformed_update_dropped(self, caplog):
        change = _change({"status": "approved"}, {"status": "scheduled"})
        with patch(RUN_PATH) as run:
            triggers.notify_pickup_scheduled.__wrapped__(_event(change, reqId=""))

        run.assert_not_called()
        assert "Dropping malformed collection request update" in caplog.text


class TestRun:
    @staticmethod
    def _runtime():
        return SimpleNamespace(
            settings=SimpleNamespace(display_tzinfo=timezone.utc),
            firebase_app=object(),
            coordinator=MagicMock(),
        )

    def test_directory_closed_after_handler(self):
        directory = MagicMock()
        directory.close = AsyncMock()
        handler = AsyncMock()

        with patch.object(triggers, "get_runtime", return_value=self._runtime()), \
                patch.object(triggers.FirestoreAudienceDirectory, "from_app", return_value=directory):
            triggers._run(handler)

        handler.assert_awaited_once()
        directory.close.assert_awaited_once()

    def test_directory_closed_when_handler_fails(self):
        directory = MagicMock()
        directory.close = AsyncMock()
        handler = AsyncMock(side_effect=RuntimeError("boom"))

        with patch.object(triggers, "get_runtime", return_value=self._runtime()), \
                patch.object(triggers.FirestoreAudienceDirectory, "from_app", return_value=directory):
            with pytest.raises(RuntimeError):
                triggers._run(handler)

        directory.close.assert_awaited_once()
