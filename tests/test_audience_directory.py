# tests/test_audience_directory.py
"""Tests for FirestoreAudienceDirectory (app/infra/audience_directory.py) with a mocked client."""
from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.events.schemas import ItemDocument
from app.infra.audience_directory import FirestoreAudienceDirectory


class _Stream:
    """Async iterator over fake document snapshots"""

    def __init__(self, docs):
        self._docs = iter(docs)

    def __aiter__(self):
        return self

    async def __anext__(self):
        try:
            return next(self._docs)
        except StopIteration:
            raise StopAsyncIteration


def _snap(data, exists=True):
    return SimpleNamespace(exists=exists, to_dict=lambda: data)


class TestTokenQueries:
    @pytest.mark.asyncio
    async def test_all_user_tokens_keeps_raw_values(self):
        db = MagicMock()
        db.collection.return_value.stream.side_effect = lambda: _Stream([
            _snap({"fcmToken": "t1"}),
            _snap({"name": "no token"}),
            _snap(None),
            _snap({"fcmToken": "t2"}),
        ])

        tokens = await FirestoreAudienceDirectory(db).all_user_tokens()

        db.collection.assert_called_once_with("users")
        assert tokens == ["t1", None, None, "t2"]

    @pytest.mark.asyncio
    async def test_office_staff_query_filters(self):
        db = MagicMock()
        query = db.collection.return_value.where.return_value.where.return_value
        query.stream.side_effect = lambda: _Stream([_snap({"fcmToken": "admin"})])

        tokens = await FirestoreAudienceDirectory(db).office_staff_tokens("office-9", ("office_admin", "staff"))

        assert tokens == ["admin"]
        office_filter = db.collection.return_value.where.call_args.kwargs["filter"]
        role_filter = db.collection.return_value.where.return_value.where.call_args.kwargs["filter"]
        assert (office_filter.field_path, office_filter.op_string, office_filter.value) == (
            "officeId", "==", "office-9",
        )
        assert (role_filter.field_path, role_filter.op_string, role_filter.value) == (
            "role", "in", ["office_admin", "staff"],
        )


class TestDocumentLookups:
    @pytest.mark.asyncio
    async def test_user_token(self):
        db = MagicMock()
        db.collection.return_value.document.return_value.get = AsyncMock(
            return_value=_snap({"fcmToken": "req-token"}),
        )

        assert await FirestoreAudienceDirectory(db).user_token("user-1") == "req-token"
        db.collection.return_value.document.assert_called_once_with("user-1")

    @pytest.mark.asyncio
    async def test_missing_user(self):
        db = MagicMock()
        db.collection.return_value.document.return_value.get = AsyncMock(
            return_value=_snap(None, exists=False),
        )

        assert await FirestoreAudienceDirectory(db).user_token("ghost") is None

    @pytest.mark.asyncio
    async def test_get_item(self):
        db = MagicMock()
        db.collection.return_value.document.return_value.get = AsyncMock(
            return_value=_snap({"title": "Blue bag", "type": "bag", "location": 3}),
        )

        item = await FirestoreAudienceDirectory(db).get_item("item-1")

        db.collection.assert_called_once_with("items")
        assert item == ItemDocument(title="Blue bag", type="bag")

    @pytest.mark.asyncio
    async def test_missing_item(self):
        db = MagicMock()
        db.collection.return_value.document.return_value.get = AsyncMock(
            return_value=_snap(None, exists=False),
        )

        assert await FirestoreAudienceDirectory(db).get_item("item-1") is None


class TestClose:
    @pytest.mark.asyncio
    async def test_open_channel_closed(self):
        db = MagicMock()
        db._firestore_api_internal.transport.close = AsyncMock()

        await FirestoreAudienceDirectory(db).close()

        db._firestore_api_internal.transport.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unused_client_has_nothing_to_close(self):
        db = MagicMock()
        db._firestore_api_internal = None

        await FirestoreAudienceDirectory(db).close()
