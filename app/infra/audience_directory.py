# app/infra/audience_directory.py
"""
Firestore-backed audience lookups.

Collections read:
- ``users``: ``fcmToken``, ``officeId``, ``role``
- ``items``: ``type``, ``title``, ``location``

Read-only. Removing stale tokens is the cleanup job's responsibility.
"""
from __future__ import annotations

from typing import Any, Collection

import firebase_admin
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from app.core.events.schemas import ItemDocument
from app.infra.logging_config import get_logger

logger = get_logger(__name__)

USERS_COLLECTION = "users"
ITEMS_COLLECTION = "items"
TOKEN_FIELD = "fcmToken"


class FirestoreAudienceDirectory:
    """AudienceDirectory over the async Firestore client"""

    def __init__(self, client: firestore.AsyncClient):
        self._db = client

    @classmethod
    def from_app(cls, app: firebase_admin.App) -> "FirestoreAudienceDirectory":
        """
        New async client bound to the app's credentials.

        Async clients are tied to the event loop they first run on, so build
        one per invocation instead of caching it on the app. Call ``close()``
        before that loop ends.
        """
        client = firestore.AsyncClient(
            project=app.project_id,
            credentials=app.credential.get_credential(),
        )
        return cls(client)

    async def close(self) -> None:
        """Close the gRPC channel, if a query opened one"""
        # AsyncClient has no close(); its GAPIC client is created on first use
        api = getattr(self._db, "_firestore_api_internal", None)
        if api is None:
            return
        await api.transport.close()
        logger.debug("Firestore channel closed")

    async def all_user_tokens(self) -> list[Any]:
        tokens: list[Any] = []
        async for snap in self._db.collection(USERS_COLLECTION).stream():
            tokens.append((snap.to_dict() or {}).get(TOKEN_FIELD))
        logger.debug("Loaded %d user token candidates", len(tokens))
        return tokens

    async def office_staff_tokens(self, office_id: str, roles: Collection[str]) -> list[Any]:
        query = (
            self._db.collection(USERS_COLLECTION)
            .where(filter=FieldFilter("officeId", "==", office_id))
            .where(filter=FieldFilter("role", "in", list(roles)))
        )
        tokens: list[Any] = []
        async for snap in query.stream():
            tokens.append((snap.to_dict() or {}).get(TOKEN_FIELD))
        logger.debug("Loaded %d staff token candidates for office %s", len(tokens), office_id)
        return tokens

    async def user_token(self, user_id: str) -> Any:
        snap = await self._db.collection(USERS_COLLECTION).document(user_id).get()
        if not snap.exists:
            return None
        return (snap.to_dict() or {}).get(TOKEN_FIELD)

    async def get_item(self, item_id: str) -> ItemDocument | None:
        snap = await self._db.collection(ITEMS_COLLECTION).document(item_id).get()
        if not snap.exists:
            return None
        return ItemDocument.model_validate(snap.to_dict() or {})
