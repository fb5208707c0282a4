# app/core/events/ports.py
from __future__ import annotations
from typing import Any, Collection, Optional, Protocol
from app.core.events.schemas import ItemDocument


class AudienceDirectory(Protocol):
    """
    Read access to users and items in the data store.

    Token lookups return raw stored values; junk (missing, empty,
    non-string) is filtered by the dispatch layer, not here.
    """

    async def all_user_tokens(self) -> list[Any]: ...

    async def office_staff_tokens(self, office_id: str, roles: Collection[str]) -> list[Any]: ...

    async def user_token(self, user_id: str) -> Any: ...

    async def get_item(self, item_id: str) -> Optional[ItemDocument]: ...
