# app/core/events/schemas.py
"""
Typed projections of the documents behind each trigger.

Documents are free-form in the data store; only the fields a handler reads
are declared here, everything else is ignored. Conversion happens once at
the trigger boundary via the ``from_*`` constructors.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

STATUS_SCHEDULED = "scheduled"


class EventValidationError(Exception):
    """Trigger payload could not be projected onto its event type."""

    def __init__(self, event_type: str, detail: str):
        self.event_type = event_type
        self.detail = detail
        super().__init__(f"Invalid {event_type} event: {detail}")


class _Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class ItemDocument(_Document):
    """``items/{itemId}``"""
    type: str | None = None
    title: str | None = None
    location: str | None = None

    @field_validator("type", "title", "location", mode="before")
    @classmethod
    def _text_or_none(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None


class CollectionRequestDocument(_Document):
    """``collectionRequests/{reqId}``"""
    item_id: str | None = Field(default=None, alias="itemId")
    verified_office_id: str | None = Field(default=None, alias="verifiedOfficeId")
    requester_id: str | None = Field(default=None, alias="requesterId")
    status: str | None = None
    pickup_time: datetime | None = Field(default=None, alias="pickupTime")

    @field_validator("item_id", "verified_office_id", "requester_id", "status", mode="before")
    @classmethod
    def _id_or_none(cls, value: Any) -> str | None:
        return value if isinstance(value, str) and value else None

    @field_validator("pickup_time", mode="before")
    @classmethod
    def _timestamp_or_none(cls, value: Any) -> datetime | None:
        # Data-store timestamps arrive as datetime subclasses; anything else is unusable
        return value if isinstance(value, datetime) else None


class ItemReported(BaseModel):
    """A new item document was created"""
    model_config = ConfigDict(frozen=True)

    item_id: str = Field(min_length=1)
    item: ItemDocument

    @classmethod
    def from_document(cls, item_id: str, doc: Mapping[str, Any]) -> "ItemReported":
        return _build(cls, "item_reported", item_id=item_id, item=dict(doc))


class CollectionRequestCreated(BaseModel):
    """A new collection request document was created"""
    model_config = ConfigDict(frozen=True)

    req_id: str = Field(min_length=1)
    request: CollectionRequestDocument

    @classmethod
    def from_document(cls, req_id: str, doc: Mapping[str, Any]) -> "CollectionRequestCreated":
        return _build(cls, "collection_request_created", req_id=req_id, request=dict(doc))


class CollectionRequestUpdated(BaseModel):
    """A collection request document changed"""
    model_config = ConfigDict(frozen=True)

    req_id: str = Field(min_length=1)
    before: CollectionRequestDocument
    after: CollectionRequestDocument

    @classmethod
    def from_documents(
        cls,
        req_id: str,
        before: Mapping[str, Any],
        after: Mapping[str, Any],
    ) -> "CollectionRequestUpdated":
        return _build(
            cls, "collection_request_updated",
            req_id=req_id, before=dict(before), after=dict(after),
        )

    def became_scheduled(self) -> bool:
        """Status transitioned into ``scheduled`` with this update"""
        return self.before.status != STATUS_SCHEDULED and self.after.status == STATUS_SCHEDULED


def _build(model: type[BaseModel], event_type: str, **fields: Any):
    try:
        return model.model_validate(fields)
    except ValidationError as exc:
        raise EventValidationError(event_type, str(exc)) from exc
