# app/core/events/handlers.py
"""
Event handlers: resolve the audience for a data change and dispatch.

Handlers return the DispatchReport, or ``None`` when the event does not
call for a notification. Stale tokens are logged for the cleanup job;
this module never writes to the data store.
"""
from __future__ import annotations

from datetime import timezone, tzinfo

from app.core.dispatch.batching import is_valid_recipient
from app.core.dispatch.coordinator import DispatchCoordinator
from app.core.dispatch.models import DispatchReport
from app.core.events.messages import (
    collection_request_message,
    new_item_message,
    pickup_scheduled_message,
)
from app.core.events.ports import AudienceDirectory
from app.core.events.schemas import (
    CollectionRequestCreated,
    CollectionRequestUpdated,
    ItemReported,
)
from app.infra.logging_config import get_logger, mask_token

logger = get_logger(__name__)

OFFICE_STAFF_ROLES = ("office_admin", "staff")


class EventNotifier:
    """Notification side of the data-change triggers"""

    def __init__(
        self,
        directory: AudienceDirectory,
        coordinator: DispatchCoordinator,
        *,
        display_timezone: tzinfo = timezone.utc,
    ):
        self._directory = directory
        self._coordinator = coordinator
        self._tz = display_timezone

    async def notify_new_item(self, event: ItemReported) -> DispatchReport:
        """Tell every user with a device that an item was reported"""
        tokens = await self._directory.all_user_tokens()
        title, body = new_item_message(event.item)

        report = await self._coordinator.dispatch(
            tokens, title, body, {"itemId": event.item_id},
            source="new_item", event_id=event.item_id,
        )
        self._log_stale(report, event.item_id)
        return report

    async def notify_collection_request(self, event: CollectionRequestCreated) -> DispatchReport | None:
        """Tell the verifying office's admins and staff about a new request"""
        request = event.request
        if not request.item_id or not request.verified_office_id:
            logger.info(
                "Collection request %s lacks itemId/verifiedOfficeId, not notifying",
                event.req_id, extra={"event_id": event.req_id},
            )
            return None

        tokens = await self._directory.office_staff_tokens(
            request.verified_office_id, OFFICE_STAFF_ROLES,
        )
        if not any(is_valid_recipient(t) for t in tokens):
            logger.warning(
                "No active tokens found for office %s admin/staff",
                request.verified_office_id, extra={"event_id": event.req_id},
            )
            return None

        item = await self._directory.get_item(request.item_id)
        item_title = (item.title if item else None) or request.item_id
        title, body = collection_request_message(item_title)

        report = await self._coordinator.dispatch(
            tokens, title, body,
            {"itemId": request.item_id, "reqId": event.req_id},
            source="collection_request", event_id=event.req_id,
        )
        self._log_stale(report, event.req_id)
        return report

    async def notify_pickup_scheduled(self, event: CollectionRequestUpdated) -> DispatchReport | None:
        """Tell the requester when the office schedules their pickup"""
        if not event.became_scheduled():
            return None

        after = event.after
        if not after.requester_id:
            logger.warning(
                "Scheduled request %s has no requesterId, not notifying",
                event.req_id, extra={"event_id": event.req_id},
            )
            return None

        token = await self._directory.user_token(after.requester_id)
        if not is_valid_recipient(token):
            logger.warning(
                "Invalid or missing token for requester %s",
                after.requester_id, extra={"event_id": event.req_id},
            )
            return None

        item = await self._directory.get_item(after.item_id) if after.item_id else None
        item_title = (item.title if item else None) or after.item_id or "your item"
        title, body = pickup_scheduled_message(item_title, after, self._tz)

        report = await self._coordinator.dispatch(
            [token], title, body,
            {"itemId": after.item_id, "reqId": event.req_id},
            source="pickup_scheduled", event_id=event.req_id,
        )
        self._log_stale(report, event.req_id)
        return report

    @staticmethod
    def _log_stale(report: DispatchReport, event_id: str) -> None:
        if not report.stale_recipients:
            return
        logger.warning(
            "%d stale token(s) should be removed: %s",
            len(report.stale_recipients),
            ", ".join(sorted(mask_token(t) for t in report.stale_recipients)),
            extra={"event_id": event_id},
        )
