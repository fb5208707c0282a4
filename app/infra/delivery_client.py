# app/infra/delivery_client.py
"""
Firebase Cloud Messaging delivery client.

One ``send`` = one ``send_each_for_multicast`` call. The SDK call is
blocking, so it runs in the default executor.

Per-recipient errors are normalised to the ``messaging/...`` error code
vocabulary used by the outcome analyzer:

- UnregisteredError      → messaging/registration-token-not-registered (stale)
- SenderIdMismatchError  → messaging/mismatched-credential
- QuotaExceededError     → messaging/message-rate-exceeded
- ThirdPartyAuthError    → messaging/third-party-auth-error
- InvalidArgumentError   → messaging/invalid-argument
- other FirebaseError    → messaging/<provider code, lowercased>

Whole-call failures become ``TransportError``:
- credential / invalid request errors → NOT retryable
- network, quota, unavailable, internal → retryable

The SDK does not raise on network failures. Each message's HTTP error is
returned in its ``SendResponse``, so a batch where every message failed
before any response arrived is reported as a ``TransportError`` too.
Errors the SDK cannot attribute to a message (credential refresh, for
example) come back as one ``UnknownError`` with the original as ``cause``.
"""
from __future__ import annotations

import asyncio
import functools
from typing import Sequence

import firebase_admin
import requests
from firebase_admin import credentials, exceptions, messaging
from google.auth import exceptions as auth_exceptions

from app.core.dispatch.batching import PROVIDER_MAX_BATCH_SIZE
from app.core.dispatch.errors import BatchTooLargeError, TransportError
from app.core.dispatch.models import DeliveryOutcome, NotificationRequest, Recipient
from app.core.dispatch.payload import PlatformDelivery
from app.infra.logging_config import get_logger

logger = get_logger(__name__)

FIREBASE_APP_NAME = "push-dispatcher"

UNKNOWN_ERROR_CODE = "UNKNOWN_ERROR"
UNKNOWN_ERROR_MESSAGE = "No specific error message provided."

_RETRYABLE_CODES = frozenset({
    exceptions.UNAVAILABLE,
    exceptions.INTERNAL,
    exceptions.DEADLINE_EXCEEDED,
    exceptions.RESOURCE_EXHAUSTED,
    exceptions.ABORTED,
    exceptions.UNKNOWN,
})

# Checked in order, subclasses first
_ERROR_CODES: tuple[tuple[type[Exception], str], ...] = (
    (messaging.UnregisteredError, "messaging/registration-token-not-registered"),
    (messaging.SenderIdMismatchError, "messaging/mismatched-credential"),
    (messaging.QuotaExceededError, "messaging/message-rate-exceeded"),
    (messaging.ThirdPartyAuthError, "messaging/third-party-auth-error"),
    (exceptions.InvalidArgumentError, "messaging/invalid-argument"),
)


def init_firebase_app(settings) -> firebase_admin.App:
    """Initialise (or reuse) the named Firebase app for this process.

    Called once at startup; the returned handle is passed explicitly to
    ``FirebaseDeliveryClient`` and the audience directory.
    """
    try:
        return firebase_admin.get_app(FIREBASE_APP_NAME)
    except ValueError:
        pass

    if settings.firebase_credentials_file:
        cred = credentials.Certificate(settings.firebase_credentials_file)
    else:
        cred = credentials.ApplicationDefault()

    options = {}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id

    app = firebase_admin.initialize_app(cred, options, name=FIREBASE_APP_NAME)
    logger.info(
        "Firebase app initialised: project=%s, credentials=%s",
        settings.firebase_project_id or "default",
        "file" if settings.firebase_credentials_file else "application-default",
    )
    return app


def error_code_for(exc: Exception | None) -> str:
    """Map an SDK per-recipient exception to a ``messaging/...`` code"""
    if exc is None:
        return UNKNOWN_ERROR_CODE

    for exc_type, code in _ERROR_CODES:
        if isinstance(exc, exc_type):
            return code

    provider_code = getattr(exc, "code", None)
    if provider_code:
        return f"messaging/{str(provider_code).lower().replace('_', '-')}"
    return UNKNOWN_ERROR_CODE


def is_transport_failure(exc: Exception | None) -> bool:
    """True if a per-message error happened before FCM answered"""
    return (
        isinstance(exc, exceptions.FirebaseError)
        and exc.http_response is None
        and isinstance(exc.cause, requests.exceptions.RequestException)
    )


def is_retryable_call_error(exc: exceptions.FirebaseError) -> bool:
    """Whether resending a batch after a whole-call SDK error may succeed"""
    cause = exc.cause
    if isinstance(cause, auth_exceptions.TransportError):
        # Token endpoint unreachable
        return True
    if isinstance(cause, auth_exceptions.GoogleAuthError):
        return False
    return exc.code in _RETRYABLE_CODES


def _to_outcome(token: Recipient, response: messaging.SendResponse) -> DeliveryOutcome:
    if response.success:
        return DeliveryOutcome(recipient=token, success=True, message_id=response.message_id)

    exc = response.exception
    return DeliveryOutcome(
        recipient=token,
        success=False,
        error_code=error_code_for(exc),
        error_message=str(exc) if exc is not None and str(exc) else UNKNOWN_ERROR_MESSAGE,
    )


class FirebaseDeliveryClient:
    """DeliveryClient backed by ``firebase_admin.messaging``"""

    def __init__(
        self,
        app: firebase_admin.App | None = None,
        platform: PlatformDelivery | None = None,
        *,
        dry_run: bool = False,
    ) -> None:
        self._app = app
        self._platform = platform or PlatformDelivery()
        self._dry_run = dry_run

    @property
    def name(self) -> str:
        return "fcm"

    def build_message(
        self,
        batch: Sequence[Recipient],
        request: NotificationRequest,
    ) -> messaging.MulticastMessage:
        android = self._platform.android
        ios = self._platform.ios

        return messaging.MulticastMessage(
            tokens=list(batch),
            notification=messaging.Notification(title=request.title, body=request.body),
            data=dict(request.data),
            android=messaging.AndroidConfig(
                priority=android.priority,
                notification=messaging.AndroidNotification(
                    channel_id=android.channel_id,
                    click_action=android.click_action,
                    sound=android.sound,
                ),
            ),
            apns=messaging.APNSConfig(
                headers={"apns-priority": ios.priority_header},
                payload=messaging.APNSPayload(
                    aps=messaging.Aps(
                        sound=ios.sound,
                        content_available=ios.content_available,
                    ),
                ),
            ),
        )

    async def send(
        self,
        batch: Sequence[Recipient],
        request: NotificationRequest,
    ) -> list[DeliveryOutcome]:
        if len(batch) > PROVIDER_MAX_BATCH_SIZE:
            raise BatchTooLargeError(len(batch), PROVIDER_MAX_BATCH_SIZE)

        message = self.build_message(batch, request)
        loop = asyncio.get_running_loop()
        call = functools.partial(
            messaging.send_each_for_multicast,
            message,
            dry_run=self._dry_run,
            app=self._app,
        )

        try:
            response = await loop.run_in_executor(None, call)
        except exceptions.FirebaseError as exc:
            raise TransportError(
                f"FCM multicast failed (code={exc.code}): {exc}",
                batch_size=len(batch),
                retryable=is_retryable_call_error(exc),
            ) from exc
        except auth_exceptions.GoogleAuthError as exc:
            # Credential lookup fails before the SDK sends anything
            raise TransportError(
                f"FCM credentials unavailable: {exc}",
                batch_size=len(batch),
                retryable=isinstance(exc, auth_exceptions.TransportError),
            ) from exc

        if len(response.responses) != len(batch):
            # Positional mapping would attribute outcomes to the wrong tokens
            raise TransportError(
                f"FCM returned {len(response.responses)} results for {len(batch)} tokens",
                batch_size=len(batch),
                retryable=False,
            )

        unreached = [r.exception for r in response.responses if is_transport_failure(r.exception)]
        if batch and len(unreached) == len(batch):
            raise TransportError(
                f"FCM unreachable for all {len(batch)} tokens: {unreached[0]}",
                batch_size=len(batch),
                retryable=True,
            ) from unreached[0]
        if unreached:
            logger.warning(
                "FCM unreachable for %d of %d tokens, reporting them as failed",
                len(unreached), len(batch),
            )

        logger.debug(
            "FCM multicast done: tokens=%d, success=%d, failure=%d",
            len(batch), response.success_count, response.failure_count,
        )
        return [_to_outcome(token, resp) for token, resp in zip(batch, response.responses)]


def get_delivery_client(settings, app: firebase_admin.App | None = None) -> FirebaseDeliveryClient:
    """Build the delivery client for this process from settings"""
    return FirebaseDeliveryClient(
        app=app,
        platform=PlatformDelivery.from_settings(settings),
        dry_run=settings.push_dry_run,
    )
