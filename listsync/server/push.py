"""Push delivery backends.

A ``PushSender`` hands a small payload to a device's push endpoint.  Senders
classify failures so the notifier can tell a dead endpoint (remove it) from a
temporary provider problem (drop the message, try again next sync).
"""

from __future__ import annotations

from functools import partial
from typing import Any, Protocol, runtime_checkable

from anyio import to_thread
from pywebpush import WebPushException, webpush

GONE_STATUS_CODES = frozenset({404, 410})
"""Push service responses meaning the subscription no longer exists."""


class PushDeliveryError(Exception):
    """Delivery failed for a reason that may clear up later."""


class PushEndpointGoneError(PushDeliveryError):
    """The endpoint is permanently gone; the subscription should be removed."""


@runtime_checkable
class PushSender(Protocol):
    async def send(self, endpoint: dict[str, Any], payload: str) -> None:
        """Deliver *payload* to *endpoint*.

        Raises ``PushEndpointGoneError`` for permanent failures and
        ``PushDeliveryError`` for anything else.
        """
        ...


class WebPushSender:
    """Web Push (RFC 8030) delivery with VAPID authentication via pywebpush.

    pywebpush is synchronous (requests), so each delivery runs in the thread
    pool.
    """

    def __init__(self, vapid_private_key: str, vapid_subject: str, *, ttl: int = 86400) -> None:
        self._private_key = vapid_private_key
        self._subject = vapid_subject
        self._ttl = ttl

    async def send(self, endpoint: dict[str, Any], payload: str) -> None:
        await to_thread.run_sync(partial(self._send_sync, endpoint, payload))

    def _send_sync(self, endpoint: dict[str, Any], payload: str) -> None:
        try:
            webpush(
                subscription_info=endpoint,
                data=payload,
                vapid_private_key=self._private_key,
                # pywebpush fills in aud/exp on the dict it is given.
                vapid_claims={"sub": self._subject},
                ttl=self._ttl,
            )
        except WebPushException as exc:
            status = exc.response.status_code if exc.response is not None else None
            if status in GONE_STATUS_CODES:
                raise PushEndpointGoneError(f"endpoint gone (HTTP {status})") from exc
            raise PushDeliveryError(f"push service error (HTTP {status}): {exc.message}") from exc
        except (OSError, ValueError) as exc:
            raise PushDeliveryError(str(exc)) from exc
