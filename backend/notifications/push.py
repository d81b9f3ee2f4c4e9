"""
Expo push-notification gateway client.

Sole responsibility: talk to the Expo push HTTP API and return delivery
tickets. It knows nothing about orders or drivers; callers build the messages.

- Invalid device tokens are skipped silently (logged at debug level).
- Messages are sent in chunks (Expo accepts at most 100 per request).
- A failing chunk is logged and the remaining chunks are still attempted.
"""

import logging
import re
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, List, Optional

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_EXPO_PUSH_URL = "https://exp.host/--/api/v2/push/send"

_EXPO_TOKEN_RE = re.compile(r"^(ExponentPushToken|ExpoPushToken)\[[^\]]+\]$")
_UUID_TOKEN_RE = re.compile(r"^[a-z\d]{8}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{12}$", re.IGNORECASE)


class PushGatewayError(Exception):
    """Raised when the push gateway answers with something we cannot parse."""
    pass


def is_expo_push_token(token: Optional[str]) -> bool:
    """Check whether a string looks like a device token Expo will accept."""
    if not token or not isinstance(token, str):
        return False
    return bool(_EXPO_TOKEN_RE.match(token) or _UUID_TOKEN_RE.match(token))


@dataclass
class PushMessage:
    """One push message addressed to a single device token."""
    to: str
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)
    sound: str = "default"
    priority: str = "high"
    channel_id: str = "default"

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["channelId"] = payload.pop("channel_id")
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "PushMessage":
        return cls(
            to=payload["to"],
            title=payload.get("title", ""),
            body=payload.get("body", ""),
            data=payload.get("data") or {},
            sound=payload.get("sound", "default"),
            priority=payload.get("priority", "high"),
            channel_id=payload.get("channelId", "default"),
        )


class ExpoPushClient:
    """
    Expo push adapter.

    Usage:
        client = ExpoPushClient()
        tickets = client.send([PushMessage(to=token, title="Hi", body="...")])
    """

    def __init__(
        self,
        url: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: Optional[float] = None,
        batch_size: Optional[int] = None,
        enabled: Optional[bool] = None,
        session: Optional[requests.Session] = None,
    ):
        config = getattr(settings, "PUSH_NOTIFICATIONS", {})
        self.url = url or config.get("EXPO_PUSH_URL", DEFAULT_EXPO_PUSH_URL)
        self.access_token = access_token if access_token is not None else config.get("ACCESS_TOKEN")
        self.timeout = timeout or config.get("TIMEOUT", 10)
        self.batch_size = batch_size or config.get("BATCH_SIZE", 100)
        self.enabled = config.get("ENABLED", True) if enabled is None else enabled
        self._session = session or requests.Session()

    # ---------------------- Internal helpers ----------------------

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _chunks(self, messages: List[PushMessage]) -> Iterable[List[PushMessage]]:
        for start in range(0, len(messages), self.batch_size):
            yield messages[start:start + self.batch_size]

    def _post_chunk(self, chunk: List[PushMessage]) -> List[Dict[str, Any]]:
        response = self._session.post(
            self.url,
            json=[message.to_payload() for message in chunk],
            headers=self._headers(),
            timeout=self.timeout,
        )
        response.raise_for_status()

        body = response.json()
        tickets = body.get("data") if isinstance(body, dict) else None
        if not isinstance(tickets, list):
            raise PushGatewayError(f"Unexpected push gateway response: {body!r}")
        return tickets

    # ---------------------- Public API ----------------------

    def send(self, messages: Iterable[PushMessage]) -> List[Dict[str, Any]]:
        """
        Send messages and return the delivery tickets Expo handed back.

        Never raises for delivery problems; failures are logged.
        """
        valid = []
        for message in messages:
            if is_expo_push_token(message.to):
                valid.append(message)
            else:
                logger.debug("Skipping invalid push token %r", message.to)

        if not valid:
            return []

        if not self.enabled:
            logger.info("Push disabled; dropping %d message(s)", len(valid))
            return []

        tickets: List[Dict[str, Any]] = []
        for chunk in self._chunks(valid):
            try:
                logger.debug("Sending push chunk of %d message(s)", len(chunk))
                chunk_tickets = self._post_chunk(chunk)
            except (requests.RequestException, PushGatewayError, ValueError):
                logger.exception("Failed to send push chunk of %d message(s)", len(chunk))
                continue

            for message, ticket in zip(chunk, chunk_tickets):
                if ticket.get("status") == "error":
                    logger.warning(
                        "Push to %s rejected: %s",
                        message.to, ticket.get("message") or ticket.get("details"),
                    )
            tickets.extend(chunk_tickets)

        return tickets


_push_client: Optional[ExpoPushClient] = None


def get_push_client() -> ExpoPushClient:
    """Get singleton ExpoPushClient instance."""
    global _push_client
    if _push_client is None:
        _push_client = ExpoPushClient()
    return _push_client
