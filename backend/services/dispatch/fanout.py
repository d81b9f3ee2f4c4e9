"""
Offer fanout to candidate drivers.

Each offer goes out on two channels at once:
- real-time: the candidate's personal group and the shared city group
- push: one Expo message per candidate with a registered token, plus a
  persisted Notification row

Everything here is best-effort. Failures are logged and swallowed so that
order creation and acceptance never fail because of a notification.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from django.db import transaction

from notifications.models import Notification
from notifications.push import PushMessage, is_expo_push_token
from orders.serializers import order_event_data
from realtime.groups import DRIVERS_GROUP, city_group, driver_group, order_group, user_group

logger = logging.getLogger(__name__)

PushSender = Callable[[List[Dict]], object]


def celery_push_sender(payloads: List[Dict]):
    """Default push sender: hand the batch to the Celery worker."""
    from orders.tasks import send_push_notifications_task
    return send_push_notifications_task.delay(payloads)


@dataclass
class FanoutResult:
    """What an offer reached; for logging only."""
    candidates: int = 0
    realtime_sent: int = 0
    city_broadcast: bool = False
    push_queued: int = 0
    notifications_saved: int = 0


class NotificationFanout:
    """
    Delivers order events to drivers and customers.

    Usage:
        fanout = NotificationFanout(publisher)
        fanout.offer(order, candidates, order.city_token)
        fanout.withdraw(order.id, "taken")
    """

    def __init__(self, publisher, push_sender: Optional[PushSender] = None):
        self.publisher = publisher
        self.push_sender = push_sender or celery_push_sender

    # ---------------------- Internal helpers ----------------------

    def _save_notifications(self, rows: List[Notification]) -> int:
        if not rows:
            return 0
        try:
            with transaction.atomic():
                return len(Notification.objects.bulk_create(rows))
        except Exception:
            logger.exception("Failed to persist %d notification record(s)", len(rows))
            return 0

    def _send_push(self, messages: List[PushMessage]) -> int:
        if not messages:
            return 0
        try:
            self.push_sender([message.to_payload() for message in messages])
        except Exception:
            logger.exception("Failed to queue %d push message(s)", len(messages))
            return 0
        return len(messages)

    # ---------------------- Public API ----------------------

    def offer(self, order, candidates: Iterable, city_token: str = "") -> FanoutResult:
        """Announce a new order to candidate drivers and the city group."""
        candidates = list(candidates)
        result = FanoutResult(candidates=len(candidates))

        try:
            order_data = order_event_data(order)
        except Exception:
            logger.exception("Failed to serialize order %s for fanout", order.id)
            return result

        event = {
            "type": "order_offer",
            "order_id": order.id,
            "order_data": order_data,
        }

        for profile in candidates:
            if self.publisher.publish(driver_group(profile.user_id), event):
                result.realtime_sent += 1

        city = city_group(city_token)
        if city:
            result.city_broadcast = self.publisher.publish(city, event)

        title = "New order nearby"
        body = f"Pickup from {order.merchant.name}. Earn ₹{order.driver_payout}"
        data = {
            "type": "NEW_ORDER",
            "order_id": order.id,
            "delivery_fee": str(order.delivery_fee),
            "payout": str(order.driver_payout),
        }

        messages = []
        rows = []
        for profile in candidates:
            if not is_expo_push_token(profile.push_token):
                continue
            messages.append(PushMessage(to=profile.push_token, title=title, body=body, data=data))
            rows.append(Notification(
                recipient_kind=Notification.RECIPIENT_DRIVER,
                recipient_id=profile.pk,
                title=title,
                body=body,
                data=data,
                notification_type="NEW_ORDER",
            ))

        result.notifications_saved = self._save_notifications(rows)
        result.push_queued = self._send_push(messages)

        logger.info(
            "Offered order %s to %d driver(s): ws=%d city=%s push=%d",
            order.id, result.candidates, result.realtime_sent, city or "-", result.push_queued
        )
        return result

    def withdraw(self, order_id: int, reason: str = "taken") -> bool:
        """Tell every connected driver to drop an order from their lists."""
        return self.publisher.publish(DRIVERS_GROUP, {
            "type": "order_withdrawn",
            "order_id": order_id,
            "reason": reason,
        })

    def notify_customer(self, order, event_type: str, title: str, body: str) -> None:
        """Send an order event to its watchers and the customer, plus a best-effort push."""
        try:
            order_data = order_event_data(order)
        except Exception:
            logger.exception("Failed to serialize order %s for %s", order.id, event_type)
            order_data = {"id": order.id, "status": order.status}

        event = {
            "type": event_type,
            "order_id": order.id,
            "status": order.status,
            "message": body,
            "order_data": order_data,
        }
        self.publisher.publish_many([order_group(order.id), user_group(order.customer_id)], event)

        data = {"type": event_type.upper(), "order_id": order.id, "status": order.status}
        self._save_notifications([Notification(
            recipient_kind=Notification.RECIPIENT_USER,
            recipient_id=order.customer_id,
            title=title,
            body=body,
            data=data,
            notification_type=event_type.upper(),
        )])

        token = order.customer.push_token
        if is_expo_push_token(token):
            self._send_push([PushMessage(to=token, title=title, body=body, data=data)])
