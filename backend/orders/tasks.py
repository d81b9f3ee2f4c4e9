"""Celery tasks for order-related background processing."""

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task
def send_push_notifications_task(messages):
    """
    Deliver a batch of push messages through the Expo gateway.

    Messages arrive as plain payload dicts so they survive the broker.
    Returns the number of tickets the gateway handed back.
    """
    from notifications.push import PushMessage, get_push_client

    batch = []
    for payload in messages or []:
        try:
            batch.append(PushMessage.from_payload(payload))
        except (KeyError, TypeError):
            logger.warning("Dropping malformed push payload: %r", payload)

    if not batch:
        return 0

    tickets = get_push_client().send(batch)
    logger.info("Push batch of %d message(s) produced %d ticket(s)", len(batch), len(tickets))
    return len(tickets)
