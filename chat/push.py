"""
Web Push delivery of VAPID-signed browser notifications.

Subscriptions are stored per user and endpoint. Delivery is skipped with a
warning when VAPID keys are not configured; endpoints the push service
reports as gone (404/410) are removed.

Usage::

    from chat.push import send_to_user
    send_to_user(user.id, {"title": "Alice", "body": "Hi!"})
"""

import json
import logging

import requests
from django.conf import settings
from pywebpush import WebPushException, webpush

from .exceptions import InvalidInput
from .models import PushSubscription

logger = logging.getLogger(__name__)

GONE_STATUSES = (404, 410)
PUSH_TIMEOUT = 10  # seconds


def get_vapid_keys():
    public_key = settings.VAPID_PUBLIC_KEY
    private_key = settings.VAPID_PRIVATE_KEY
    if not public_key or not private_key:
        logger.warning("Push notifications skipped: missing VAPID keys")
        return None
    return public_key, private_key


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


def save_subscription(user, subscription):
    """
    Store a browser PushSubscription (its JSON form) for user.

    The same endpoint is updated in place rather than duplicated.
    """
    if not isinstance(subscription, dict):
        raise InvalidInput("Subscription must be an object")
    endpoint = subscription.get('endpoint')
    keys = subscription.get('keys') or {}
    if not endpoint or not keys.get('p256dh') or not keys.get('auth'):
        raise InvalidInput("Subscription needs an endpoint and p256dh/auth keys")

    record, created = PushSubscription.objects.update_or_create(
        user=user,
        endpoint=endpoint,
        defaults={
            'p256dh': keys['p256dh'],
            'auth': keys['auth'],
            'expiration_time': subscription.get('expirationTime'),
        },
    )
    if created:
        logger.info(f"Push subscription {record.pk} saved for user {user.pk}")
    return record


def remove_subscription(user, endpoint):
    deleted, _ = PushSubscription.objects.filter(user=user, endpoint=endpoint).delete()
    return bool(deleted)


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


def _build_payload(payload):
    return json.dumps({
        "title": payload.get("title"),
        "body": payload.get("body"),
        "icon": payload.get("icon"),
        "badge": payload.get("badge"),
        "data": payload.get("data"),
    })


def send_to_user(user_id, payload):
    """
    Deliver a notification to every subscription of user_id.

    Returns:
        int: number of successful deliveries
    """
    vapid_keys = get_vapid_keys()
    if not vapid_keys:
        return 0
    _, private_key = vapid_keys

    subscriptions = list(PushSubscription.objects.filter(user_id=user_id).order_by("pk"))
    if not subscriptions:
        return 0

    data = _build_payload(payload)
    sent = 0
    for entry in subscriptions:
        try:
            webpush(
                subscription_info=entry.as_subscription_info(),
                data=data,
                vapid_private_key=private_key,
                vapid_claims={"sub": settings.WEB_PUSH_CONTACT},
                timeout=PUSH_TIMEOUT,
            )
            sent += 1
        except WebPushException as e:
            status = getattr(e.response, 'status_code', None)
            if status in GONE_STATUSES:
                logger.info(f"Removing expired push subscription {entry.pk} (status {status})")
                entry.delete()
                continue
            logger.error(f"Failed to deliver push notification to subscription {entry.pk}: {e}")
        except requests.RequestException as e:
            logger.error(f"Push service unreachable for subscription {entry.pk}: {e}")
    return sent
