"""
Lightweight user and reply snapshots.

Messages embed a copy of the quoted message and of its sender instead of a
reference, so a reply renders without a join and survives the quoted message
being swept.
"""

from django.conf import settings
from django.utils import timezone

from .models import Message, User


def build_participant_snapshot(user):
    """
    Public fields of a user, as embedded in messages and replies.

    Args:
        user: User instance, or None

    Returns:
        dict or None
    """
    if user is None:
        return None
    return {
        "id": user.pk,
        "image": user.image or settings.CHAT_PLACEHOLDER_IMAGE,
        "name": user.name or None,
        "token_identifier": user.token_identifier or "",
        "email": user.email or "",
        "created_at": user.date_joined.isoformat() if user.date_joined else None,
        "is_online": user.is_online,
    }


def placeholder_snapshot(user_id):
    """Snapshot used when the referenced user no longer exists."""
    return {
        "id": user_id,
        "image": settings.CHAT_PLACEHOLDER_IMAGE,
        "name": None,
        "token_identifier": "",
        "email": "",
        "created_at": timezone.now().isoformat(),
        "is_online": False,
    }


def hydrate_user_snapshot(cache, user_id):
    """
    Snapshot of user_id, looked up at most once per cache.

    The cache is a plain dict owned by the caller and lives for one
    response; missing users are cached as placeholders too.
    """
    if user_id in cache:
        return cache[user_id]

    user = User.objects.filter(pk=user_id).first() if user_id is not None else None
    snapshot = build_participant_snapshot(user) or placeholder_snapshot(user_id)
    cache[user_id] = snapshot
    return snapshot


def extract_quoted_message(message):
    return message.payload()


def reply_message_id(reply_to):
    """Accept either a bare id or {"message_id": id}."""
    if reply_to in (None, '', {}):
        return None
    if isinstance(reply_to, dict):
        reply_to = reply_to.get('message_id')
    try:
        return int(reply_to)
    except (TypeError, ValueError):
        return None


def build_reply_payload(reply_to, conversation, cache=None):
    """
    Snapshot of the quoted message for a new reply.

    Returns None when nothing is quoted, when the quoted message is gone,
    or when it belongs to another conversation.
    """
    message_id = reply_message_id(reply_to)
    if message_id is None:
        return None

    original = Message.objects.filter(pk=message_id, conversation=conversation).first()
    if original is None:
        return None

    if cache is None:
        cache = {}
    return {
        "message_id": original.pk,
        "quoted_type": original.message_type,
        "quoted_message": extract_quoted_message(original),
        "participant": hydrate_user_snapshot(cache, original.sender_id),
    }
