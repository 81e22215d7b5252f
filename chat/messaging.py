"""
Message fan-out, reading, deletion and the retention sweep.

Sending validates the conversation and the sender, stores the message with
its receivers (every participant but the sender) and readers (the sender),
attaches a reply snapshot when a message is quoted, and push-notifies the
receivers once the transaction commits.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from . import push
from .conversations import get_conversation, get_membership
from .exceptions import Forbidden, InvalidInput, NotFound
from .models import (
    AUDIO, DELETED_MESSAGE_TEXT, DOCUMENT, IMAGE, TEXT, VIDEO,
    Message, message_storage,
)
from .snapshots import build_reply_payload, hydrate_user_snapshot

logger = logging.getLogger(__name__)


# ============================================================================
# SENDING
# ============================================================================

def _get_sendable_conversation(user, conversation_id, sender_id=None):
    conversation = get_conversation(conversation_id)
    if not conversation.has_participant(user):
        raise Forbidden("You are not part of this conversation")
    if sender_id not in (None, '') and str(sender_id) != str(user.pk):
        raise InvalidInput("Invalid sender provided")
    return conversation


def _check_upload(upload, expected_prefix=None):
    if not upload:
        raise InvalidInput("File is required")
    if upload.size > settings.CHAT_MAX_UPLOAD_SIZE:
        raise InvalidInput("File is too large")
    content_type = getattr(upload, 'content_type', '') or ''
    if expected_prefix and not content_type.startswith(expected_prefix):
        raise InvalidInput(f"Expected a {expected_prefix.rstrip('/')} file")


def _deliver(conversation, sender, reply_to, **fields):
    message = Message(conversation=conversation, sender=sender, **fields)
    upload_name = message.media.name if message.media else None
    try:
        with transaction.atomic():
            message.reply = build_reply_payload(reply_to, conversation)
            message.save()
            receivers = [pk for pk in conversation.participant_ids() if pk != sender.pk]
            message.receivers.set(receivers)
            message.readers.set([sender.pk])
            transaction.on_commit(lambda: notify_receivers(message, receivers))
    except Exception:
        # The blob was stored on save; drop it with the rolled back row
        if message.media and message.media.name != upload_name:
            _delete_blob(message.media.name)
        raise

    logger.info(f"Message {message.pk} ({message.message_type}) sent to conversation {conversation.pk} by user {sender.pk}")
    return message


def send_text(user, conversation_id, content, reply_to=None, sender_id=None):
    conversation = _get_sendable_conversation(user, conversation_id, sender_id)
    if not isinstance(content, str) or not content.strip():
        raise InvalidInput("Message content cannot be empty")
    return _deliver(conversation, user, reply_to, message_type=TEXT, text=content)


def send_image(user, conversation_id, image, caption=None, reply_to=None, sender_id=None):
    conversation = _get_sendable_conversation(user, conversation_id, sender_id)
    _check_upload(image, 'image/')
    return _deliver(
        conversation, user, reply_to,
        message_type=IMAGE, media=image, caption=caption or '',
    )


def send_video(user, conversation_id, video, caption=None, gif_playback=False,
               reply_to=None, sender_id=None):
    conversation = _get_sendable_conversation(user, conversation_id, sender_id)
    _check_upload(video, 'video/')
    return _deliver(
        conversation, user, reply_to,
        message_type=VIDEO, media=video, caption=caption or '',
        gif_playback=bool(gif_playback),
    )


def send_audio(user, conversation_id, audio, reply_to=None, sender_id=None):
    conversation = _get_sendable_conversation(user, conversation_id, sender_id)
    _check_upload(audio, 'audio/')
    return _deliver(conversation, user, reply_to, message_type=AUDIO, media=audio)


def send_document(user, conversation_id, document, caption=None, title=None,
                  page_count=None, reply_to=None, sender_id=None):
    conversation = _get_sendable_conversation(user, conversation_id, sender_id)
    _check_upload(document)
    if page_count not in (None, ''):
        try:
            page_count = int(page_count)
        except (TypeError, ValueError):
            raise InvalidInput("page_count must be a number")
    else:
        page_count = None
    return _deliver(
        conversation, user, reply_to,
        message_type=DOCUMENT,
        media=document,
        caption=caption or '',
        title=title or '',
        page_count=page_count,
        file_name=document.name,
        file_size=document.size,
        mimetype=getattr(document, 'content_type', '') or 'application/octet-stream',
    )


def notify_receivers(message, receiver_ids):
    """Push a notification about message to each receiver."""
    conversation = message.conversation
    sender = message.sender
    sender_name = sender.display_name if sender else "Someone"
    if conversation.is_group:
        title = conversation.group_name
        body = f"{sender_name}: {message.preview()}"
    else:
        title = sender_name
        body = message.preview()

    payload = {
        "title": title,
        "body": body,
        "icon": (sender.image if sender else None) or settings.CHAT_PLACEHOLDER_IMAGE,
        "data": {"conversation_id": conversation.pk, "message_id": message.pk},
    }
    for receiver_id in receiver_ids:
        try:
            push.send_to_user(receiver_id, payload)
        except Exception:
            logger.exception(f"Push notification for message {message.pk} to user {receiver_id} failed")


# ============================================================================
# READING
# ============================================================================

def serialize_message(message, cache):
    return {
        "id": message.pk,
        "conversation_id": message.conversation_id,
        "message_type": message.message_type,
        "sender": hydrate_user_snapshot(cache, message.sender_id),
        "content": message.payload(),
        "receivers": [u.pk for u in message.receivers.all()],
        "readers": [u.pk for u in message.readers.all()],
        "reply": message.reply,
        "created_at": message.created_at.isoformat(),
    }


def get_messages(user, conversation_id):
    """
    Messages of a conversation, oldest first, with sender snapshots.

    Senders are looked up once per response through a shared cache.
    """
    conversation = get_membership(conversation_id, user)
    messages = (
        conversation.messages
        .prefetch_related('receivers', 'readers')
        .order_by('created_at', 'id')
    )
    cache = {}
    return [serialize_message(message, cache) for message in messages]


def mark_conversation_read(user, conversation_id):
    """Add user to the readers of every message of the conversation."""
    conversation = get_membership(conversation_id, user)
    unread = list(
        conversation.messages.exclude(readers=user).values_list('pk', flat=True)
    )
    through = Message.readers.through
    through.objects.bulk_create(
        [through(message_id=pk, user_id=user.pk) for pk in unread],
        ignore_conflicts=True,
    )
    return len(unread)


# ============================================================================
# DELETION
# ============================================================================

def _get_deletable_message(user, message_id):
    message = Message.objects.select_related('conversation').filter(pk=message_id).first()
    if message is None:
        raise NotFound("Message not found")
    conversation = message.conversation
    if not conversation.has_participant(user):
        raise Forbidden("You are not part of this conversation")
    if message.sender_id != user.pk and not (conversation.is_group and conversation.has_admin(user)):
        raise Forbidden("You can only delete your own messages")
    return message


def delete_message(user, message_id):
    """
    Replace a message with a tombstone.

    The attachment is removed from storage and the message becomes a text
    message reading "This message was deleted" without a reply.
    """
    message = _get_deletable_message(user, message_id)
    if message.media:
        message.media.delete(save=False)

    message.message_type = TEXT
    message.text = DELETED_MESSAGE_TEXT
    message.media = None
    message.caption = ''
    message.gif_playback = False
    message.mimetype = ''
    message.file_name = ''
    message.file_size = None
    message.title = ''
    message.page_count = None
    message.reply = None
    message.save()
    logger.info(f"Message {message.pk} deleted by user {user.pk}")
    return message


def destroy_message(user, message_id):
    """Remove a message row and its attachment."""
    message = _get_deletable_message(user, message_id)
    if message.media:
        message.media.delete(save=False)
    message.delete()
    logger.info(f"Message {message_id} destroyed by user {user.pk}")


# ============================================================================
# RETENTION SWEEP
# ============================================================================

def _delete_blob(name):
    try:
        message_storage().delete(name)
    except Exception as e:
        logger.warning(f"Could not delete blob {name}: {e}")
        return False
    return True


def clear_old_messages(now=None, max_age=None, batch_size=None):
    """
    Delete messages older than max_age, batch by batch, with their blobs.

    Each batch deletes its rows first and then its blobs; a blob that fails
    to delete is logged and skipped. The sweep stops on an empty batch or a
    batch shorter than batch_size.

    Args:
        now: Reference time (defaults to timezone.now())
        max_age: timedelta (defaults to CHAT_MESSAGE_RETENTION_HOURS)
        batch_size: Rows per batch (defaults to CHAT_RETENTION_BATCH_SIZE)

    Returns:
        int: number of deleted messages
    """
    now = now or timezone.now()
    if max_age is None:
        max_age = timedelta(hours=settings.CHAT_MESSAGE_RETENTION_HOURS)
    batch_size = batch_size or settings.CHAT_RETENTION_BATCH_SIZE
    cutoff = now - max_age

    deleted = 0
    failed_blobs = 0
    while True:
        batch = list(
            Message.objects.filter(created_at__lt=cutoff)
            .order_by('created_at', 'id')
            .values_list('pk', 'media')[:batch_size]
        )
        if not batch:
            break

        ids = [pk for pk, _ in batch]
        blobs = [name for _, name in batch if name]

        Message.objects.filter(pk__in=ids).delete()
        for name in blobs:
            if not _delete_blob(name):
                failed_blobs += 1

        deleted += len(ids)
        if len(batch) < batch_size:
            break

    if deleted:
        logger.info(f"Retention sweep removed {deleted} messages older than {cutoff.isoformat()} ({failed_blobs} blob failures)")
    return deleted
