"""
Conversation resolver and group administration.

Conversations are found or created from a participant set. The set is
normalised (int ids, no duplicates, sorted) so [bob, alice] and
[alice, bob] resolve to the same 1:1 conversation. Group conversations keep
their admins as ConversationMember.is_admin flags.

Usage:
    from chat.conversations import upsert_conversation, kick_user

    conversation, created = upsert_conversation(
        request.user, participants=[request.user.id, other.id]
    )
"""

import logging

from django.db import IntegrityError, transaction
from django.db.models import Count, IntegerField, OuterRef, Prefetch, Subquery
from django.db.models.functions import Coalesce

from .exceptions import Forbidden, InvalidInput, NotFound
from .models import Conversation, ConversationMember, Message, User, make_participant_key
from .snapshots import build_participant_snapshot

logger = logging.getLogger(__name__)


# ============================================================================
# HELPERS
# ============================================================================

def normalize_participants(participants):
    """Participant ids as a sorted, de-duplicated list of ints."""
    try:
        ids = {int(pk) for pk in participants}
    except (TypeError, ValueError):
        raise InvalidInput("Participants must be user ids")
    return sorted(ids)


def get_conversation(conversation_id):
    conversation = Conversation.objects.filter(pk=conversation_id).first()
    if conversation is None:
        raise NotFound("Conversation not found")
    return conversation


def get_membership(conversation, user):
    if not isinstance(conversation, Conversation):
        conversation = get_conversation(conversation)
    if not conversation.has_participant(user):
        raise Forbidden("You are not part of this conversation")
    return conversation


def get_group_for_admin(conversation_id, user):
    conversation = get_membership(conversation_id, user)
    if not conversation.is_group:
        raise InvalidInput("Only group conversations have admins")
    if not conversation.has_admin(user):
        raise Forbidden("Only group admins can do this")
    return conversation


def _clean_group_name(group_name):
    if group_name is None:
        return ''
    if not isinstance(group_name, str):
        raise InvalidInput("Group name must be a string")
    return group_name.strip()


def _find_direct_conversation(participant_key):
    return Conversation.objects.filter(
        participant_key=participant_key,
        is_group=False,
    ).order_by('created_at', 'id').first()


def _ensure_users_exist(ids):
    found = set(User.objects.filter(pk__in=ids).values_list('pk', flat=True))
    if found != set(ids):
        raise NotFound("User not found")


def _replace_group_image(conversation, group_image):
    if conversation.group_image:
        conversation.group_image.delete(save=False)
    conversation.group_image = group_image


def delete_message_blobs(messages):
    """Delete the stored attachment of each message; rows are left alone."""
    for message in messages:
        if message.media:
            message.media.delete(save=False)


# ============================================================================
# RESOLVER
# ============================================================================

def upsert_conversation(user, participants, is_group=False, group_name=None,
                        group_image=None, admins=None, conversation_id=None):
    """
    Find or create the conversation for a participant set.

    An explicit conversation_id wins. Otherwise a 1:1 conversation with the
    same participant set is reused; group creation always creates a new
    group. An existing conversation gets its group name and image patched
    when given; its admins are left unchanged.

    Args:
        user: Requesting user (must be one of the participants)
        participants: Iterable of user ids
        is_group: Group flag for a new conversation
        group_name: Group name (required for new groups)
        group_image: Uploaded image file for the group avatar
        admins: Admin ids for a new group (defaults to [user])
        conversation_id: Existing conversation to patch

    Returns:
        tuple: (Conversation, created)
    """
    ids = normalize_participants(participants)
    if user.pk not in ids:
        raise Forbidden("You are not part of this conversation")
    if conversation_id in (None, ''):
        conversation_id = None
    else:
        try:
            conversation_id = int(conversation_id)
        except (TypeError, ValueError):
            raise InvalidInput("Invalid conversation id")
    name = _clean_group_name(group_name)
    participant_key = make_participant_key(ids)

    if conversation_id is not None:
        existing = get_conversation(conversation_id)
    elif not is_group:
        existing = _find_direct_conversation(participant_key)
    else:
        existing = None

    if existing is not None:
        get_membership(existing, user)
        if name or group_image:
            if not existing.is_group:
                raise InvalidInput("Only group conversations have a name and image")
            if not existing.has_admin(user):
                raise Forbidden("Only group admins can do this")
            if name:
                existing.group_name = name
            if group_image:
                _replace_group_image(existing, group_image)
            existing.save()
        return existing, False

    if len(ids) < 2:
        raise InvalidInput("A conversation needs at least two participants")
    if not is_group and len(ids) != 2:
        raise InvalidInput("Direct conversations need exactly two participants")
    _ensure_users_exist(ids)

    if is_group:
        if not name:
            raise InvalidInput("Group name is required")
        admin_ids = set(normalize_participants(admins)) if admins else {user.pk}
        if not admin_ids <= set(ids):
            raise InvalidInput("Admins must be participants")
    else:
        admin_ids = set()

    try:
        with transaction.atomic():
            conversation = Conversation.objects.create(
                is_group=is_group,
                group_name=name if is_group else '',
                created_by=user,
                participant_key=participant_key,
            )
            if is_group and group_image:
                conversation.group_image = group_image
                conversation.save(update_fields=['group_image'])
            ConversationMember.objects.bulk_create([
                ConversationMember(conversation=conversation, user_id=pk, is_admin=pk in admin_ids)
                for pk in ids
            ])
    except IntegrityError:
        # A concurrent request created the same 1:1 conversation first
        existing = None if is_group else _find_direct_conversation(participant_key)
        if existing is None:
            raise
        return existing, False

    logger.info(f"Created {'group' if is_group else 'direct'} conversation {conversation.pk} with {len(ids)} participants")
    return conversation, True


# ============================================================================
# GROUP ADMINISTRATION
# ============================================================================

def set_participants(user, conversation_id, participants):
    """
    Replace the participant list of a group (admin only).

    Returns:
        list: participant ids after the change
    """
    conversation = get_group_for_admin(conversation_id, user)
    ids = normalize_participants(participants)
    if not ids:
        raise InvalidInput("A group needs at least one participant")
    _ensure_users_exist(ids)

    current = set(conversation.participant_ids())
    with transaction.atomic():
        conversation.members.exclude(user_id__in=ids).delete()
        ConversationMember.objects.bulk_create([
            ConversationMember(conversation=conversation, user_id=pk)
            for pk in ids if pk not in current
        ])
        _ensure_admin(conversation)
        conversation.refresh_participant_key()

    logger.info(f"Conversation {conversation.pk} participants set to {ids} by user {user.pk}")
    return conversation.participant_ids()


def kick_user(user, conversation_id, user_id):
    """
    Remove user_id from a group.

    Admins may remove anyone; any member may remove themself (leave).
    The removed user also loses admin. A group left without admins gets its
    longest-standing member promoted; an empty group is deleted.

    Returns:
        Conversation, or None when the conversation was deleted
    """
    conversation = get_membership(conversation_id, user)
    if not conversation.is_group:
        raise InvalidInput("Members can only be removed from group conversations")

    try:
        target_id = int(user_id)
    except (TypeError, ValueError):
        raise InvalidInput("Invalid user id")

    if target_id != user.pk and not conversation.has_admin(user):
        raise Forbidden("Only group admins can remove members")

    membership = conversation.members.filter(user_id=target_id).first()
    if membership is None:
        raise NotFound("User is not part of this conversation")

    with transaction.atomic():
        membership.delete()
        if not conversation.members.exists():
            _destroy_conversation(conversation)
            logger.info(f"Conversation {conversation_id} deleted after its last member left")
            return None
        _ensure_admin(conversation)
        conversation.refresh_participant_key()

    logger.info(f"User {target_id} removed from conversation {conversation.pk} by user {user.pk}")
    return conversation


def _ensure_admin(conversation):
    if not conversation.is_group or conversation.members.filter(is_admin=True).exists():
        return
    successor = conversation.members.order_by('joined_at', 'id').first()
    if successor is not None:
        successor.is_admin = True
        successor.save(update_fields=['is_admin'])
        logger.info(f"User {successor.user_id} promoted to admin of conversation {conversation.pk}")


def update_admins(user, conversation_id, admins):
    conversation = get_group_for_admin(conversation_id, user)
    admin_ids = set(normalize_participants(admins))
    if not admin_ids:
        raise InvalidInput("A group needs at least one admin")
    if not admin_ids <= set(conversation.participant_ids()):
        raise InvalidInput("Admins must be participants")

    with transaction.atomic():
        conversation.members.filter(user_id__in=admin_ids).update(is_admin=True)
        conversation.members.exclude(user_id__in=admin_ids).update(is_admin=False)

    return conversation.admin_ids()


def update_group_info(user, conversation_id, group_name=None, group_image=None, remove_image=False):
    """
    Rename a group and/or change its avatar (admin only).

    Returns:
        dict: {"group_name": ..., "group_image": url or None}
    """
    conversation = get_group_for_admin(conversation_id, user)

    if group_name is not None:
        name = _clean_group_name(group_name)
        if not name:
            raise InvalidInput("Group name cannot be empty")
        conversation.group_name = name

    if group_image:
        _replace_group_image(conversation, group_image)
    elif remove_image and conversation.group_image:
        conversation.group_image.delete(save=False)
        conversation.group_image = None

    conversation.save()
    return {
        "group_name": conversation.group_name,
        "group_image": conversation.group_image_url,
    }


def delete_conversation(user, conversation_id):
    conversation = get_membership(conversation_id, user)
    if conversation.is_group and not conversation.has_admin(user):
        raise Forbidden("Only group admins can delete the group")
    _destroy_conversation(conversation)
    logger.info(f"Conversation {conversation_id} deleted by user {user.pk}")


def _destroy_conversation(conversation):
    delete_message_blobs(conversation.messages.exclude(media='').exclude(media__isnull=True))
    if conversation.group_image:
        conversation.group_image.delete(save=False)
    conversation.delete()


# ============================================================================
# QUERIES
# ============================================================================

def summarize_last_message(message):
    if message is None:
        return None
    return {
        "id": message.pk,
        "message_type": message.message_type,
        "sender_id": message.sender_id,
        "preview": message.preview(),
        "created_at": message.created_at.isoformat(),
    }


def serialize_conversation(conversation, user, members=None):
    """
    Conversation as listed in the inbox of user.

    1:1 conversations take their name and image from the other participant.
    members, when given, are the conversation's members with their users
    already loaded, in joining order.
    """
    if members is None:
        members = list(conversation.members.select_related('user').order_by('joined_at', 'id'))
    data = {
        "id": conversation.pk,
        "is_group": conversation.is_group,
        "group_name": conversation.group_name or None,
        "group_image": conversation.group_image_url,
        "participants": [m.user_id for m in members],
        "admins": [m.user_id for m in members if m.is_admin],
        "created_at": conversation.created_at.isoformat(),
        "name": conversation.group_name or None,
        "image": conversation.group_image_url,
        "is_online": None,
        "other_user": None,
    }
    if not conversation.is_group:
        other = next((m.user for m in members if m.user_id != user.pk), None)
        if other is not None:
            data["other_user"] = build_participant_snapshot(other)
            data["name"] = other.display_name
            data["image"] = other.image or None
            data["is_online"] = other.is_online
    return data


def list_conversations(user):
    """
    Every conversation of user with its last-message summary and unread
    count, most recently active first.
    """
    latest = (
        Message.objects.filter(conversation=OuterRef('pk'))
        .order_by('-created_at', '-id')
        .values('pk')[:1]
    )
    unread = (
        Message.objects.filter(conversation=OuterRef('pk'))
        .exclude(sender=user)
        .exclude(readers=user)
        .order_by()
        .values('conversation')
        .annotate(total=Count('pk'))
        .values('total')
    )
    conversations = list(
        Conversation.objects.filter(members__user=user)
        .annotate(
            last_message_id=Subquery(latest),
            unread_count=Coalesce(Subquery(unread, output_field=IntegerField()), 0),
        )
        .prefetch_related(Prefetch(
            'members',
            queryset=ConversationMember.objects.select_related('user').order_by('joined_at', 'id'),
        ))
    )
    last_messages = Message.objects.in_bulk(
        [c.last_message_id for c in conversations if c.last_message_id]
    )

    results = []
    for conversation in conversations:
        last_message = last_messages.get(conversation.last_message_id)
        data = serialize_conversation(conversation, user, members=list(conversation.members.all()))
        data["last_message"] = summarize_last_message(last_message)
        data["unread_count"] = conversation.unread_count
        activity = last_message.created_at if last_message else conversation.created_at
        results.append((activity, conversation.pk, data))

    results.sort(key=lambda item: (item[0], item[1]), reverse=True)
    return [data for _, _, data in results]


def group_members(user, conversation_id):
    conversation = get_membership(conversation_id, user)
    members = conversation.members.select_related('user').order_by('joined_at', 'id')
    results = []
    for member in members:
        snapshot = build_participant_snapshot(member.user)
        snapshot["is_admin"] = member.is_admin
        results.append(snapshot)
    return results
