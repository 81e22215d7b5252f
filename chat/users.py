"""
User directory and identity-provider sync.

Users are never created through the API: Clerk webhooks call the sync
functions below, keyed by token identifier.
"""

import logging

from django.core.paginator import Paginator
from django.db.models import Q
from django.utils import timezone

from .exceptions import NotFound
from .models import User
from .snapshots import build_participant_snapshot

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


# ============================================================================
# DIRECTORY
# ============================================================================

def serialize_user(user):
    data = build_participant_snapshot(user)
    data["role"] = user.role
    data["last_seen"] = user.last_seen.isoformat() if user.last_seen else None
    return data


def list_users(user):
    """Every user except the caller."""
    return [serialize_user(u) for u in User.objects.exclude(pk=user.pk).order_by('name', 'id')]


def search_users(user, query='', page=1, per_page=DEFAULT_PAGE_SIZE):
    """
    Page through users other than the caller, optionally filtered by name.

    Returns:
        dict: {"results", "page", "num_pages", "has_next"}
    """
    users = User.objects.exclude(pk=user.pk).order_by('name', 'id')
    query = (query or '').strip()
    if query:
        users = users.filter(Q(name__icontains=query) | Q(email__icontains=query))

    paginator = Paginator(users, per_page)
    page_obj = paginator.get_page(page)
    return {
        "results": [serialize_user(u) for u in page_obj],
        "page": page_obj.number,
        "num_pages": paginator.num_pages,
        "has_next": page_obj.has_next(),
    }


# ============================================================================
# IDENTITY SYNC
# ============================================================================

def get_by_token(token_identifier):
    user = User.objects.filter(token_identifier=token_identifier).first()
    if user is None:
        raise NotFound("User not found")
    return user


def create_user(token_identifier, username, name, image, email='', role=None):
    user, created = User.objects.update_or_create(
        token_identifier=token_identifier,
        defaults={
            'username': username,
            'name': name or '',
            'image': image or '',
            'email': email or '',
            'is_online': True,
            'role': role or 'common',
        },
    )
    if created:
        user.set_unusable_password()
        user.save(update_fields=['password'])
        logger.info(f"User {user.pk} created for {token_identifier}")
    return user


def update_user(token_identifier, name, image, email=None, role=None):
    user = get_by_token(token_identifier)
    user.name = name or ''
    user.image = image or ''
    if email is not None:
        user.email = email
    if role:
        user.role = role
    user.save()
    return user


def delete_user(token_identifier):
    user = get_by_token(token_identifier)
    user.delete()
    logger.info(f"User {token_identifier} deleted")


def set_online(token_identifier, online):
    user = get_by_token(token_identifier)
    user.is_online = online
    user.last_seen = timezone.now()
    user.save(update_fields=['is_online', 'last_seen'])
    return user
