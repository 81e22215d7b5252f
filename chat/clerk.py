"""
Clerk integration: session-token verification and webhook handling.

Session tokens are RS256 JWTs signed with the keys published at
<issuer>/.well-known/jwks.json. A user is identified by the token identifier
"<issuer>|<subject>", the same key webhooks use to sync users.
"""

import logging
from functools import lru_cache

import jwt
from django.conf import settings
from svix.webhooks import Webhook, WebhookVerificationError

from . import users
from .exceptions import InvalidInput, NotFound, Unauthorized

logger = logging.getLogger(__name__)

OFFLINE_SESSION_EVENTS = ('session.ended', 'session.removed', 'session.revoked')


def issuer():
    return settings.CLERK_JWT_ISSUER_DOMAIN.rstrip('/')


def token_identifier_for(subject):
    return f"{issuer()}|{subject}"


@lru_cache(maxsize=1)
def _jwks_client(jwks_url):
    return jwt.PyJWKClient(jwks_url)


def decode_session_token(token):
    """
    Verify a Clerk session token and return its claims.

    Raises:
        jwt.PyJWTError: invalid signature, issuer or expiry
    """
    client = _jwks_client(f"{issuer()}/.well-known/jwks.json")
    signing_key = client.get_signing_key_from_jwt(token)
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["RS256"],
        issuer=issuer(),
        options={"verify_aud": False},
        leeway=settings.CLERK_JWT_LEEWAY,
    )


# ============================================================================
# WEBHOOKS
# ============================================================================

def verify_webhook(payload, headers):
    """
    Check the Svix signature of a webhook delivery.

    Returns:
        dict: the decoded event
    """
    secret = settings.CLERK_WEBHOOK_SIGNING_SECRET
    if not secret:
        raise Unauthorized("Webhook signing secret is not configured")
    try:
        return Webhook(secret).verify(payload, headers)
    except WebhookVerificationError as e:
        logger.warning(f"Rejected Clerk webhook: {e}")
        raise Unauthorized("Invalid webhook signature")


def _primary_email(data):
    addresses = data.get('email_addresses') or []
    primary_id = data.get('primary_email_address_id')
    for address in addresses:
        if address.get('id') == primary_id:
            return address.get('email_address', '')
    return addresses[0].get('email_address', '') if addresses else ''


def _full_name(data):
    parts = [data.get('first_name'), data.get('last_name')]
    return " ".join(p for p in parts if p) or data.get('username') or ''


def _role(data):
    role = (data.get('public_metadata') or {}).get('role')
    return role if role in ('common', 'admin') else None


def handle_event(event):
    """
    Apply a verified Clerk event to the local user table.

    Returns:
        str: the event type, or None for ignored events
    """
    event_type = event.get('type')
    data = event.get('data') or {}
    try:
        return _apply_event(event_type, data)
    except KeyError as e:
        raise InvalidInput(f"Event {event_type} is missing {e}")


def _apply_event(event_type, data):
    if event_type == 'user.created':
        users.create_user(
            token_identifier=token_identifier_for(data['id']),
            username=data.get('username') or data['id'],
            name=_full_name(data),
            image=data.get('image_url', ''),
            email=_primary_email(data),
            role=_role(data),
        )
    elif event_type == 'user.updated':
        users.update_user(
            token_identifier=token_identifier_for(data['id']),
            name=_full_name(data),
            image=data.get('image_url', ''),
            email=_primary_email(data),
            role=_role(data),
        )
    elif event_type == 'user.deleted':
        try:
            users.delete_user(token_identifier_for(data['id']))
        except NotFound:
            logger.info(f"Ignoring deletion of unknown user {data.get('id')}")
    elif event_type == 'session.created':
        users.set_online(token_identifier_for(data['user_id']), True)
    elif event_type in OFFLINE_SESSION_EVENTS:
        users.set_online(token_identifier_for(data['user_id']), False)
    else:
        logger.debug(f"Ignoring Clerk event {event_type}")
        return None
    return event_type
