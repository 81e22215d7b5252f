"""
================================================================================
CHAT - CUSTOM MIDDLEWARE
================================================================================

@file        middleware.py
@description Bearer-token authentication and presence tracking

MODULE PURPOSE
================================================================================
1. ClerkAuthenticationMiddleware
   - Authenticates API requests carrying "Authorization: Bearer <jwt>"
   - Resolves the user through the Clerk token identifier
   - Leaves session-authenticated requests untouched

2. PresenceMiddleware
   - Marks authenticated users online and refreshes last_seen
   - Uses the cache to throttle database writes

CACHING STRATEGY
================================================================================
PresenceMiddleware writes at most once per PRESENCE_WRITE_INTERVAL per user:
   Key: "last_seen_update_{user_id}"
   TTL: 30 seconds

ORDERING
================================================================================
Both classes must come after django.contrib.auth's AuthenticationMiddleware,
ClerkAuthenticationMiddleware before PresenceMiddleware.

================================================================================
"""

import logging
from datetime import timedelta

import jwt
from django.core.cache import cache
from django.utils import timezone

from .clerk import decode_session_token, token_identifier_for
from .models import User

logger = logging.getLogger(__name__)

PRESENCE_WRITE_INTERVAL = timedelta(seconds=30)


# ============================================================================
# CLERK BEARER AUTHENTICATION
# ============================================================================

class ClerkAuthenticationMiddleware:
    """
    Authenticate requests with a Clerk session token.

    Flow:
        1. Skip requests without a Bearer Authorization header
        2. Verify the JWT against the Clerk JWKS
        3. Look up the user by "<issuer>|<sub>"
        4. Replace request.user when found

    Invalid tokens and unknown users leave the request anonymous; the
    view decides whether that is acceptable.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        header = request.headers.get('Authorization', '')
        if header.startswith('Bearer '):
            token = header[len('Bearer '):].strip()
            user = self.authenticate(token)
            if user is not None:
                request.user = user

        return self.get_response(request)

    def authenticate(self, token):
        try:
            claims = decode_session_token(token)
        except jwt.PyJWTError as e:
            logger.info(f"Rejected session token: {e}")
            return None

        subject = claims.get('sub')
        if not subject:
            return None

        user = User.objects.filter(
            token_identifier=token_identifier_for(subject),
            is_active=True,
        ).first()
        if user is None:
            logger.info(f"No user for session subject {subject}")
        return user


# ============================================================================
# PRESENCE TRACKING
# ============================================================================

class PresenceMiddleware:
    """
    Keep is_online / last_seen fresh for active users.

    Example Timeline:
        00:00 - Request 1: DB write + cache set
        00:15 - Request 2: Cache hit, no DB write
        00:30 - Request 3: Cache expired, DB write + cache set
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            now = timezone.now()
            cache_key = f"last_seen_update_{user.pk}"
            last_update = cache.get(cache_key)

            if not last_update or (now - last_update) > PRESENCE_WRITE_INTERVAL:
                User.objects.filter(pk=user.pk).update(last_seen=now, is_online=True)
                user.last_seen = now
                user.is_online = True
                cache.set(cache_key, now, int(PRESENCE_WRITE_INTERVAL.total_seconds()))

        return self.get_response(request)
