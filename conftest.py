import itertools

import pytest
from django.core.cache import cache
from django.test import Client

from chat.conversations import upsert_conversation
from chat.models import User

ISSUER = "https://clerk.test"


@pytest.fixture(autouse=True)
def chat_settings(settings, tmp_path):
    """Local storage under tmp_path, no HTTPS redirect, no push keys."""
    settings.SECURE_SSL_REDIRECT = False
    settings.MEDIA_ROOT = tmp_path / "media"
    settings.STORAGES = {
        "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
        "messages": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
        "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
    }
    settings.CLERK_JWT_ISSUER_DOMAIN = ISSUER
    settings.CLERK_WEBHOOK_SIGNING_SECRET = "whsec_test"
    settings.VAPID_PUBLIC_KEY = ""
    settings.VAPID_PRIVATE_KEY = ""
    settings.CHAT_PLACEHOLDER_IMAGE = "/placeholder.png"
    settings.CHAT_MAX_UPLOAD_SIZE = 1024 * 1024
    cache.clear()
    return settings


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(username=None, name=None, **extra):
        username = username or f"user{next(counter)}"
        return User.objects.create_user(
            username=username,
            email=f"{username}@example.com",
            name=name if name is not None else username.title(),
            token_identifier=f"{ISSUER}|{username}",
            **extra
        )
    return _make


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


@pytest.fixture
def carol(make_user):
    return make_user("carol")


@pytest.fixture
def dm(alice, bob):
    conversation, _ = upsert_conversation(alice, [alice.pk, bob.pk])
    return conversation


@pytest.fixture
def group(alice, bob, carol):
    conversation, _ = upsert_conversation(
        alice, [alice.pk, bob.pk, carol.pk], is_group=True, group_name="Team"
    )
    return conversation


@pytest.fixture
def client_for(db):
    """Test client logged in as the given user."""
    def _client(user):
        c = Client()
        c.force_login(user)
        return c
    return _client
