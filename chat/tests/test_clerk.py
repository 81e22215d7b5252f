"""Tests for Clerk session tokens, webhooks and the authentication middleware."""

import json
import time
from unittest.mock import MagicMock, patch

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from django.core.cache import cache
from svix.webhooks import WebhookVerificationError

from chat import clerk
from chat.models import User

ISSUER = "https://clerk.test"
WEBHOOK_URL = "/api/webhooks/clerk/"


def user_event(event_type, clerk_id="user_2abc", **data):
    payload = {
        "id": clerk_id,
        "username": None,
        "first_name": "Ada",
        "last_name": "Lovelace",
        "image_url": "https://img.clerk.com/ada.png",
        "primary_email_address_id": "idn_2",
        "email_addresses": [
            {"id": "idn_1", "email_address": "old@example.com"},
            {"id": "idn_2", "email_address": "ada@example.com"},
        ],
    }
    payload.update(data)
    return {"type": event_type, "data": payload}


@pytest.fixture
def deliver(client):
    """Post an event to the webhook with a stubbed Svix verifier."""
    def _deliver(event):
        with patch("chat.clerk.Webhook") as webhook:
            webhook.return_value.verify.return_value = event
            return client.post(
                WEBHOOK_URL,
                data=json.dumps(event),
                content_type="application/json",
                HTTP_SVIX_ID="msg_1",
                HTTP_SVIX_TIMESTAMP=str(int(time.time())),
                HTTP_SVIX_SIGNATURE="v1,stub",
            )
    return _deliver


class TestWebhook:

    def test_user_created(self, db, deliver):
        response = deliver(user_event("user.created"))

        assert response.status_code == 200
        assert response.json() == {"status": "success", "event": "user.created"}
        user = User.objects.get(token_identifier=f"{ISSUER}|user_2abc")
        assert user.name == "Ada Lovelace"
        assert user.email == "ada@example.com"
        assert user.image == "https://img.clerk.com/ada.png"
        assert user.is_online
        assert not user.has_usable_password()

    def test_user_created_twice_is_idempotent(self, db, deliver):
        deliver(user_event("user.created"))
        deliver(user_event("user.created"))

        assert User.objects.filter(token_identifier=f"{ISSUER}|user_2abc").count() == 1

    def test_user_updated(self, db, deliver):
        deliver(user_event("user.created"))

        deliver(user_event("user.updated", first_name="Augusta", public_metadata={"role": "admin"}))

        user = User.objects.get(token_identifier=f"{ISSUER}|user_2abc")
        assert user.name == "Augusta Lovelace"
        assert user.role == "admin"

    def test_user_deleted(self, db, deliver):
        deliver(user_event("user.created"))

        response = deliver({"type": "user.deleted", "data": {"id": "user_2abc", "deleted": True}})

        assert response.status_code == 200
        assert not User.objects.filter(token_identifier=f"{ISSUER}|user_2abc").exists()

    def test_unknown_user_deleted(self, db, deliver):
        response = deliver({"type": "user.deleted", "data": {"id": "user_missing"}})

        assert response.status_code == 200

    def test_session_events_toggle_presence(self, alice, deliver):
        deliver({"type": "session.ended", "data": {"user_id": "alice"}})
        alice.refresh_from_db()
        assert alice.is_online is False

        deliver({"type": "session.created", "data": {"user_id": "alice"}})
        alice.refresh_from_db()
        assert alice.is_online is True

    def test_unhandled_event_ignored(self, db, deliver):
        response = deliver({"type": "organization.created", "data": {"id": "org_1"}})

        assert response.status_code == 200
        assert response.json()["event"] is None

    def test_malformed_event(self, db, deliver):
        response = deliver({"type": "user.created", "data": {}})

        assert response.status_code == 400

    def test_invalid_signature(self, db, client):
        with patch("chat.clerk.Webhook") as webhook:
            webhook.return_value.verify.side_effect = WebhookVerificationError("bad signature")
            response = client.post(WEBHOOK_URL, data="{}", content_type="application/json")

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid webhook signature"}

    def test_missing_signing_secret(self, db, client, settings):
        settings.CLERK_WEBHOOK_SIGNING_SECRET = ""

        response = client.post(WEBHOOK_URL, data="{}", content_type="application/json")

        assert response.status_code == 401

    def test_get_not_allowed(self, db, client):
        assert client.get(WEBHOOK_URL).status_code == 405


class TestSessionToken:

    @pytest.fixture
    def signing_key(self):
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        jwks = MagicMock()
        jwks.get_signing_key_from_jwt.return_value = MagicMock(key=private_key.public_key())
        with patch("chat.clerk._jwks_client", return_value=jwks):
            yield private_key

    def token(self, key, **claims):
        now = int(time.time())
        payload = {"sub": "user_2abc", "iss": ISSUER, "iat": now, "exp": now + 60}
        payload.update(claims)
        return jwt.encode(payload, key, algorithm="RS256")

    def test_valid_token(self, signing_key):
        claims = clerk.decode_session_token(self.token(signing_key))

        assert claims["sub"] == "user_2abc"

    def test_wrong_issuer(self, signing_key):
        with pytest.raises(jwt.InvalidIssuerError):
            clerk.decode_session_token(self.token(signing_key, iss="https://evil.test"))

    def test_expired(self, signing_key):
        with pytest.raises(jwt.ExpiredSignatureError):
            clerk.decode_session_token(self.token(signing_key, exp=int(time.time()) - 3600))

    def test_token_identifier(self):
        assert clerk.token_identifier_for("user_2abc") == f"{ISSUER}|user_2abc"


class TestMiddleware:

    def test_bearer_token_authenticates(self, alice, client):
        with patch("chat.middleware.decode_session_token", return_value={"sub": "alice"}):
            response = client.get("/api/users/me/", HTTP_AUTHORIZATION="Bearer token")

        assert response.status_code == 200
        assert response.json()["id"] == alice.pk

    def test_invalid_token_stays_anonymous(self, alice, client):
        with patch("chat.middleware.decode_session_token", side_effect=jwt.InvalidTokenError("bad")):
            response = client.get("/api/users/me/", HTTP_AUTHORIZATION="Bearer token")

        assert response.status_code == 401

    def test_unknown_subject(self, alice, client):
        with patch("chat.middleware.decode_session_token", return_value={"sub": "stranger"}):
            response = client.get("/api/users/me/", HTTP_AUTHORIZATION="Bearer token")

        assert response.status_code == 401

    def test_inactive_user_rejected(self, alice, client):
        alice.is_active = False
        alice.save()

        with patch("chat.middleware.decode_session_token", return_value={"sub": "alice"}):
            response = client.get("/api/users/me/", HTTP_AUTHORIZATION="Bearer token")

        assert response.status_code == 401

    def test_presence_refreshed(self, alice, client_for):
        User.objects.filter(pk=alice.pk).update(is_online=False)

        client_for(alice).get("/api/users/me/")

        alice.refresh_from_db()
        assert alice.is_online
        assert cache.get(f"last_seen_update_{alice.pk}") is not None
