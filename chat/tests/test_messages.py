"""Tests for message fan-out, replies, reading and deletion."""

from unittest.mock import patch

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile

from chat import messaging
from chat.exceptions import Forbidden, InvalidInput, NotFound
from chat.models import (
    DELETED_MESSAGE_TEXT, DOCUMENT, TEXT, Conversation, Message, message_storage,
)
from chat.snapshots import hydrate_user_snapshot


def upload(name="pic.png", content=b"fake-bytes", content_type="image/png"):
    return SimpleUploadedFile(name, content, content_type=content_type)


class TestSending:

    def test_text_fans_out_to_other_participants(self, alice, bob, carol, group):
        message = messaging.send_text(alice, group.pk, "hello team")

        assert message.message_type == TEXT
        assert message.payload() == {"content": "hello team"}
        assert set(message.receivers.values_list("pk", flat=True)) == {bob.pk, carol.pk}
        assert list(message.readers.values_list("pk", flat=True)) == [alice.pk]

    def test_empty_text_rejected(self, alice, dm):
        with pytest.raises(InvalidInput):
            messaging.send_text(alice, dm.pk, "   ")

    def test_outsider_cannot_send(self, carol, dm):
        with pytest.raises(Forbidden):
            messaging.send_text(carol, dm.pk, "let me in")

    def test_sender_must_match_user(self, alice, bob, dm):
        with pytest.raises(InvalidInput, match="Invalid sender provided"):
            messaging.send_text(alice, dm.pk, "spoofed", sender_id=bob.pk)

    def test_explicit_matching_sender_accepted(self, alice, dm):
        message = messaging.send_text(alice, dm.pk, "me", sender_id=str(alice.pk))

        assert message.sender == alice

    def test_unknown_conversation(self, alice):
        with pytest.raises(NotFound):
            messaging.send_text(alice, 424242, "anyone?")

    def test_image_stored_in_message_storage(self, alice, dm):
        message = messaging.send_image(alice, dm.pk, upload(), caption="look")

        payload = message.payload()
        assert payload["caption"] == "look"
        assert payload["url"].startswith("/media/message_media/")
        assert message_storage().exists(message.media.name)

    def test_image_rejects_other_content_types(self, alice, dm):
        with pytest.raises(InvalidInput):
            messaging.send_image(alice, dm.pk, upload("notes.txt", content_type="text/plain"))

    def test_missing_file_rejected(self, alice, dm):
        with pytest.raises(InvalidInput, match="File is required"):
            messaging.send_audio(alice, dm.pk, None)

    def test_upload_size_limit(self, alice, dm, settings):
        settings.CHAT_MAX_UPLOAD_SIZE = 4
        with pytest.raises(InvalidInput, match="too large"):
            messaging.send_image(alice, dm.pk, upload())

    def test_failed_send_leaves_no_blob(self, alice, dm):
        with patch.object(Conversation, "participant_ids", side_effect=RuntimeError("db gone")):
            with pytest.raises(RuntimeError):
                messaging.send_image(alice, dm.pk, upload())

        assert not Message.objects.exists()
        storage = message_storage()
        assert not storage.exists("message_media") or storage.listdir("message_media")[1] == []

    def test_video_gif_playback(self, alice, dm):
        message = messaging.send_video(
            alice, dm.pk, upload("loop.mp4", content_type="video/mp4"), gif_playback=True
        )

        assert message.payload()["gif_playback"] is True
        assert message.payload()["caption"] is None

    def test_audio_payload_is_url_only(self, alice, dm):
        message = messaging.send_audio(alice, dm.pk, upload("note.ogg", content_type="audio/ogg"))

        assert set(message.payload()) == {"url"}

    def test_document_metadata(self, alice, dm):
        content = b"%PDF-1.4 fake"
        message = messaging.send_document(
            alice, dm.pk, upload("report.pdf", content, "application/pdf"), page_count="3"
        )

        payload = message.payload()
        assert message.message_type == DOCUMENT
        assert payload["mimetype"] == "application/pdf"
        assert payload["length"] == len(content)
        assert payload["file_name"] == "report.pdf"
        assert payload["title"] == "report.pdf"
        assert payload["page_count"] == 3

    def test_document_page_count_must_be_numeric(self, alice, dm):
        with pytest.raises(InvalidInput):
            messaging.send_document(
                alice, dm.pk, upload("report.pdf", content_type="application/pdf"), page_count="many"
            )


class TestReplies:

    def test_reply_snapshot(self, alice, bob, dm):
        original = messaging.send_text(bob, dm.pk, "original")

        reply = messaging.send_text(alice, dm.pk, "answer", reply_to=original.pk)

        assert reply.reply["message_id"] == original.pk
        assert reply.reply["quoted_type"] == TEXT
        assert reply.reply["quoted_message"] == {"content": "original"}
        assert reply.reply["participant"]["id"] == bob.pk
        assert reply.reply["participant"]["name"] == "Bob"

    def test_reply_accepts_object_form(self, alice, bob, dm):
        original = messaging.send_text(bob, dm.pk, "original")

        reply = messaging.send_text(alice, dm.pk, "answer", reply_to={"message_id": original.pk})

        assert reply.reply["message_id"] == original.pk

    def test_reply_to_other_conversation_ignored(self, alice, dm, group):
        elsewhere = messaging.send_text(alice, group.pk, "group only")

        reply = messaging.send_text(alice, dm.pk, "answer", reply_to=elsewhere.pk)

        assert reply.reply is None

    def test_reply_to_missing_message_ignored(self, alice, dm):
        reply = messaging.send_text(alice, dm.pk, "answer", reply_to=987654)

        assert reply.reply is None

    def test_reply_survives_original_removal(self, alice, bob, dm):
        original = messaging.send_text(bob, dm.pk, "soon gone")
        reply = messaging.send_text(alice, dm.pk, "answer", reply_to=original.pk)

        messaging.destroy_message(bob, original.pk)

        reply.refresh_from_db()
        assert reply.reply["quoted_message"] == {"content": "soon gone"}


class TestReading:

    def test_messages_oldest_first_with_sender(self, alice, bob, dm):
        first = messaging.send_text(alice, dm.pk, "one")
        second = messaging.send_text(bob, dm.pk, "two")

        result = messaging.get_messages(alice, dm.pk)

        assert [m["id"] for m in result] == [first.pk, second.pk]
        assert result[0]["sender"]["name"] == "Alice"
        assert result[1]["sender"]["id"] == bob.pk
        assert result[1]["receivers"] == [alice.pk]

    def test_messages_require_membership(self, carol, dm):
        with pytest.raises(Forbidden):
            messaging.get_messages(carol, dm.pk)

    def test_sender_snapshot_looked_up_once(self, bob, django_assert_num_queries):
        cache = {}
        first = hydrate_user_snapshot(cache, bob.pk)

        with django_assert_num_queries(0):
            second = hydrate_user_snapshot(cache, bob.pk)

        assert first is second

    def test_missing_sender_gets_placeholder(self, db):
        snapshot = hydrate_user_snapshot({}, 31337)

        assert snapshot["id"] == 31337
        assert snapshot["name"] is None
        assert snapshot["image"] == "/placeholder.png"


class TestDeletion:

    def test_delete_leaves_tombstone(self, alice, bob, dm):
        original = messaging.send_text(bob, dm.pk, "quoted")
        message = messaging.send_image(alice, dm.pk, upload(), reply_to=original.pk)
        blob = message.media.name

        messaging.delete_message(alice, message.pk)

        message.refresh_from_db()
        assert message.message_type == TEXT
        assert message.payload() == {"content": DELETED_MESSAGE_TEXT}
        assert not message.media
        assert message.reply is None
        assert not message_storage().exists(blob)

    def test_only_sender_deletes_in_direct_conversation(self, alice, bob, dm):
        message = messaging.send_text(alice, dm.pk, "mine")

        with pytest.raises(Forbidden):
            messaging.delete_message(bob, message.pk)

    def test_group_admin_deletes_any_message(self, alice, bob, group):
        message = messaging.send_text(bob, group.pk, "oops")

        messaging.delete_message(alice, message.pk)

        message.refresh_from_db()
        assert message.text == DELETED_MESSAGE_TEXT

    def test_destroy_removes_row_and_blob(self, alice, dm):
        message = messaging.send_document(
            alice, dm.pk, upload("a.pdf", content_type="application/pdf")
        )
        blob = message.media.name

        messaging.destroy_message(alice, message.pk)

        assert not Message.objects.filter(pk=message.pk).exists()
        assert not message_storage().exists(blob)

    def test_destroy_unknown_message(self, alice):
        with pytest.raises(NotFound):
            messaging.destroy_message(alice, 55555)


class TestNotifications:

    def test_receivers_notified_after_commit(self, alice, bob, carol, group,
                                             django_capture_on_commit_callbacks):
        with patch("chat.messaging.push.send_to_user") as send_to_user:
            with django_capture_on_commit_callbacks(execute=True):
                message = messaging.send_text(alice, group.pk, "standup?")

        notified = {c.args[0] for c in send_to_user.call_args_list}
        assert notified == {bob.pk, carol.pk}
        payload = send_to_user.call_args_list[0].args[1]
        assert payload["title"] == "Team"
        assert payload["body"] == "Alice: standup?"
        assert payload["data"] == {"conversation_id": group.pk, "message_id": message.pk}

    def test_direct_notification_titled_by_sender(self, alice, bob, dm,
                                                  django_capture_on_commit_callbacks):
        with patch("chat.messaging.push.send_to_user") as send_to_user:
            with django_capture_on_commit_callbacks(execute=True):
                messaging.send_text(alice, dm.pk, "ping")

        send_to_user.assert_called_once()
        user_id, payload = send_to_user.call_args.args
        assert user_id == bob.pk
        assert payload["title"] == "Alice"
        assert payload["body"] == "ping"

    def test_push_failure_does_not_lose_message(self, alice, dm,
                                                django_capture_on_commit_callbacks):
        with patch("chat.messaging.push.send_to_user", side_effect=RuntimeError("push down")):
            with django_capture_on_commit_callbacks(execute=True):
                message = messaging.send_text(alice, dm.pk, "still here")

        assert Message.objects.filter(pk=message.pk).exists()
