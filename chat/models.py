"""
================================================================================
CHAT - DATABASE MODELS
================================================================================

@file        models.py
@description Django ORM models for users, conversations, messages and push

MODULE PURPOSE
================================================================================
This module defines the database schema of the chat backend:
- User model (AbstractUser extension, synced from Clerk)
- Conversations (1:1 and group) with membership and admin flags
- Messages carrying exactly one typed payload
- Web push subscriptions

DATABASE STRUCTURE
================================================================================
1. User & Identity
   - User (AbstractUser extension, keyed by Clerk token identifier)

2. Messaging System
   - Conversation (DM and group chats)
   - ConversationMember (membership + admin tracking)
   - Message (typed chat messages with reply snapshots)

3. Notifications
   - PushSubscription (browser push endpoints per user)

MODEL RELATIONSHIPS
================================================================================
User (N) <─────> (N) Conversation (via ConversationMember)
Conversation (1) ──> (N) Message
User (1) ──────> (N) Message (sender)
User (N) <─────> (N) Message (receivers, readers)
User (1) ──────> (N) PushSubscription

MEDIA HANDLING
================================================================================
Message blobs are written to the "messages" storage alias, group avatars to
the default storage. Both are Cloudinary in production and the local
filesystem in development:
- group_avatars/    : Group conversation avatars
- message_media/    : Message attachments (image, video, audio, document)

================================================================================
"""

from django.contrib.auth.models import AbstractUser
from django.core.files.storage import storages
from django.db import models
from django.utils import timezone as dj_timezone


# ============================================================================
# CONSTANTS & CHOICES
# ============================================================================

ROLE_CHOICES = [
    ('common', 'Common'),
    ('admin', 'Admin'),
]

TEXT = 'text'
IMAGE = 'image'
VIDEO = 'video'
AUDIO = 'audio'
DOCUMENT = 'document'

MESSAGE_TYPE_CHOICES = [
    (TEXT, 'Text'),
    (IMAGE, 'Image'),
    (VIDEO, 'Video'),
    (AUDIO, 'Audio'),
    (DOCUMENT, 'Document'),
]

DELETED_MESSAGE_TEXT = "This message was deleted"


def message_storage():
    """Storage backend holding message attachments."""
    return storages["messages"]


def make_participant_key(user_ids):
    """
    Normalise a participant set into a stable lookup key.

    Order and duplicates do not matter: [3, 1, 3] and [1, 3] both map
    to "1,3".
    """
    return ",".join(str(pk) for pk in sorted({int(pk) for pk in user_ids}))


# ============================================================================
# SECTION 1: USER & IDENTITY
# ============================================================================

class User(AbstractUser):
    """
    Chat user, mirrored from the identity provider.

    Rows are created and updated by Clerk webhooks; requests are matched
    to a user through the token identifier ("<issuer>|<clerk user id>").

    Attributes:
        token_identifier (CharField): Clerk identity key
        name (CharField): Display name
        image (URLField): Avatar URL served by the identity provider
        is_online (BooleanField): Presence flag
        last_seen (DateTimeField): Last authenticated request
        role (CharField): Application role
    """

    token_identifier = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Identity provider key: '<issuer>|<subject>'"
    )
    name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Display name"
    )
    image = models.URLField(
        max_length=500,
        blank=True,
        help_text="Avatar URL"
    )

    # --- Presence ---
    is_online = models.BooleanField(
        default=False,
        help_text="True while the user has an active session"
    )
    last_seen = models.DateTimeField(
        null=True,
        blank=True,
        default=dj_timezone.now,
        help_text="Last activity timestamp"
    )

    role = models.CharField(
        max_length=10,
        choices=ROLE_CHOICES,
        default='common',
        help_text="Application role"
    )

    @property
    def display_name(self):
        return self.name or self.get_full_name() or self.username


# ============================================================================
# SECTION 2: MESSAGING SYSTEM MODELS
# ============================================================================

class Conversation(models.Model):
    """
    Chat conversation (DM or group).

    Participants are tracked through ConversationMember rows; the admin
    set is the members flagged is_admin. participant_key holds the
    normalised participant set so a 1:1 conversation can be found again
    regardless of the order its participants were given in.

    Example:
        dm = Conversation.objects.filter(
            participant_key=make_participant_key([me.id, other.id]),
            is_group=False,
        ).first()
    """

    is_group = models.BooleanField(
        default=False,
        help_text="True for group chats, False for DMs"
    )
    group_name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Conversation name (required for groups)"
    )
    group_image = models.ImageField(
        upload_to='group_avatars/',
        null=True,
        blank=True,
        help_text="Group avatar image"
    )
    created_by = models.ForeignKey(
        User,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name='created_conversations',
        help_text="User who created this conversation"
    )
    created_at = models.DateTimeField(
        auto_now_add=True,
        help_text="Creation timestamp"
    )
    participant_key = models.CharField(
        max_length=2000,
        db_index=True,
        blank=True,
        help_text="Sorted, comma-joined participant ids"
    )
    participants = models.ManyToManyField(
        User,
        through='ConversationMember',
        related_name='conversations',
    )

    class Meta:
        constraints = [
            # At most one 1:1 conversation per participant pair
            models.UniqueConstraint(
                fields=['participant_key'],
                condition=models.Q(is_group=False),
                name='unique_direct_conversation',
            ),
        ]

    def __str__(self):
        if self.is_group:
            return self.group_name or f"Group #{self.id}"
        return f"DM #{self.id}"

    def participant_ids(self):
        return list(
            self.members.order_by('joined_at', 'id').values_list('user_id', flat=True)
        )

    def admin_ids(self):
        return list(
            self.members.filter(is_admin=True)
            .order_by('joined_at', 'id')
            .values_list('user_id', flat=True)
        )

    def has_participant(self, user):
        return self.members.filter(user_id=getattr(user, 'pk', user)).exists()

    def has_admin(self, user):
        return self.members.filter(user_id=getattr(user, 'pk', user), is_admin=True).exists()

    def refresh_participant_key(self, save=True):
        self.participant_key = make_participant_key(
            self.members.values_list('user_id', flat=True)
        )
        if save:
            self.save(update_fields=['participant_key'])

    @property
    def group_image_url(self):
        return self.group_image.url if self.group_image else None


class ConversationMember(models.Model):
    """
    Membership in a conversation, with admin privileges for groups.
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name='members',
        help_text="Conversation this membership belongs to"
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='conversation_memberships',
        help_text="User who is a member"
    )
    joined_at = models.DateTimeField(
        auto_now_add=True,
        help_text="When user joined this conversation"
    )
    is_admin = models.BooleanField(
        default=False,
        help_text="Admin privileges in group conversation"
    )

    class Meta:
        unique_together = ('conversation', 'user')

    def __str__(self):
        return f"{self.user} in {self.conversation}"


class Message(models.Model):
    """
    Chat message in a conversation.

    A message carries exactly one typed payload selected by message_type.
    Only the fields of that type are meaningful; payload() returns them.

    Attributes:
        conversation (ForeignKey): Conversation this message belongs to
        sender (ForeignKey): Author, NULL once the user is deleted
        message_type (CharField): text / image / video / audio / document
        text (TextField): Text content (text messages)
        media (FileField): Attached blob (all non-text messages)
        caption (TextField): Caption (image, video, document)
        gif_playback (BooleanField): Loop as GIF (video)
        mimetype, file_name, file_size, title, page_count: Document metadata
        receivers (ManyToManyField): Participants other than the sender
        readers (ManyToManyField): Users who have read the message
        reply (JSONField): Snapshot of the quoted message, if any
        created_at (DateTimeField): Creation timestamp (retention sweep key)

    Example:
        message = Message.objects.create(
            conversation=room,
            sender=request.user,
            message_type=TEXT,
            text="Hello everyone!"
        )
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name='messages',
        help_text="Conversation this message belongs to"
    )
    sender = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sent_messages',
        help_text="User who sent this message"
    )
    message_type = models.CharField(
        max_length=10,
        choices=MESSAGE_TYPE_CHOICES,
        default=TEXT,
        help_text="Type of payload carried by this message"
    )

    # --- Payload fields ---
    text = models.TextField(
        blank=True,
        help_text="Message text content"
    )
    media = models.FileField(
        upload_to='message_media/',
        storage=message_storage,
        blank=True,
        null=True,
        max_length=500,
        help_text="Uploaded media attachment"
    )
    caption = models.TextField(
        blank=True,
        help_text="Caption for image, video or document"
    )
    gif_playback = models.BooleanField(
        default=False,
        help_text="Play video as a looping GIF"
    )
    mimetype = models.CharField(
        max_length=100,
        blank=True,
        help_text="Document MIME type"
    )
    file_name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Original document file name"
    )
    file_size = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Document size in bytes"
    )
    title = models.CharField(
        max_length=255,
        blank=True,
        help_text="Document title"
    )
    page_count = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Document page count"
    )

    # --- Fan-out ---
    receivers = models.ManyToManyField(
        User,
        blank=True,
        related_name='received_messages',
        help_text="Participants this message was delivered to"
    )
    readers = models.ManyToManyField(
        User,
        blank=True,
        related_name='read_messages',
        help_text="Users who have read this message"
    )
    reply = models.JSONField(
        null=True,
        blank=True,
        help_text="Denormalised snapshot of the quoted message"
    )

    created_at = models.DateTimeField(
        default=dj_timezone.now,
        db_index=True,
        help_text="Message creation timestamp"
    )

    class Meta:
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['conversation', 'created_at'], name='chat_msg_conv_created_idx'),
        ]

    def __str__(self):
        return f"[Room {self.conversation_id}] {self.sender}: {self.preview()[:30]}"

    @property
    def media_url(self):
        return self.media.url if self.media else None

    def payload(self):
        """
        Type-specific content of this message.

        Returns:
            dict: fields of the message's type only, or None for an
            unknown type
        """
        if self.message_type == TEXT:
            return {"content": self.text}
        if self.message_type == IMAGE:
            return {"url": self.media_url, "caption": self.caption or None}
        if self.message_type == VIDEO:
            return {
                "url": self.media_url,
                "caption": self.caption or None,
                "gif_playback": self.gif_playback,
            }
        if self.message_type == AUDIO:
            return {"url": self.media_url}
        if self.message_type == DOCUMENT:
            return {
                "url": self.media_url,
                "mimetype": self.mimetype,
                "length": self.file_size or 0,
                "caption": self.caption or None,
                "title": self.title or self.file_name,
                "page_count": self.page_count,
                "file_name": self.file_name or None,
            }
        return None

    def preview(self):
        """Short text used in conversation lists and notifications."""
        if self.message_type == TEXT:
            return self.text
        if self.message_type == IMAGE:
            return self.caption or "Photo"
        if self.message_type == VIDEO:
            return self.caption or "Video"
        if self.message_type == AUDIO:
            return "Audio"
        if self.message_type == DOCUMENT:
            return self.file_name or self.title or "Document"
        return ""


# ============================================================================
# SECTION 3: NOTIFICATION MODELS
# ============================================================================

class PushSubscription(models.Model):
    """
    Browser push subscription (one per user and endpoint).
    """

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='push_subscriptions',
    )
    endpoint = models.CharField(
        max_length=500,
        help_text="Push service endpoint URL"
    )
    p256dh = models.CharField(max_length=255)
    auth = models.CharField(max_length=255)
    expiration_time = models.BigIntegerField(
        null=True,
        blank=True,
        help_text="Expiry in milliseconds since epoch, as sent by the browser"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('user', 'endpoint')

    def as_subscription_info(self):
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.p256dh, "auth": self.auth},
        }
