"""
================================================================================
CHAT - URL CONFIGURATION
================================================================================

@file        urls.py
@description JSON API routing for the chat backend

URL STRUCTURE OVERVIEW
================================================================================
1. Users (me, directory, search)
2. Conversations (inbox, find-or-create, group administration)
3. Messages (history, send per type, delete, destroy)
4. Push notifications (subscribe, unsubscribe)
5. Identity provider webhooks

URL PARAMETER TYPES
================================================================================
- <int:conversation_id>: Conversation primary key
- <int:message_id>: Message primary key
- <int:user_id>: User primary key

SECURITY CONSIDERATIONS
================================================================================
- Every API view requires an authenticated user (session or Clerk token)
- Membership and admin rights are checked by the service functions
- The webhook endpoint is authenticated by its Svix signature only

================================================================================
"""

from django.urls import path
from . import views


urlpatterns = [

    # ========================================================================
    # SECTION 1: USERS
    # ========================================================================

    path(
        "users/me/",
        views.me,
        name="me"
    ),  # Current user

    path(
        "users/",
        views.user_list,
        name="user_list"
    ),  # Everyone except the current user

    path(
        "users/search/",
        views.user_search,
        name="user_search"
    ),  # Paginated name search (?q=&page=&per_page=)


    # ========================================================================
    # SECTION 2: CONVERSATIONS
    # ========================================================================

    path(
        "conversations/",
        views.conversation_list,
        name="conversation_list"
    ),  # GET inbox, POST find-or-create

    path(
        "conversations/<int:conversation_id>/participants/",
        views.set_participants,
        name="set_participants"
    ),  # Replace group participants (admin only)

    path(
        "conversations/<int:conversation_id>/kick/<int:user_id>/",
        views.kick_user,
        name="kick_user"
    ),  # Remove member or leave group

    path(
        "conversations/<int:conversation_id>/admins/",
        views.update_admins,
        name="update_admins"
    ),  # Replace the admin set (admin only)

    path(
        "conversations/<int:conversation_id>/info/",
        views.update_group_info,
        name="update_group_info"
    ),  # Rename group / change avatar (admin only)

    path(
        "conversations/<int:conversation_id>/delete/",
        views.delete_conversation,
        name="delete_conversation"
    ),  # Delete conversation, its messages and blobs

    path(
        "conversations/<int:conversation_id>/members/",
        views.group_members,
        name="group_members"
    ),  # Member snapshots with admin flags

    path(
        "conversations/<int:conversation_id>/read/",
        views.mark_read,
        name="mark_read"
    ),  # Mark every message as read


    # ========================================================================
    # SECTION 3: MESSAGES
    # ========================================================================

    path(
        "conversations/<int:conversation_id>/messages/",
        views.message_list,
        name="message_list"
    ),  # Message history, oldest first

    path(
        "conversations/<int:conversation_id>/messages/text/",
        views.send_text,
        name="send_text"
    ),

    path(
        "conversations/<int:conversation_id>/messages/image/",
        views.send_image,
        name="send_image"
    ),

    path(
        "conversations/<int:conversation_id>/messages/video/",
        views.send_video,
        name="send_video"
    ),

    path(
        "conversations/<int:conversation_id>/messages/audio/",
        views.send_audio,
        name="send_audio"
    ),

    path(
        "conversations/<int:conversation_id>/messages/document/",
        views.send_document,
        name="send_document"
    ),

    path(
        "messages/<int:message_id>/delete/",
        views.delete_message,
        name="delete_message"
    ),  # Replace with a tombstone

    path(
        "messages/<int:message_id>/destroy/",
        views.destroy_message,
        name="destroy_message"
    ),  # Remove the row entirely


    # ========================================================================
    # SECTION 4: PUSH NOTIFICATIONS
    # ========================================================================

    path(
        "push/subscribe/",
        views.push_subscribe,
        name="push_subscribe"
    ),

    path(
        "push/unsubscribe/",
        views.push_unsubscribe,
        name="push_unsubscribe"
    ),


    # ========================================================================
    # SECTION 5: WEBHOOKS
    # ========================================================================

    path(
        "webhooks/clerk/",
        views.clerk_webhook,
        name="clerk_webhook"
    ),  # Svix-signed Clerk user and session events
]
