import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from . import clerk, conversations, messaging, push, users
from .conversations import serialize_conversation
from .decorators import api_login_required, get_bool, get_list, parse_body
from .exceptions import ChatError


# Logger
logger = logging.getLogger(__name__)


def _message_response(message, status=201):
    return JsonResponse(messaging.serialize_message(message, {}), status=status)


# ==================== USERS ====================

@require_GET
@api_login_required
def me(request):
    return JsonResponse(users.serialize_user(request.user))


@require_GET
@api_login_required
def user_list(request):
    return JsonResponse({"users": users.list_users(request.user)})


@require_GET
@api_login_required
def user_search(request):
    try:
        per_page = min(int(request.GET.get('per_page', users.DEFAULT_PAGE_SIZE)), 100)
    except ValueError:
        per_page = users.DEFAULT_PAGE_SIZE
    return JsonResponse(users.search_users(
        request.user,
        query=request.GET.get('q', ''),
        page=request.GET.get('page', 1),
        per_page=max(per_page, 1),
    ))


# ==================== CONVERSATIONS ====================

@csrf_exempt
@api_login_required
def conversation_list(request):
    """GET lists the inbox; POST finds or creates a conversation."""
    if request.method == "GET":
        return JsonResponse({"conversations": conversations.list_conversations(request.user)})
    if request.method != "POST":
        return JsonResponse({"error": "GET or POST required"}, status=405)

    data = parse_body(request)
    conversation, created = conversations.upsert_conversation(
        request.user,
        participants=get_list(data, 'participants'),
        is_group=get_bool(data, 'is_group'),
        group_name=data.get('group_name'),
        group_image=request.FILES.get('group_image'),
        admins=get_list(data, 'admins') or None,
        conversation_id=data.get('id'),
    )
    return JsonResponse(
        serialize_conversation(conversation, request.user),
        status=201 if created else 200,
    )


@csrf_exempt
@require_POST
@api_login_required
def set_participants(request, conversation_id):
    data = parse_body(request)
    participants = conversations.set_participants(
        request.user, conversation_id, get_list(data, 'participants')
    )
    return JsonResponse({"id": conversation_id, "participants": participants})


@csrf_exempt
@require_POST
@api_login_required
def kick_user(request, conversation_id, user_id):
    conversation = conversations.kick_user(request.user, conversation_id, user_id)
    if conversation is None:
        return JsonResponse({"id": conversation_id, "deleted": True})
    return JsonResponse({
        "id": conversation.pk,
        "participants": conversation.participant_ids(),
        "admins": conversation.admin_ids(),
    })


@csrf_exempt
@require_POST
@api_login_required
def update_admins(request, conversation_id):
    data = parse_body(request)
    admins = conversations.update_admins(request.user, conversation_id, get_list(data, 'admins'))
    return JsonResponse({"id": conversation_id, "admins": admins})


@csrf_exempt
@require_POST
@api_login_required
def update_group_info(request, conversation_id):
    data = parse_body(request)
    info = conversations.update_group_info(
        request.user,
        conversation_id,
        group_name=data.get('group_name'),
        group_image=request.FILES.get('group_image'),
        remove_image=get_bool(data, 'remove_image'),
    )
    return JsonResponse(info)


@csrf_exempt
@require_POST
@api_login_required
def delete_conversation(request, conversation_id):
    conversations.delete_conversation(request.user, conversation_id)
    return JsonResponse({"message": "Conversation deleted"})


@require_GET
@api_login_required
def group_members(request, conversation_id):
    return JsonResponse({"members": conversations.group_members(request.user, conversation_id)})


@csrf_exempt
@require_POST
@api_login_required
def mark_read(request, conversation_id):
    count = messaging.mark_conversation_read(request.user, conversation_id)
    return JsonResponse({"marked": count})


# ==================== MESSAGES ====================

@require_GET
@api_login_required
def message_list(request, conversation_id):
    return JsonResponse({"messages": messaging.get_messages(request.user, conversation_id)})


@csrf_exempt
@require_POST
@api_login_required
def send_text(request, conversation_id):
    data = parse_body(request)
    message = messaging.send_text(
        request.user,
        conversation_id,
        data.get('content'),
        reply_to=data.get('reply_to'),
        sender_id=data.get('sender'),
    )
    return _message_response(message)


@csrf_exempt
@require_POST
@api_login_required
def send_image(request, conversation_id):
    message = messaging.send_image(
        request.user,
        conversation_id,
        request.FILES.get('file'),
        caption=request.POST.get('caption'),
        reply_to=request.POST.get('reply_to'),
        sender_id=request.POST.get('sender'),
    )
    return _message_response(message)


@csrf_exempt
@require_POST
@api_login_required
def send_video(request, conversation_id):
    message = messaging.send_video(
        request.user,
        conversation_id,
        request.FILES.get('file'),
        caption=request.POST.get('caption'),
        gif_playback=get_bool(request.POST, 'gif_playback'),
        reply_to=request.POST.get('reply_to'),
        sender_id=request.POST.get('sender'),
    )
    return _message_response(message)


@csrf_exempt
@require_POST
@api_login_required
def send_audio(request, conversation_id):
    message = messaging.send_audio(
        request.user,
        conversation_id,
        request.FILES.get('file'),
        reply_to=request.POST.get('reply_to'),
        sender_id=request.POST.get('sender'),
    )
    return _message_response(message)


@csrf_exempt
@require_POST
@api_login_required
def send_document(request, conversation_id):
    message = messaging.send_document(
        request.user,
        conversation_id,
        request.FILES.get('file'),
        caption=request.POST.get('caption'),
        title=request.POST.get('title'),
        page_count=request.POST.get('page_count'),
        reply_to=request.POST.get('reply_to'),
        sender_id=request.POST.get('sender'),
    )
    return _message_response(message)


@csrf_exempt
@require_POST
@api_login_required
def delete_message(request, message_id):
    message = messaging.delete_message(request.user, message_id)
    return _message_response(message, status=200)


@csrf_exempt
@require_POST
@api_login_required
def destroy_message(request, message_id):
    messaging.destroy_message(request.user, message_id)
    return JsonResponse({"message": "Message destroyed"})


# ==================== PUSH ====================

@csrf_exempt
@require_POST
@api_login_required
def push_subscribe(request):
    data = parse_body(request)
    record = push.save_subscription(request.user, data.get('subscription'))
    return JsonResponse({"id": record.pk})


@csrf_exempt
@require_POST
@api_login_required
def push_unsubscribe(request):
    data = parse_body(request)
    removed = push.remove_subscription(request.user, data.get('endpoint', ''))
    return JsonResponse({"removed": removed})


# ==================== CLERK WEBHOOK ====================

@csrf_exempt
@require_POST
def clerk_webhook(request):
    try:
        event = clerk.verify_webhook(request.body.decode('utf-8'), dict(request.headers))
        event_type = clerk.handle_event(event)
    except ChatError as e:
        return JsonResponse({"error": e.message}, status=e.status)

    logger.info(f"Clerk webhook processed: {event_type or 'ignored'}")
    return JsonResponse({"status": "success", "event": event_type})

