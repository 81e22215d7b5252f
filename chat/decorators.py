import json
import logging
from functools import wraps

from django.http import JsonResponse

from .exceptions import ChatError, InvalidInput

logger = logging.getLogger(__name__)


def api_login_required(view_func):
    """
    JSON counterpart of login_required.

    Anonymous requests get a 401 instead of a login redirect, and
    ChatError raised by the services is rendered as {"error": message}
    with the error's status.
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({"error": "Unauthorized"}, status=401)
        try:
            return view_func(request, *args, **kwargs)
        except ChatError as e:
            logger.info(f"{view_func.__name__} rejected for user {request.user.pk}: {e.message}")
            return JsonResponse({"error": e.message}, status=e.status)
    return wrapper


def parse_body(request):
    """
    Request payload as a dict-like object.

    JSON bodies are decoded; form and multipart bodies are returned as the
    request's QueryDict so list fields stay available through getlist().
    """
    if request.content_type == 'application/json':
        if not request.body:
            return {}
        try:
            data = json.loads(request.body)
        except json.JSONDecodeError:
            raise InvalidInput("Invalid JSON body")
        if not isinstance(data, dict):
            raise InvalidInput("JSON body must be an object")
        return data
    return request.POST


def get_list(data, key):
    """Read a list field from either a JSON dict or a QueryDict."""
    if hasattr(data, 'getlist'):
        values = data.getlist(key)
        # Form clients may also send "1,2,3"
        if len(values) == 1 and ',' in values[0]:
            values = [v for v in values[0].split(',') if v.strip()]
        return values
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise InvalidInput(f"'{key}' must be a list")
    return value


def get_bool(data, key, default=False):
    value = data.get(key)
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return value
    return str(value).lower() in ('1', 'true', 'yes', 'on')
