"""
Domain errors raised by the chat services.

Each error carries the HTTP status the API layer answers with; views turn
them into {"error": message} JSON responses.
"""


class ChatError(Exception):
    status = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class InvalidInput(ChatError):
    status = 400


class Unauthorized(ChatError):
    status = 401


class Forbidden(ChatError):
    status = 403


class NotFound(ChatError):
    status = 404
