# chat_core/domain/errors.py
"""
Error taxonomy shared by the stores, interactors and both transports.

The HTTP layer renders every ``ChatError`` as ``{"code", "message"}`` with the
class' status code; the socket gateway sends the same pair as an ``error``
event.
"""


class ChatError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(ChatError):
    status_code = 400
    code = "VALIDATION_ERROR"
    message = "Invalid request"


class AuthorizationError(ChatError):
    status_code = 403
    code = "FORBIDDEN"
    message = "You are not a participant of this chat"


class NotFoundError(ChatError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Resource not found"


class ConflictError(ChatError):
    status_code = 409
    code = "CONFLICT"
    message = "Resource already exists"


class TransientError(ChatError):
    status_code = 503
    code = "TRANSIENT_ERROR"
    message = "Service temporarily unavailable"
