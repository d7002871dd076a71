class ChatError(Exception):
    """Base class for failures reported by the chat services."""

    message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message


class ConflictError(ChatError):
    message = "Username already taken"


class NotFoundError(ChatError):
    message = "Not found"


class AuthError(ChatError):
    message = "Authentication failed"


class StoreError(ChatError):
    message = "Storage failure"


class ValidationError(ChatError):
    message = "Invalid payload"
