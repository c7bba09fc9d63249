"""Domain errors raised by the stores and mapped to responses at the edges."""


class ChatError(Exception):
    status_code = 500
    message = "Internal error"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message


# 400
class ValidationError(ChatError):
    status_code = 400
    message = "Invalid request"


class InvalidUsername(ValidationError):
    message = "Username must contain only letters and digits"


class PasswordTooShort(ValidationError):
    message = "Password must be at least 8 characters long"


class PasswordTooLong(ValidationError):
    message = "Password must be at most 72 bytes long"


class InvalidRoomName(ValidationError):
    message = "Room name may only contain letters, digits, '_' and '-'"


class InvalidMessage(ValidationError):
    message = "Message text is empty or too long"


class ConflictError(ChatError):
    status_code = 400
    message = "Conflict"


class UsernameTaken(ConflictError):
    message = "Username already exists"


class RoomExists(ConflictError):
    message = "Room already exists"


class RegistryFull(ConflictError):
    message = "Maximum number of rooms reached"


# 401
class AuthError(ChatError):
    status_code = 401
    message = "Unauthorized"


class MissingToken(AuthError):
    pass


class InvalidToken(AuthError):
    pass


class TokenExpired(AuthError):
    pass


# 429
class RateLimitError(ChatError):
    status_code = 429
    message = "Too many requests"


class RateLimited(RateLimitError):
    message = "You can only create one room per minute"


# 404, never surfaced as an HTTP response
class NotFoundError(ChatError):
    status_code = 404
    message = "Not found"


class UserNotFound(NotFoundError):
    message = "User not found"


class RoomNotFound(NotFoundError):
    message = "Room not found"
