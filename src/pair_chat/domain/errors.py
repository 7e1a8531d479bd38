"""Error taxonomy shared by the stores, the services and the HTTP layer."""


class ChatError(Exception):
    """Base class for errors reported to API callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidArgument(ChatError):
    """Malformed, missing or self-referential input."""

    status_code = 400


class Unauthenticated(ChatError):
    status_code = 401


class Forbidden(ChatError):
    """Caller is known but is not allowed to touch the resource."""

    status_code = 403


class NotFound(ChatError):
    status_code = 404


class Conflict(ChatError):
    """A uniqueness constraint rejected the write."""

    status_code = 409


class Internal(ChatError):
    """Storage or transport failure below the orchestration layer."""

    status_code = 500
