class LendingError(Exception):
    """Base class for errors raised to the caller of a borrow operation."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "message": self.message, "error": type(self).__name__}


class ConflictError(LendingError):
    """An open borrow already exists for the (user, book) pair."""

    status_code = 409


class InvalidTransitionError(LendingError):
    """The operation does not apply to the record's current status."""

    status_code = 409


class NotFoundError(LendingError):
    status_code = 404


class ValidationError(LendingError):
    status_code = 400


class DispatchError(Exception):
    """A side effect could not be delivered. Logged by the dispatcher, never raised to callers."""

    def __init__(self, channel: str, target, cause: Exception):
        super().__init__(f"{channel} delivery to {target} failed: {cause}")
        self.channel = channel
        self.target = target
        self.cause = cause
