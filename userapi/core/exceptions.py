class AppError(Exception):
    def __init__(self, message: str, status_code: int = 400, error: str = "bad_request"):
        self.message = message
        self.status_code = status_code
        self.error = error
        super().__init__(message)


class InvalidRequestError(AppError):
    def __init__(self, message: str, error: str = "validation_error"):
        super().__init__(message, status_code=400, error=error)


class NotFoundError(AppError):
    def __init__(self, message: str, error: str = "not_found"):
        super().__init__(message, status_code=404, error=error)


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: int):
        super().__init__("User not found", error="user_not_found")
        self.user_id = user_id


class ConflictError(AppError):
    def __init__(self, message: str, error: str = "conflict"):
        super().__init__(message, status_code=409, error=error)


class EmailExistsError(ConflictError):
    def __init__(self, email: str):
        super().__init__("Email already exists", error="email_exists")
        self.email = email


class ServiceError(AppError):
    """Opaque infrastructure failure. The message is safe to show to clients."""

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, status_code=500, error="internal_server_error")


# ── Storage layer ─────────────────────────────────────────────────────────────
# Raised by repositories and translated by the service layer; never rendered.


class RecordNotFoundError(Exception):
    pass


class StorageError(Exception):
    pass


class UniqueViolationError(StorageError):
    pass
