from __future__ import annotations


class ApiError(Exception):
    def __init__(self, *, status_code: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class UnauthorizedError(ApiError):
    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(status_code=401, code="UNAUTHORIZED", message=message)


class ForbiddenError(ApiError):
    def __init__(self, message: str = "Forbidden", *, code: str = "FORBIDDEN") -> None:
        super().__init__(status_code=403, code=code, message=message)


class ValidationError(ApiError):
    def __init__(self, message: str) -> None:
        super().__init__(status_code=400, code="VALIDATION_ERROR", message=message)


class NotFoundError(ApiError):
    def __init__(self, message: str, *, code: str = "NOT_FOUND") -> None:
        super().__init__(status_code=404, code=code, message=message)


class LimitExceededError(ApiError):
    def __init__(self, message: str) -> None:
        super().__init__(status_code=409, code="PENDING_LIMIT_EXCEEDED", message=message)


def unknown_alert_type(alert_type_id: str) -> NotFoundError:
    return NotFoundError(
        f"Unknown alert type '{alert_type_id}'", code="ALERT_TYPE_NOT_FOUND"
    )
