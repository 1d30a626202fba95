from typing import Optional

from fastapi import HTTPException, status


class ApiError(HTTPException):
    """
    Базовая ошибка сервиса: HTTP-статус + сообщение.

    Наследуемся от HTTPException, чтобы роуты могли просто
    пробрасывать ошибки из сервисного слоя.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(
            status_code=type(self).status_code,
            detail=message or self.default_message,
        )

    @property
    def message(self) -> str:
        return str(self.detail)


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ForbiddenError(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class ValidationError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class ConflictError(ApiError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class ExpiredError(ValidationError):
    """Время на попытку вышло, а ответов не прислали."""

    default_message = "Quiz time limit has expired and no answers were submitted"
