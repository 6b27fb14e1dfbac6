from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import status


@dataclass
class FieldError:
    field: str
    message: str

    def as_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message}


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def detail(self) -> Any:
        return self.message


class ValidationError(ServiceError):
    """Malformed or out-of-range input. Carries one entry per offending field."""

    def __init__(self, errors: List[FieldError], message: str = "Validation failed") -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)
        self.errors = errors

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls([FieldError(field, message)], message=message)

    @property
    def detail(self) -> Any:
        return {"message": self.message, "errors": [e.as_dict() for e in self.errors]}


class AuthorizationError(ServiceError):
    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class NotFoundError(ServiceError):
    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class InvalidStateError(ServiceError):
    """Operation is not legal for the entity's current status."""

    def __init__(self, message: str, current_status: Optional[str] = None) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)
        self.current_status = current_status


class ConflictError(ServiceError):
    """Concurrent or duplicate mutation collided with existing state."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


def raise_if_errors(errors: List[FieldError]) -> None:
    if errors:
        message = errors[0].message if len(errors) == 1 else "Validation failed"
        raise ValidationError(errors, message=message)
