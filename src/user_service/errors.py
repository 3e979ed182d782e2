"""
user_service.errors

Domain error taxonomy surfaced by repositories and services.

Responsibilities:
- Define the small set of failure kinds the HTTP boundary maps to status codes.
- Keep infrastructure exceptions (SQLAlchemy, Redis) out of the API layer.
"""

from __future__ import annotations


class ServiceError(Exception):
    """
    Base class for failures that cross the service boundary.
    `message` is safe to show to API callers.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    pass


class ConflictError(ServiceError):
    pass


class NotFoundError(ServiceError):
    pass


class InternalError(ServiceError):
    pass


class SortValidationError(ValidationError):
    """
    Raised for sort keys or directions outside the allow-list.
    Both lists are reported so callers can fix the whole query at once.
    """

    def __init__(
        self, *, invalid_fields: list[str], invalid_directions: list[str] | None = None
    ) -> None:
        self.invalid_fields = list(invalid_fields)
        self.invalid_directions = list(invalid_directions or [])
        parts: list[str] = []
        if self.invalid_fields:
            parts.append("invalid sort field: " + ",".join(self.invalid_fields))
        if self.invalid_directions:
            parts.append("invalid sort direction: " + ",".join(self.invalid_directions))
        super().__init__("; ".join(parts))


class FilterValidationError(ValidationError):
    def __init__(self, *, invalid_params: list[str]) -> None:
        self.invalid_params = list(invalid_params)
        super().__init__("invalid query parameters: " + ", ".join(self.invalid_params))


# --- Module Notes -----------------------------------------------------------
# Async dispatch failures (bus publish, task enqueue, cache invalidation) are
# not part of this taxonomy: the service logs them and never raises them.
