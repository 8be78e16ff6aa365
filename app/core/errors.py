"""
Typed booking errors.

Services raise these; the API layer maps them to HTTP status codes through a
single exception handler so routes stay thin.
"""
from __future__ import annotations

STATUS_NOT_FOUND = 404
STATUS_VALIDATION = 400
STATUS_CONFLICT = 409


class BookingError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(BookingError):
    """Entity does not resolve, or the caller does not own it."""

    status_code = STATUS_NOT_FOUND

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(BookingError):
    status_code = STATUS_VALIDATION


class ConflictError(BookingError):
    status_code = STATUS_CONFLICT
