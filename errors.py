"""
Application errors.

Raised by the repositories, the ledger and the order services. The HTTP
layer renders them through exception handlers using ``status_code``.
"""

from typing import Optional


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    """Malformed or missing input."""

    status_code = 400


class NotFoundError(AppError):
    """An identifier that does not resolve."""

    status_code = 404


class LessonNotFound(NotFoundError):
    def __init__(self, lesson_id: str, message: Optional[str] = None):
        super().__init__(message or f"Lesson {lesson_id} not found")
        self.lesson_id = lesson_id


class OrderNotFound(NotFoundError):
    def __init__(self, order_id: str, message: Optional[str] = None):
        super().__init__(message or f"Order {order_id} not found")
        self.order_id = order_id


class CapacityError(AppError):
    """Attempt to book more spaces than a lesson has left."""

    status_code = 400


class InsufficientCapacity(CapacityError):
    def __init__(self, lesson_id: str, requested: int, available: int):
        super().__init__(
            f"Not enough spaces for lesson {lesson_id}: requested {requested}, available {available}"
        )
        self.lesson_id = lesson_id
        self.requested = requested
        self.available = available


class StoreError(AppError):
    """Backend failure reported by the document store."""

    status_code = 500
