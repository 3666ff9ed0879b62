"""
Availability ledger for lesson spaces.

Every reservation is one guarded ``find_one_and_update``: the decrement is
only applied while ``spaces >= quantity`` holds in the store, so concurrent
requests (in this process or in other replicas) cannot oversell a lesson.
"""

import logging

from errors import InsufficientCapacity, LessonNotFound, ValidationError
from repositories import LessonRepository
from schemas import MAX_SPACES

logger = logging.getLogger(__name__)


def _check_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or not 1 <= quantity <= MAX_SPACES:
        raise ValidationError(f"Quantity must be an integer between 1 and {MAX_SPACES}")


def _stored_spaces(lesson: dict) -> int:
    spaces = lesson.get("spaces")
    if isinstance(spaces, bool) or not isinstance(spaces, (int, float)):
        logger.warning("Lesson %s has a non-numeric spaces value: %r", lesson.get("_id"), spaces)
        return 0
    return max(int(spaces), 0)


class AvailabilityLedger:
    def __init__(self, lessons: LessonRepository):
        self.lessons = lessons

    def reserve(self, lesson_id: str, quantity: int) -> int:
        """Take ``quantity`` spaces from a lesson and return what is left."""
        _check_quantity(quantity)
        lesson = self.lessons.take_spaces(lesson_id, quantity)
        if lesson is None:
            # The guard failed; find out why without writing anything.
            current = self.lessons.get(lesson_id)
            if current is None:
                raise LessonNotFound(lesson_id)
            raise InsufficientCapacity(lesson_id, quantity, _stored_spaces(current))

        remaining = _stored_spaces(lesson)
        logger.info("Reserved %s space(s) on lesson %s, %s left", quantity, lesson_id, remaining)
        return remaining

    def release(self, lesson_id: str, quantity: int) -> int:
        """Give ``quantity`` spaces back. Callers must release a reservation at most once."""
        _check_quantity(quantity)
        lesson = self.lessons.return_spaces(lesson_id, quantity)
        if lesson is None:
            raise LessonNotFound(lesson_id)

        remaining = _stored_spaces(lesson)
        logger.info("Released %s space(s) on lesson %s, %s left", quantity, lesson_id, remaining)
        return remaining
