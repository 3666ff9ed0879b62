"""
Order submission and lifecycle.

OrderWorkflow turns a submitted cart into a persisted ``pending`` order,
reserving spaces for every line or for none of them. OrderLifecycle applies
later changes and gives spaces back when a pending order is cancelled or
deleted.

Status transitions: pending -> cancelled | fulfilled. Both targets are
terminal. Only pending -> cancelled releases capacity.
"""

import logging
from typing import Any, Dict, List, Optional, Set

from pydantic import ValidationError as SchemaError

from database import serialize, to_object_id, utcnow
from errors import AppError, LessonNotFound, OrderNotFound, ValidationError
from ledger import AvailabilityLedger
from repositories import LessonRepository, OrderRepository
from schemas import OrderItem, OrderItemIn, OrderStatus

logger = logging.getLogger(__name__)

# Keys the server owns on a new order; client values are dropped.
SERVER_FIELDS = {"_id", "id", "items", "total", "status", "createdAt", "updatedAt"}

# Keys that may never be patched once an order exists.
PROTECTED_FIELDS = {"items", "total", "createdAt"}
IGNORED_FIELDS = {"_id", "id", "updatedAt"}


def _check_keys(fields: Dict[str, Any], reserved: Set[str]) -> None:
    """Reject operator keys and dotted paths into server owned fields."""
    for key in fields:
        if not isinstance(key, str) or not key or key.startswith("$"):
            raise ValidationError(f"Invalid field name {key!r}")
        root, dot, _ = key.partition(".")
        if not root or (dot and root in reserved):
            raise ValidationError(f"Field cannot be changed: {key}")


def _first_error(exc: SchemaError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error['msg']}" if location else error["msg"]


class OrderWorkflow:
    def __init__(self, lessons: LessonRepository, orders: OrderRepository, ledger: AvailabilityLedger):
        self.lessons = lessons
        self.orders = orders
        self.ledger = ledger

    def submit(self, payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not payload:
            raise ValidationError("Order body required")
        if not isinstance(payload, dict):
            raise ValidationError("Order body must be a JSON object")

        raw_items = payload.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("Order must include items array")
        _check_keys(payload, SERVER_FIELDS)

        requested = self._parse_items(raw_items)
        lines = self._price_items(requested)
        total = round(sum(line.price * line.quantity for line in lines), 2)

        reserved = self._reserve_all(lines)

        doc = {key: value for key, value in payload.items() if key not in SERVER_FIELDS}
        doc["items"] = [line.model_dump(by_alias=True) for line in lines]
        doc["total"] = total
        doc["status"] = OrderStatus.PENDING.value
        doc["createdAt"] = utcnow()

        try:
            order_id = self.orders.create(doc)
        except Exception:
            self._rollback(reserved)
            raise

        logger.info("Created order %s with %s item(s), total %s", order_id, len(lines), total)
        order = self.orders.get(order_id)
        if order is None:
            # Written but not readable back; answer from what was stored.
            order = dict(doc, _id=to_object_id(order_id))
        return serialize(order)

    def _parse_items(self, raw_items: List[Any]) -> List[OrderItemIn]:
        items = []
        for position, raw in enumerate(raw_items):
            try:
                item = OrderItemIn.model_validate(raw)
            except SchemaError as exc:
                raise ValidationError(f"Invalid item at position {position}: {_first_error(exc)}") from None
            to_object_id(item.lesson_id, "lesson id")
            items.append(item)
        return items

    def _price_items(self, items: List[OrderItemIn]) -> List[OrderItem]:
        lines = []
        for item in items:
            lesson = self.lessons.get(item.lesson_id)
            if lesson is None:
                raise LessonNotFound(item.lesson_id)
            lines.append(
                OrderItem(
                    lesson_id=item.lesson_id,
                    quantity=item.quantity,
                    price=float(lesson.get("price", 0)),
                    subject=lesson.get("subject"),
                )
            )
        return lines

    def _reserve_all(self, lines: List[OrderItem]) -> List[OrderItem]:
        reserved: List[OrderItem] = []
        for line in lines:
            try:
                self.ledger.reserve(line.lesson_id, line.quantity)
            except Exception:
                self._rollback(reserved)
                raise
            reserved.append(line)
        return reserved

    def _rollback(self, reserved: List[OrderItem]) -> None:
        for line in reversed(reserved):
            try:
                self.ledger.release(line.lesson_id, line.quantity)
            except AppError:
                logger.exception(
                    "Rollback could not release %s space(s) on lesson %s", line.quantity, line.lesson_id
                )
        if reserved:
            logger.info("Rolled back %s reservation(s)", len(reserved))


class OrderLifecycle:
    def __init__(self, orders: OrderRepository, ledger: AvailabilityLedger):
        self.orders = orders
        self.ledger = ledger

    def list(self) -> List[Dict[str, Any]]:
        return [serialize(order) for order in self.orders.list()]

    def get(self, order_id: str) -> Dict[str, Any]:
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return serialize(order)

    def update(self, order_id: str, patch: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not patch:
            raise ValidationError("Request body is required")
        if not isinstance(patch, dict):
            raise ValidationError("Request body must be a JSON object")
        to_object_id(order_id, "order id")

        fields = {key: value for key, value in patch.items() if key not in IGNORED_FIELDS}
        _check_keys(fields, SERVER_FIELDS)
        protected = sorted(PROTECTED_FIELDS & fields.keys())
        if protected:
            raise ValidationError(f"Fields cannot be changed: {', '.join(protected)}")

        new_status = None
        if "status" in fields:
            new_status = self._parse_status(fields.pop("status"))
        fields["updatedAt"] = utcnow()

        if new_status is None:
            order = self.orders.update(order_id, fields)
            if order is None:
                raise OrderNotFound(order_id)
            return serialize(order)

        fields["status"] = new_status.value
        order = self.orders.transition(order_id, OrderStatus.PENDING.value, fields)
        if order is None:
            self._raise_not_pending(order_id)

        if new_status is OrderStatus.CANCELLED:
            logger.info("Order %s cancelled", order_id)
            self._release_items(order)
        elif new_status is OrderStatus.FULFILLED:
            logger.info("Order %s fulfilled", order_id)
        return serialize(order)

    def delete(self, order_id: str) -> Dict[str, Any]:
        order = self.orders.delete(order_id)
        if order is None:
            raise OrderNotFound(order_id)

        if order.get("status") == OrderStatus.PENDING.value:
            self._release_items(order)
        logger.info("Deleted order %s (was %s)", order_id, order.get("status"))
        return {"msg": "Order deleted", "id": order_id}

    def _parse_status(self, value: Any) -> OrderStatus:
        try:
            return OrderStatus(value)
        except ValueError:
            allowed = ", ".join(status.value for status in OrderStatus)
            raise ValidationError(f"Invalid status {value!r}, expected one of: {allowed}") from None

    def _raise_not_pending(self, order_id: str) -> None:
        current = self.orders.get(order_id)
        if current is None:
            raise OrderNotFound(order_id)
        raise OrderNotFound(
            order_id,
            f"Order {order_id} is {current.get('status')} and no longer pending",
        )

    def _release_items(self, order: Dict[str, Any]) -> None:
        for item in order.get("items", []):
            lesson_id = item["lessonId"]
            quantity = int(item["quantity"])
            try:
                self.ledger.release(lesson_id, quantity)
            except LessonNotFound:
                logger.warning(
                    "Lesson %s was deleted, %s space(s) from order %s not released",
                    lesson_id,
                    quantity,
                    order.get("_id"),
                )
