"""
Typed access to the lessons, orders and users collections.

Each repository wraps one collection; driver failures surface as StoreError.
"""

import re
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, get_documents, store_errors, to_object_id
from passwords import hash_password


class LessonRepository:
    collection_name = "lessons"

    def __init__(self, db: Database):
        self.collection = db[self.collection_name]

    def list(self, filter_dict: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        return get_documents(self.collection, filter_dict)

    def get(self, lesson_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(lesson_id, "lesson id")
        with store_errors("read lesson"):
            return self.collection.find_one({"_id": oid})

    def search(self, query: str) -> List[Dict[str, Any]]:
        regex = re.compile(re.escape(query), re.IGNORECASE)
        return get_documents(
            self.collection,
            {"$or": [{"subject": regex}, {"location": regex}]},
        )

    def create(self, data: Dict[str, Any]) -> str:
        return create_document(self.collection, data)

    def update(self, lesson_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        oid = to_object_id(lesson_id, "lesson id")
        with store_errors("update lesson"):
            return self.collection.find_one_and_update(
                {"_id": oid},
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
            )

    def delete(self, lesson_id: str) -> bool:
        oid = to_object_id(lesson_id, "lesson id")
        with store_errors("delete lesson"):
            result = self.collection.delete_one({"_id": oid})
        return result.deleted_count > 0

    def take_spaces(self, lesson_id: str, quantity: int) -> Optional[Dict[str, Any]]:
        """Decrement spaces only if at least ``quantity`` remain.

        Returns the updated lesson, or None when the lesson is missing or the
        guard did not hold.
        """
        oid = to_object_id(lesson_id, "lesson id")
        with store_errors("reserve spaces"):
            return self.collection.find_one_and_update(
                {"_id": oid, "spaces": {"$gte": quantity}},
                {"$inc": {"spaces": -quantity}},
                return_document=ReturnDocument.AFTER,
            )

    def return_spaces(self, lesson_id: str, quantity: int) -> Optional[Dict[str, Any]]:
        oid = to_object_id(lesson_id, "lesson id")
        with store_errors("release spaces"):
            return self.collection.find_one_and_update(
                {"_id": oid},
                {"$inc": {"spaces": quantity}},
                return_document=ReturnDocument.AFTER,
            )


class OrderRepository:
    collection_name = "orders"

    def __init__(self, db: Database):
        self.collection = db[self.collection_name]

    def list(self) -> List[Dict[str, Any]]:
        return get_documents(self.collection)

    def get(self, order_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(order_id, "order id")
        with store_errors("read order"):
            return self.collection.find_one({"_id": oid})

    def create(self, doc: Dict[str, Any]) -> str:
        return create_document(self.collection, doc)

    def update(self, order_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        oid = to_object_id(order_id, "order id")
        with store_errors("update order"):
            return self.collection.find_one_and_update(
                {"_id": oid},
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
            )

    def transition(self, order_id: str, from_status: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply ``fields`` only while the order is still in ``from_status``."""
        oid = to_object_id(order_id, "order id")
        with store_errors("update order"):
            return self.collection.find_one_and_update(
                {"_id": oid, "status": from_status},
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
            )

    def delete(self, order_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(order_id, "order id")
        with store_errors("delete order"):
            return self.collection.find_one_and_delete({"_id": oid})


class UserRepository:
    collection_name = "users"

    def __init__(self, db: Database):
        self.collection = db[self.collection_name]

    def list(self) -> List[Dict[str, Any]]:
        return get_documents(self.collection, projection={"password": 0})

    def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        with store_errors("read user"):
            return self.collection.find_one({"email": email})

    def create(self, data: Dict[str, Any]) -> str:
        doc = dict(data)
        doc["password"] = hash_password(doc["password"])
        return create_document(self.collection, doc)
