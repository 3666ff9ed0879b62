from __future__ import annotations

from pathlib import Path
import sys

import mongomock
import pytest
from bson import ObjectId

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from config import Settings
from ledger import AvailabilityLedger
from orders import OrderLifecycle, OrderWorkflow
from repositories import LessonRepository, OrderRepository, UserRepository


@pytest.fixture()
def db():
    return mongomock.MongoClient()["lessons_test"]


@pytest.fixture()
def add_lesson(db):
    def _add(spaces: int = 5, price: float = 10.0, **overrides) -> str:
        doc = {
            "subject": "Math",
            "description": "Algebra basics",
            "price": price,
            "spaces": spaces,
            "category": "Science",
            "location": "Hendon",
            "image": "math.png",
            "rating": 4.5,
        }
        doc.update(overrides)
        return str(db["lessons"].insert_one(doc).inserted_id)

    return _add


@pytest.fixture()
def spaces_of(db):
    def _spaces(lesson_id: str) -> int:
        return db["lessons"].find_one({"_id": ObjectId(lesson_id)})["spaces"]

    return _spaces


@pytest.fixture()
def lessons(db):
    return LessonRepository(db)


@pytest.fixture()
def orders(db):
    return OrderRepository(db)


@pytest.fixture()
def users(db):
    return UserRepository(db)


@pytest.fixture()
def ledger(lessons):
    return AvailabilityLedger(lessons)


@pytest.fixture()
def workflow(lessons, orders, ledger):
    return OrderWorkflow(lessons, orders, ledger)


@pytest.fixture()
def lifecycle(orders, ledger):
    return OrderLifecycle(orders, ledger)


@pytest.fixture()
def settings(tmp_path):
    images = tmp_path / "images"
    images.mkdir()
    return Settings(images_dir=str(images), cors_origins=["http://localhost:5500"])


@pytest.fixture()
def client(db, settings):
    from fastapi.testclient import TestClient

    from main import create_app

    return TestClient(create_app(settings, database=db))
