import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database

from config import Settings, get_settings
from database import connect, serialize
from errors import AppError, InsufficientCapacity, LessonNotFound
from ledger import AvailabilityLedger
from logging_config import setup_logging
from orders import OrderLifecycle, OrderWorkflow
from passwords import verify_password
from repositories import LessonRepository, OrderRepository, UserRepository
from schemas import Lesson, LessonOut, LessonUpdate, LoginIn, LoginOut, OrderDeleted, OrderOut, UserOut

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("access")

router = APIRouter()


# Dependencies
def get_db(request: Request) -> Database:
    return request.app.state.db


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_lessons(request: Request) -> LessonRepository:
    return request.app.state.lessons


def get_users(request: Request) -> UserRepository:
    return request.app.state.users


def get_workflow(request: Request) -> OrderWorkflow:
    return request.app.state.order_workflow


def get_lifecycle(request: Request) -> OrderLifecycle:
    return request.app.state.order_lifecycle


@router.get("/")
def root():
    return {"message": "Lesson Booking API running"}


@router.get("/test")
def test_database(db: Database = Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        response["database_name"] = db.name
        collections = db.list_collection_names()
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
        response["collections"] = collections[:10]
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"❌ Error: {str(e)[:80]}"

    return response


# Lessons
@router.get("/lessons", response_model=List[LessonOut])
def list_lessons(lessons: LessonRepository = Depends(get_lessons)):
    return [serialize(doc) for doc in lessons.list()]


@router.get("/lessons/{lesson_id}", response_model=LessonOut)
def get_lesson(lesson_id: str, lessons: LessonRepository = Depends(get_lessons)):
    doc = lessons.get(lesson_id)
    if not doc:
        raise LessonNotFound(lesson_id)
    return serialize(doc)


@router.post("/lessons", response_model=LessonOut, status_code=201)
def create_lesson(lesson: Lesson, lessons: LessonRepository = Depends(get_lessons)):
    lesson_id = lessons.create(lesson.model_dump())
    return serialize(lessons.get(lesson_id))


@router.put("/lessons/{lesson_id}", response_model=LessonOut)
def update_lesson(lesson_id: str, lesson: LessonUpdate, lessons: LessonRepository = Depends(get_lessons)):
    update_data = lesson.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(status_code=400, detail="Request body is required")
    doc = lessons.update(lesson_id, update_data)
    if not doc:
        raise LessonNotFound(lesson_id)
    return serialize(doc)


@router.delete("/lessons/{lesson_id}")
def delete_lesson(lesson_id: str, lessons: LessonRepository = Depends(get_lessons)):
    if not lessons.delete(lesson_id):
        raise LessonNotFound(lesson_id)
    return {"msg": "Lesson deleted", "id": lesson_id}


@router.get("/search", response_model=List[LessonOut])
def search_lessons(query: str = "", lessons: LessonRepository = Depends(get_lessons)):
    query = query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Search query is missing")
    results = lessons.search(query)
    logger.info("Search for %r returned %s results", query, len(results))
    return [serialize(doc) for doc in results]


@router.get("/images", response_model=List[str])
def list_images(settings: Settings = Depends(get_app_settings)):
    folder = Path(settings.images_dir)
    if not folder.is_dir():
        raise HTTPException(status_code=404, detail="Images folder not found")
    return sorted(entry.name for entry in folder.iterdir() if entry.is_file())


# Orders
@router.get("/orders", response_model=List[OrderOut])
def list_orders(lifecycle: OrderLifecycle = Depends(get_lifecycle)):
    return lifecycle.list()


@router.get("/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: str, lifecycle: OrderLifecycle = Depends(get_lifecycle)):
    return lifecycle.get(order_id)


@router.post("/orders", response_model=OrderOut, status_code=201)
def create_order(
    payload: Optional[Dict[str, Any]] = Body(None),
    workflow: OrderWorkflow = Depends(get_workflow),
):
    return workflow.submit(payload)


@router.put("/orders/{order_id}", response_model=OrderOut)
def update_order(
    order_id: str,
    patch: Optional[Dict[str, Any]] = Body(None),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    return lifecycle.update(order_id, patch)


@router.delete("/orders/{order_id}", response_model=OrderDeleted)
def delete_order(order_id: str, lifecycle: OrderLifecycle = Depends(get_lifecycle)):
    return lifecycle.delete(order_id)


# Users
@router.get("/users", response_model=List[UserOut])
def list_users(users: UserRepository = Depends(get_users)):
    return [serialize(doc) for doc in users.list()]


def _login_failed(status_code: int, message: str) -> JSONResponse:
    body = LoginOut(success=False, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@router.post(
    "/login",
    response_model=LoginOut,
    responses={400: {"model": LoginOut}, 401: {"model": LoginOut}},
)
def login(credentials: LoginIn, users: UserRepository = Depends(get_users)):
    if not credentials.email or not credentials.password:
        return _login_failed(400, "Email and password are required")

    user = users.find_by_email(credentials.email)
    if not user or not verify_password(credentials.password, user.get("password")):
        return _login_failed(401, "Invalid email or password")

    user.pop("password", None)
    return LoginOut(success=True, message="Login successful", user=UserOut(**serialize(user)))


# Error handlers
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    content: Dict[str, Any] = {"detail": exc.message}
    if isinstance(exc, (InsufficientCapacity, LessonNotFound)):
        content["lessonId"] = exc.lesson_id
    if exc.status_code < 500:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    else:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=content)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled application error", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "An error occurred"})


async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    access_logger.info(
        '"%s %s" %s %.1fms', request.method, request.url.path, response.status_code, elapsed_ms
    )
    return response


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    settings = settings or get_settings()
    db = database if database is not None else connect(settings)

    app = FastAPI(title="Lesson Booking API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(log_requests)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    lessons = LessonRepository(db)
    orders = OrderRepository(db)
    ledger = AvailabilityLedger(lessons)

    app.state.settings = settings
    app.state.db = db
    app.state.lessons = lessons
    app.state.users = UserRepository(db)
    app.state.order_workflow = OrderWorkflow(lessons, orders, ledger)
    app.state.order_lifecycle = OrderLifecycle(orders, ledger)

    app.include_router(router)
    return app


SETTINGS = get_settings()
setup_logging(SETTINGS.log_level, log_file=SETTINGS.log_file)
app = create_app(SETTINGS)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=SETTINGS.port)
