"""
Database Schemas for the Lesson Booking API

Each Pydantic model describes the documents of one MongoDB collection
("lessons", "orders", "users"). Field names in snake_case map to the camelCase
keys used on the wire and in stored documents through aliases.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Largest count accepted for spaces and quantities; keeps values within int32.
MAX_SPACES = 2**31 - 1


class Lesson(BaseModel):
    """
    Lessons collection schema
    Collection name: "lessons"
    """
    subject: str = Field(..., min_length=1, description="Lesson subject")
    description: str = Field(..., min_length=1, description="Lesson description")
    price: float = Field(..., ge=0, description="Price per space")
    spaces: int = Field(..., ge=0, le=MAX_SPACES, description="Remaining bookable spaces")
    category: Optional[str] = Field(None, description="Lesson category")
    location: Optional[str] = Field(None, description="Where the lesson takes place")
    image: Optional[str] = Field(None, description="Image file name or URL")
    rating: Optional[float] = Field(None, ge=0, le=5, description="Average rating")


class LessonUpdate(BaseModel):
    """Partial update of a lesson. Editing spaces here bypasses the ledger."""
    subject: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    spaces: Optional[int] = Field(None, ge=0, le=MAX_SPACES)
    category: Optional[str] = None
    location: Optional[str] = None
    image: Optional[str] = None
    rating: Optional[float] = Field(None, ge=0, le=5)

    @model_validator(mode="after")
    def required_fields_not_null(self):
        nulled = sorted(
            name
            for name in ("subject", "description", "price", "spaces")
            if name in self.model_fields_set and getattr(self, name) is None
        )
        if nulled:
            raise ValueError(f"Fields cannot be null: {', '.join(nulled)}")
        return self


class LessonOut(Lesson):
    id: str


class OrderStatus(str, Enum):
    PENDING = "pending"
    CANCELLED = "cancelled"
    FULFILLED = "fulfilled"


class OrderItemIn(BaseModel):
    """One cart line as submitted by the client. Any price sent is ignored."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    lesson_id: str = Field(..., alias="lessonId", description="Lesson ObjectId as string")
    quantity: int = Field(..., ge=1, le=MAX_SPACES, strict=True, description="Spaces requested")
    price: Optional[float] = Field(None, description="Client side price, not trusted")


class OrderItem(BaseModel):
    """
    Order line as stored, with the lesson price and subject at creation time.
    """
    model_config = ConfigDict(populate_by_name=True)

    lesson_id: str = Field(..., alias="lessonId")
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    subject: Optional[str] = None


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "orders"

    Customer fields (firstName, lastName, phone, ...) are kept as extra keys.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    items: List[OrderItem]
    total: float = Field(..., ge=0, description="Server computed sum of price x quantity")
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class OrderOut(Order):
    id: str


class OrderDeleted(BaseModel):
    msg: str
    id: str


class UserOut(BaseModel):
    """
    Users collection schema, as exposed (never includes the password hash)
    Collection name: "users"
    """
    model_config = ConfigDict(extra="allow")

    id: str
    email: str
    name: Optional[str] = None


class LoginIn(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class LoginOut(BaseModel):
    success: bool
    message: str
    user: Optional[UserOut] = None
