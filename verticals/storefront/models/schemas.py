"""Pydantic schemas for API request/response validation."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class RentalTerm(str, Enum):
    TWO_WEEKS = "2weeks"
    ONE_MONTH = "1month"
    THREE_MONTHS = "3months"


class RentalStatus(str, Enum):
    ACTIVE = "active"
    RETURNED = "returned"
    OVERDUE = "overdue"


class NotificationKind(str, Enum):
    RENTAL_REMINDER = "rental_reminder"
    RENTAL_OVERDUE = "rental_overdue"


class BookSort(str, Enum):
    TITLE = "title"
    AUTHOR = "author"
    CATEGORY = "category"
    PURCHASE_PRICE = "purchase_price"
    YEAR_PUBLISHED = "year_published"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class BookCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    year_published: Optional[int] = Field(None, ge=0, le=9999)
    description: Optional[str] = None
    cover_image_url: Optional[str] = Field(None, max_length=1000)
    purchase_price: float = Field(..., ge=0)
    rental_price_2weeks: float = Field(..., ge=0)
    rental_price_1month: float = Field(..., ge=0)
    rental_price_3months: float = Field(..., ge=0)
    total_copies: int = Field(1, ge=0)
    available_copies: Optional[int] = Field(None, ge=0)
    is_available: bool = True

    @model_validator(mode="after")
    def check_copies(self) -> "BookCreate":
        if self.available_copies is None:
            self.available_copies = self.total_copies
        if self.available_copies > self.total_copies:
            raise ValueError("available_copies cannot exceed total_copies")
        return self


# Omitted means "leave as is"; these columns cannot be cleared
_BOOK_REQUIRED_COLUMNS = (
    "title",
    "author",
    "category",
    "purchase_price",
    "rental_price_2weeks",
    "rental_price_1month",
    "rental_price_3months",
    "total_copies",
    "is_available",
)


class BookUpdate(BaseModel):
    """Catalog edits. available_copies is owned by the inventory ledger."""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    author: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    year_published: Optional[int] = Field(None, ge=0, le=9999)
    description: Optional[str] = None
    cover_image_url: Optional[str] = Field(None, max_length=1000)
    purchase_price: Optional[float] = Field(None, ge=0)
    rental_price_2weeks: Optional[float] = Field(None, ge=0)
    rental_price_1month: Optional[float] = Field(None, ge=0)
    rental_price_3months: Optional[float] = Field(None, ge=0)
    total_copies: Optional[int] = Field(None, ge=0)
    is_available: Optional[bool] = None

    @model_validator(mode="after")
    def reject_nulls(self) -> "BookUpdate":
        cleared = [
            name for name in _BOOK_REQUIRED_COLUMNS
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if cleared:
            raise ValueError(f"{', '.join(cleared)} cannot be null")
        return self


class RentRequest(BaseModel):
    rental_type: RentalTerm = RentalTerm.TWO_WEEKS


class RentalStatusUpdate(BaseModel):
    status: RentalStatus


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class BookResponse(BaseModel):
    id: str
    title: str
    author: str
    category: str
    year_published: Optional[int] = None
    description: Optional[str] = None
    cover_image_url: Optional[str] = None
    purchase_price: float
    rental_price_2weeks: float
    rental_price_1month: float
    rental_price_3months: float
    total_copies: int
    available_copies: int
    is_available: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PurchaseResponse(BaseModel):
    id: str
    user_id: str
    book_id: str
    price_paid: float
    created_at: Optional[datetime] = None
    book: Optional[dict] = None


class RentalResponse(BaseModel):
    id: str
    user_id: str
    book_id: str
    rental_type: RentalTerm
    start_date: datetime
    end_date: datetime
    price_paid: float
    status: RentalStatus
    effective_status: RentalStatus
    created_at: Optional[datetime] = None
    book: Optional[dict] = None


class DashboardStats(BaseModel):
    total_books: int = 0
    total_rentals: int = 0
    total_purchases: int = 0
    total_revenue: float = 0.0
    active_rentals: int = 0
    overdue_rentals: int = 0


class ActivityEntry(BaseModel):
    kind: str
    record_id: str
    user_id: str
    book_id: str
    book_title: Optional[str] = None
    amount: float
    date: datetime


class PaginatedResponse(BaseModel):
    data: list
    pagination: dict
