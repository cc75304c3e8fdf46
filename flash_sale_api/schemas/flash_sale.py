from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional
from datetime import datetime
import bleach

from ..enums import FlashSaleStatus
from ..services.pricing import derive_status
from ..utils.time import to_naive_utc, utcnow


ALLOWED_DESCRIPTION_TAGS = ['p', 'br', 'strong', 'b', 'em', 'i', 'u', 'ul', 'ol', 'li', 'span', 'small', 'mark']


def sanitize_description(value: Optional[str]) -> Optional[str]:
    """Strip everything but basic formatting tags from a rich-text description."""
    if not value:
        return value

    return bleach.clean(
        value,
        tags=ALLOWED_DESCRIPTION_TAGS,
        attributes={},
        strip=True,
        strip_comments=True,
    )


# Product summary embedded in flash sale items
class ProductSummary(BaseModel):
    id: int
    name: str
    slug: str
    price: float
    discounted_price: Optional[float] = None
    stock: int = 0
    image: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def extract_main_image(cls, data):
        """Pick the main image url out of the images JSON column"""
        if hasattr(data, '__table__'):
            data = {column.name: getattr(data, column.name) for column in data.__table__.columns}

        if isinstance(data, dict) and 'image' not in data:
            images = data.get('images') or []
            main = next((img for img in images if img.get('is_main')), images[0] if images else None)
            data = {**data, 'image': main.get('url') if main else None}

        return data

    class Config:
        from_attributes = True


# Flash sale items
class FlashSaleItemCreate(BaseModel):
    product_id: int
    original_price: float = Field(gt=0)
    sale_price: float = Field(ge=0)
    discount_percent: int = Field(ge=0, le=100)
    total_quantity: int = Field(ge=1)
    max_per_user: int = Field(ge=1)
    priority: int = Field(default=0, ge=0)


class FlashSaleItemUpdate(BaseModel):
    original_price: Optional[float] = Field(default=None, gt=0)
    sale_price: Optional[float] = Field(default=None, ge=0)
    discount_percent: Optional[int] = Field(default=None, ge=0, le=100)
    total_quantity: Optional[int] = Field(default=None, ge=1)
    remaining_quantity: Optional[int] = Field(default=None, ge=0)
    max_per_user: Optional[int] = Field(default=None, ge=1)
    priority: Optional[int] = Field(default=None, ge=0)

    @field_validator('*')
    @classmethod
    def reject_null(cls, v):
        # omitted fields keep their values; every item column is required
        if v is None:
            raise ValueError("Field may be omitted but not set to null")
        return v


class FlashSaleItemsReplace(BaseModel):
    items: List[FlashSaleItemCreate]


class FlashSaleItemResponse(BaseModel):
    id: int
    flash_sale_id: int
    product_id: int
    original_price: float
    sale_price: float
    discount_percent: int
    total_quantity: int
    remaining_quantity: int
    sold_quantity: int = 0
    max_per_user: int
    priority: int
    created_at: datetime
    updated_at: datetime
    product: Optional[ProductSummary] = None

    @model_validator(mode='after')
    def fill_sold_quantity(self):
        self.sold_quantity = self.total_quantity - self.remaining_quantity
        return self

    class Config:
        from_attributes = True


class FlashSaleItemListResponse(BaseModel):
    items: List[FlashSaleItemResponse]


# Flash sales
class FlashSaleBase(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    banner_image: Optional[str] = None
    max_quantity_per_user: Optional[int] = Field(default=None, ge=1)
    min_order_amount: Optional[float] = Field(default=None, ge=0)

    @field_validator('description', mode='before')
    @classmethod
    def sanitize_html_description(cls, v):
        return sanitize_description(v)


class FlashSaleCreate(FlashSaleBase):
    start_time: datetime
    end_time: datetime

    @field_validator('start_time', 'end_time')
    @classmethod
    def normalize_timezone(cls, v):
        return to_naive_utc(v)


class FlashSaleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    banner_image: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    max_quantity_per_user: Optional[int] = Field(default=None, ge=1)
    min_order_amount: Optional[float] = Field(default=None, ge=0)

    @field_validator('description', mode='before')
    @classmethod
    def sanitize_html_description(cls, v):
        return sanitize_description(v)

    @field_validator('name', 'start_time', 'end_time')
    @classmethod
    def reject_null(cls, v):
        # optional columns may be cleared with null, these may not
        if v is None:
            raise ValueError("Field may be omitted but not set to null")
        return v

    @field_validator('start_time', 'end_time')
    @classmethod
    def normalize_timezone(cls, v):
        return to_naive_utc(v)


class FlashSaleResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    banner_image: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: FlashSaleStatus
    # status the clock says right now; `status` only moves on writes
    effective_status: Optional[FlashSaleStatus] = None
    max_quantity_per_user: Optional[int] = None
    min_order_amount: Optional[float] = None
    created_at: datetime
    updated_at: datetime
    items: List[FlashSaleItemResponse] = []

    @model_validator(mode='after')
    def fill_effective_status(self):
        self.effective_status = derive_status(utcnow(), self.start_time, self.end_time)
        return self

    class Config:
        from_attributes = True


class ActiveFlashSaleResponse(BaseModel):
    flash_sale: Optional[FlashSaleResponse] = None


class MessageResponse(BaseModel):
    message: str


# Listing
class FlashSaleListFilter(BaseModel):
    """Query options accepted by the admin flash sale listing."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    status: Optional[FlashSaleStatus] = None
    search: Optional[str] = None

    @field_validator('status', mode='before')
    @classmethod
    def all_means_no_filter(cls, v):
        if v is None or (isinstance(v, str) and v.upper() == "ALL"):
            return None
        return v.upper() if isinstance(v, str) else v

    @field_validator('search')
    @classmethod
    def blank_search_means_no_filter(cls, v):
        if v is None:
            return v
        return v.strip() or None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class FlashSaleListResponse(BaseModel):
    flash_sales: List[FlashSaleResponse]
    pagination: PaginationMeta
