from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime

from ..utils.time import to_naive_utc
from .flash_sale import FlashSaleResponse


class TrackViewRequest(BaseModel):
    flash_sale_item_id: int
    timestamp: Optional[datetime] = None
    user_agent: Optional[str] = Field(default=None, max_length=500)

    @field_validator('timestamp')
    @classmethod
    def normalize_timezone(cls, v):
        return to_naive_utc(v)


class TrackViewResponse(BaseModel):
    success: bool = True


class DeviceBreakdown(BaseModel):
    mobile: int = 0
    tablet: int = 0
    desktop: int = 0


class ItemPerformance(BaseModel):
    flash_sale_item_id: int
    product_id: int
    product_name: Optional[str] = None
    views: int = 0
    purchases: int = 0
    units_sold: int = 0
    revenue: float = 0.0
    conversion_rate: float = 0.0
    remaining_quantity: int = 0


class FlashSaleAnalyticsSummary(BaseModel):
    total_views: int = 0
    today_views: int = 0
    week_views: int = 0
    total_purchases: int = 0
    today_purchases: int = 0
    week_purchases: int = 0
    total_revenue: float = 0.0
    today_revenue: float = 0.0
    week_revenue: float = 0.0
    unique_visitors: int = 0
    conversion_rate: float = 0.0
    avg_discount_percent: float = 0.0
    devices: DeviceBreakdown = DeviceBreakdown()
    items: List[ItemPerformance] = []
    top_selling: List[ItemPerformance] = []
    computed_at: datetime


class FlashSaleAnalyticsResponse(BaseModel):
    flash_sale: FlashSaleResponse
    analytics: FlashSaleAnalyticsSummary
