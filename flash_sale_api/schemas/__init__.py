from .flash_sale import (
    ActiveFlashSaleResponse,
    FlashSaleCreate,
    FlashSaleItemCreate,
    FlashSaleItemListResponse,
    FlashSaleItemResponse,
    FlashSaleItemsReplace,
    FlashSaleItemUpdate,
    FlashSaleListFilter,
    FlashSaleListResponse,
    FlashSaleResponse,
    FlashSaleUpdate,
    MessageResponse,
    PaginationMeta,
    ProductSummary,
)
from .analytics import (
    DeviceBreakdown,
    FlashSaleAnalyticsResponse,
    FlashSaleAnalyticsSummary,
    ItemPerformance,
    TrackViewRequest,
    TrackViewResponse,
)


__all__ = [
    # flash sale schemas
    "ActiveFlashSaleResponse",
    "FlashSaleCreate",
    "FlashSaleItemCreate",
    "FlashSaleItemListResponse",
    "FlashSaleItemResponse",
    "FlashSaleItemsReplace",
    "FlashSaleItemUpdate",
    "FlashSaleListFilter",
    "FlashSaleListResponse",
    "FlashSaleResponse",
    "FlashSaleUpdate",
    "MessageResponse",
    "PaginationMeta",
    "ProductSummary",

    # analytics schemas
    "DeviceBreakdown",
    "FlashSaleAnalyticsResponse",
    "FlashSaleAnalyticsSummary",
    "ItemPerformance",
    "TrackViewRequest",
    "TrackViewResponse",
]
