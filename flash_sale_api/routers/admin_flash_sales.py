from fastapi import APIRouter, Depends, Query, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from ..core.dependencies import get_current_admin, get_db
from ..exceptions import ValidationException
from ..schemas.analytics import FlashSaleAnalyticsResponse
from ..schemas.flash_sale import (
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
)
from ..services.analytics_service import analytics_service
from ..services.flash_sale_service import flash_sale_service


router = APIRouter(prefix="/flash-sales", dependencies=[Depends(get_current_admin)])


@router.get("", response_model=FlashSaleListResponse)
async def list_flash_sales(
    page: int = Query(1, description="Page number, starting at 1"),
    limit: int = Query(10, description="Flash sales per page (max 100)"),
    status_filter: Optional[str] = Query(None, alias="status", description="UPCOMING, ACTIVE, ENDED or ALL"),
    search: Optional[str] = Query(None, description="Case-insensitive match on name or description"),
    db: AsyncSession = Depends(get_db),
):
    """
    **List Flash Sales**

    Paginated list of flash sales, newest first, each with its items.

    **Query Parameters:**

    - **page**: page number (default: 1)
    - **limit**: page size (default: 10, max: 100)
    - **status**: stored status to filter on; `ALL` or absent returns every status
    - **search**: text matched against name and description

    **Returns:**

    - `flash_sales`: the page of flash sales
    - `pagination`: page, limit, total and total_pages
    """

    try:
        filters = FlashSaleListFilter(page=page, limit=limit, status=status_filter, search=search)
    except ValidationError as e:
        raise ValidationException("Validation error", details=e.errors(include_url=False, include_context=False))

    flash_sales, pagination = await flash_sale_service.list_flash_sales(db, filters)
    return FlashSaleListResponse(
        flash_sales=[FlashSaleResponse.model_validate(flash_sale) for flash_sale in flash_sales],
        pagination=pagination,
    )


@router.post("", response_model=FlashSaleResponse, status_code=status.HTTP_201_CREATED)
async def create_flash_sale(
    sale_data: FlashSaleCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    **Create Flash Sale**

    **Request Body:**

    - **name**: flash sale name (required)
    - **description**: rich-text description, sanitised (optional)
    - **banner_image**: banner image URL (optional)
    - **start_time** / **end_time**: sale window; end must be after start (required)
    - **max_quantity_per_user**: cap on units per user across the sale (optional)
    - **min_order_amount**: minimum order amount (optional)

    **Returns:**

    - The created flash sale. Its status is ACTIVE when now falls inside the
      window, ENDED when the window is over and UPCOMING otherwise.
    """

    return await flash_sale_service.create_flash_sale(db, sale_data)


@router.get("/{flash_sale_id}", response_model=FlashSaleResponse)
async def get_flash_sale(
    flash_sale_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    **Get Flash Sale**

    Flash sale details with items ordered by priority (highest first).
    """

    return await flash_sale_service.get_flash_sale(db, flash_sale_id)


@router.put("/{flash_sale_id}", response_model=FlashSaleResponse)
async def update_flash_sale(
    flash_sale_id: int,
    sale_data: FlashSaleUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    **Update Flash Sale**

    Partial update; omitted fields keep their values. The status is derived
    again from the resulting window on every update.
    """

    return await flash_sale_service.update_flash_sale(db, flash_sale_id, sale_data)


@router.delete("/{flash_sale_id}", response_model=MessageResponse)
async def delete_flash_sale(
    flash_sale_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    **Delete Flash Sale**

    Permanently deletes the flash sale, its items, their view and purchase
    history and its analytics. This action cannot be undone.
    """

    await flash_sale_service.delete_flash_sale(db, flash_sale_id)
    return MessageResponse(message="Flash sale deleted successfully")


@router.get("/{flash_sale_id}/items", response_model=FlashSaleItemListResponse)
async def list_flash_sale_items(
    flash_sale_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    **List Flash Sale Items**

    Items of a flash sale ordered by priority (highest first).
    """

    items = await flash_sale_service.list_items(db, flash_sale_id)
    return FlashSaleItemListResponse(items=[FlashSaleItemResponse.model_validate(item) for item in items])


@router.post("/{flash_sale_id}/items", response_model=FlashSaleItemResponse, status_code=status.HTTP_201_CREATED)
async def add_flash_sale_item(
    flash_sale_id: int,
    item_data: FlashSaleItemCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    **Add Product to Flash Sale**

    **Request Body:**

    - **product_id**: product to discount (required, once per sale)
    - **original_price** / **sale_price**: sale price must be lower (required)
    - **discount_percent**: must equal the rounded discount of the two prices (required)
    - **total_quantity**: units allocated to the sale (required, >= 1)
    - **max_per_user**: units one user may buy (required, >= 1)
    - **priority**: display order, highest first (optional, default 0)

    **Returns:**

    - The created item; `remaining_quantity` starts at `total_quantity`
    """

    return await flash_sale_service.add_item(db, flash_sale_id, item_data)


@router.put("/{flash_sale_id}/items", response_model=FlashSaleItemListResponse)
async def replace_flash_sale_items(
    flash_sale_id: int,
    items_data: FlashSaleItemsReplace,
    db: AsyncSession = Depends(get_db),
):
    """
    **Replace Flash Sale Items**

    Replaces every item of the flash sale with the submitted list in a single
    transaction. Existing items and their view/purchase history are removed.
    If any submitted item is invalid nothing changes.
    """

    items = await flash_sale_service.replace_items(db, flash_sale_id, items_data.items)
    return FlashSaleItemListResponse(items=[FlashSaleItemResponse.model_validate(item) for item in items])


@router.get("/{flash_sale_id}/items/{item_id}", response_model=FlashSaleItemResponse)
async def get_flash_sale_item(
    flash_sale_id: int,
    item_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    **Get Flash Sale Item**
    """

    return await flash_sale_service.get_item(db, flash_sale_id, item_id)


@router.put("/{flash_sale_id}/items/{item_id}", response_model=FlashSaleItemResponse)
async def update_flash_sale_item(
    flash_sale_id: int,
    item_id: int,
    item_data: FlashSaleItemUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    **Update Flash Sale Item**

    Partial update. Prices are validated together and the discount percent is
    recalculated when they change. Changing `total_quantity` does not touch
    `remaining_quantity`; send `remaining_quantity` explicitly to restock.
    """

    return await flash_sale_service.update_item(db, flash_sale_id, item_id, item_data)


@router.delete("/{flash_sale_id}/items/{item_id}", response_model=MessageResponse)
async def delete_flash_sale_item(
    flash_sale_id: int,
    item_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    **Delete Flash Sale Item**

    Removes the item with its view and purchase history.
    """

    await flash_sale_service.delete_item(db, flash_sale_id, item_id)
    return MessageResponse(message="Flash sale item deleted successfully")


@router.get("/{flash_sale_id}/analytics", response_model=FlashSaleAnalyticsResponse)
async def get_flash_sale_analytics(
    flash_sale_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    **Get Flash Sale Analytics**

    Recomputes the analytics of a flash sale from its view and purchase events
    and returns them with the sale.

    **Returns:**

    - views, purchases and revenue for all time, the last 24 hours and the last 7 days
    - unique visitors (signed-in users), conversion rate (%), device split
    - per-item performance and the top selling items
    """

    flash_sale = await flash_sale_service.get_flash_sale(db, flash_sale_id)
    analytics = await analytics_service.recompute_analytics(db, flash_sale_id)

    return FlashSaleAnalyticsResponse(
        flash_sale=FlashSaleResponse.model_validate(flash_sale),
        analytics=analytics,
    )
