from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from ..core.dependencies import get_db, get_optional_user
from ..core.security import CurrentUser
from ..schemas.analytics import TrackViewRequest, TrackViewResponse
from ..schemas.flash_sale import ActiveFlashSaleResponse, FlashSaleResponse
from ..services.analytics_service import analytics_service
from ..services.flash_sale_service import flash_sale_service


router = APIRouter()


def get_client_ip(request: Request) -> str:
    """First address of X-Forwarded-For, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


@router.get("/flash-sales/active", response_model=ActiveFlashSaleResponse)
async def get_active_flash_sale(
    db: AsyncSession = Depends(get_db),
):
    """
    **Get Active Flash Sale**

    Returns the flash sale currently running, with its items ordered by
    priority (highest first) and a summary of each product.

    **Returns:**

    - `{"flash_sale": {...}}` when a sale marked ACTIVE has a window containing now
    - `{"flash_sale": null}` otherwise

    **Notes:**

    - A sale's stored status only changes when an admin writes to it, so a sale
      whose window has elapsed is not returned even if it still reads ACTIVE
    """

    flash_sale = await flash_sale_service.get_active_flash_sale(db)

    if flash_sale is None:
        return ActiveFlashSaleResponse(flash_sale=None)

    return ActiveFlashSaleResponse(flash_sale=FlashSaleResponse.model_validate(flash_sale))


@router.post("/flash-sales/track-view", response_model=TrackViewResponse)
async def track_flash_sale_view(
    view_data: TrackViewRequest,
    request: Request,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """
    **Track Flash Sale View**

    Records that a storefront visitor saw a flash sale item. Works for anonymous
    visitors; the session is attached when a valid token is sent.

    **Request Body:**

    - **flash_sale_item_id**: ID of the viewed flash sale item (required)
    - **timestamp**: client-side time of the view (optional, defaults to now)
    - **user_agent**: browser user agent, used for the device split (optional)

    **Notes:**

    - Tracking is best effort: storage failures are logged and the response is
      still `{"success": true}`
    """

    await analytics_service.track_view(db, view_data, user=user, ip_address=get_client_ip(request))
    return TrackViewResponse(success=True)
