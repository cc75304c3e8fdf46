from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from ..enums import DeviceType, FlashSaleStatus


def derive_status(now: datetime, start_time: datetime, end_time: datetime) -> FlashSaleStatus:
    """
    Status of a sale window at `now`. Both bounds are inclusive.
    """

    if start_time <= now <= end_time:
        return FlashSaleStatus.ACTIVE
    if now > end_time:
        return FlashSaleStatus.ENDED
    return FlashSaleStatus.UPCOMING


def round_half_up(value: float, places: int = 0) -> Decimal:
    exponent = Decimal(1).scaleb(-places)
    return Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP)


def compute_discount_percent(original_price: float, sale_price: float) -> int:
    """
    Whole-number discount, rounded half up: 100 -> 80 is 20, 3 -> 2 is 33.
    """

    if original_price <= 0:
        raise ValueError("original_price must be positive")

    percent = (original_price - sale_price) / original_price * 100
    return int(round_half_up(percent))


def compute_conversion_rate(purchases: int, views: int) -> float:
    """
    purchases / views as a percentage with two decimals. Zero views gives 0.
    """

    if not views:
        return 0.0

    return float(round_half_up(purchases / views * 100, 2))


def classify_device(user_agent: Optional[str]) -> DeviceType:
    ua = (user_agent or "").lower()

    if "ipad" in ua or "tablet" in ua or ("android" in ua and "mobile" not in ua):
        return DeviceType.TABLET
    if "mobi" in ua or "iphone" in ua or "ipod" in ua:
        return DeviceType.MOBILE
    return DeviceType.DESKTOP


def compute_average_discount(discounts: List[int]) -> float:
    """Mean discount percent with two decimals, 0 for a sale without items."""
    if not discounts:
        return 0.0

    return float(round_half_up(sum(discounts) / len(discounts), 2))
