import pytest
from datetime import datetime, timedelta

from flash_sale_api.enums import DeviceType, FlashSaleStatus
from flash_sale_api.services.pricing import (
    classify_device,
    compute_average_discount,
    compute_conversion_rate,
    compute_discount_percent,
    derive_status,
)


NOW = datetime(2026, 1, 28, 12, 0, 0)


@pytest.mark.parametrize(
    "start, end, expected",
    [
        (NOW - timedelta(hours=1), NOW + timedelta(hours=1), FlashSaleStatus.ACTIVE),
        (NOW, NOW + timedelta(hours=1), FlashSaleStatus.ACTIVE),
        (NOW - timedelta(hours=1), NOW, FlashSaleStatus.ACTIVE),
        (NOW - timedelta(hours=2), NOW - timedelta(hours=1), FlashSaleStatus.ENDED),
        (NOW + timedelta(hours=1), NOW + timedelta(hours=2), FlashSaleStatus.UPCOMING),
    ],
)
def test_derive_status(start, end, expected):
    assert derive_status(NOW, start, end) == expected


@pytest.mark.parametrize(
    "original, sale, expected",
    [
        (100000, 80000, 20),
        (3, 2, 33),
        (3, 1, 67),
        (8, 7, 13),     # 12.5 rounds half up
        (200, 199, 1),  # 0.5 rounds half up
        (100, 0, 100),
    ],
)
def test_compute_discount_percent(original, sale, expected):
    assert compute_discount_percent(original, sale) == expected


def test_compute_discount_percent_rejects_zero_price():
    with pytest.raises(ValueError):
        compute_discount_percent(0, 0)


@pytest.mark.parametrize(
    "purchases, views, expected",
    [
        (0, 0, 0),
        (5, 0, 0),
        (2, 10, 20.0),
        (5, 100, 5.0),
        (1, 3, 33.33),
        (2, 3, 66.67),
    ],
)
def test_compute_conversion_rate(purchases, views, expected):
    assert compute_conversion_rate(purchases, views) == expected


@pytest.mark.parametrize(
    "discounts, expected",
    [
        ([], 0.0),
        ([20, 25, 50], 31.67),
        # 161 / 8 = 20.125 rounds up, not to the even 20.12
        ([21, 20, 20, 20, 20, 20, 20, 20], 20.13),
    ],
)
def test_compute_average_discount(discounts, expected):
    assert compute_average_discount(discounts) == expected


@pytest.mark.parametrize(
    "user_agent, expected",
    [
        ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148", DeviceType.MOBILE),
        ("Mozilla/5.0 (Linux; Android 14; Pixel 8) Mobile Safari/537.36", DeviceType.MOBILE),
        ("Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X)", DeviceType.TABLET),
        ("Mozilla/5.0 (Linux; Android 13; SM-X200) Safari/537.36", DeviceType.TABLET),
        ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0", DeviceType.DESKTOP),
        (None, DeviceType.DESKTOP),
        ("unknown", DeviceType.DESKTOP),
    ],
)
def test_classify_device(user_agent, expected):
    assert classify_device(user_agent) == expected
