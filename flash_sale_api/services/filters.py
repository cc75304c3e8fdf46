from sqlalchemy import or_
from sqlalchemy.sql.elements import ColumnElement
from typing import List

from ..models.flash_sales import FlashSale
from ..schemas.flash_sale import FlashSaleListFilter


def build_flash_sale_conditions(filters: FlashSaleListFilter) -> List[ColumnElement]:
    """
    Turn the listing filter into WHERE conditions.

    Pure: the same filter always yields the same conditions, nothing is executed.
    """

    conditions: List[ColumnElement] = []

    if filters.status is not None:
        conditions.append(FlashSale.status == filters.status)

    if filters.search:
        pattern = f"%{filters.search}%"
        conditions.append(
            or_(
                FlashSale.name.ilike(pattern),
                FlashSale.description.ilike(pattern),
            )
        )

    return conditions
