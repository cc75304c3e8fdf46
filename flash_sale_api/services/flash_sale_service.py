import logging
import math
from datetime import datetime
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from typing import Callable, List, Optional, Tuple

from ..enums import FlashSaleStatus
from ..exceptions import ConflictException, NotFoundException, ValidationException
from ..models import (
    FlashSale,
    FlashSaleAnalytics,
    FlashSaleItem,
    FlashSaleItemPurchase,
    FlashSaleItemView,
    Product,
)
from ..schemas.flash_sale import (
    FlashSaleCreate,
    FlashSaleItemCreate,
    FlashSaleItemUpdate,
    FlashSaleListFilter,
    FlashSaleUpdate,
    PaginationMeta,
)
from ..utils.time import utcnow
from .filters import build_flash_sale_conditions
from .pricing import compute_discount_percent, derive_status


logger = logging.getLogger(__name__)


def _with_items():
    return selectinload(FlashSale.items).selectinload(FlashSaleItem.product)


def validate_item_pricing(original_price: float, sale_price: float, discount_percent: Optional[int] = None) -> int:
    """
    Check a sale price against its original price and return the discount percent.

    If the caller supplied a discount percent it must equal the computed one.
    """

    if sale_price >= original_price:
        raise ValidationException("Sale price must be lower than the original price")

    calculated_discount = compute_discount_percent(original_price, sale_price)

    if discount_percent is not None and discount_percent != calculated_discount:
        raise ValidationException(
            "Discount percent does not match the prices",
            details={"expected": calculated_discount, "received": discount_percent},
        )

    return calculated_discount


class FlashSaleService:

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock


    # Flash sales

    async def _get_sale(self, db: AsyncSession, flash_sale_id: int, with_items: bool = False) -> FlashSale:
        stmt = select(FlashSale).where(FlashSale.id == flash_sale_id)

        if with_items:
            stmt = stmt.options(_with_items()).execution_options(populate_existing=True)

        result = await db.execute(stmt)
        flash_sale = result.scalar_one_or_none()

        if flash_sale is None:
            raise NotFoundException("Flash sale not found")

        return flash_sale


    async def get_flash_sale(self, db: AsyncSession, flash_sale_id: int) -> FlashSale:
        """Get a flash sale with its items, highest priority first"""
        return await self._get_sale(db, flash_sale_id, with_items=True)


    async def list_flash_sales(
        self,
        db: AsyncSession,
        filters: FlashSaleListFilter
    ) -> Tuple[List[FlashSale], PaginationMeta]:
        """List flash sales newest first, filtered and paginated"""

        conditions = build_flash_sale_conditions(filters)

        count_query = select(func.count()).select_from(FlashSale).where(*conditions)
        total = await db.scalar(count_query) or 0

        query = (
            select(FlashSale)
            .where(*conditions)
            .options(_with_items())
            .order_by(FlashSale.created_at.desc(), FlashSale.id.desc())
            .offset(filters.offset)
            .limit(filters.limit)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        flash_sales = result.scalars().all()

        pagination = PaginationMeta(
            page=filters.page,
            limit=filters.limit,
            total=total,
            total_pages=math.ceil(total / filters.limit),
        )
        return list(flash_sales), pagination


    async def create_flash_sale(self, db: AsyncSession, sale_data: FlashSaleCreate) -> FlashSale:
        if sale_data.start_time >= sale_data.end_time:
            raise ValidationException("End time must be after start time")

        flash_sale = FlashSale(
            name=sale_data.name,
            description=sale_data.description,
            banner_image=sale_data.banner_image,
            start_time=sale_data.start_time,
            end_time=sale_data.end_time,
            max_quantity_per_user=sale_data.max_quantity_per_user,
            min_order_amount=sale_data.min_order_amount,
            status=derive_status(self.clock(), sale_data.start_time, sale_data.end_time),
        )

        db.add(flash_sale)
        await db.commit()

        logger.info("Created flash sale %s (%s) with status %s", flash_sale.id, flash_sale.name, flash_sale.status.value)
        return await self.get_flash_sale(db, flash_sale.id)


    async def update_flash_sale(self, db: AsyncSession, flash_sale_id: int, sale_data: FlashSaleUpdate) -> FlashSale:
        """
        Partially update a flash sale and re-derive its status.

        Window fields that are not supplied keep their stored values. An
        explicit null clears an optional field.
        """

        flash_sale = await self._get_sale(db, flash_sale_id)
        update_data = sale_data.model_dump(exclude_unset=True)

        start_time = update_data.get("start_time", flash_sale.start_time)
        end_time = update_data.get("end_time", flash_sale.end_time)

        if start_time >= end_time:
            raise ValidationException("End time must be after start time")

        for field, value in update_data.items():
            setattr(flash_sale, field, value)

        flash_sale.status = derive_status(self.clock(), start_time, end_time)
        await db.commit()

        return await self.get_flash_sale(db, flash_sale_id)


    async def delete_flash_sale(self, db: AsyncSession, flash_sale_id: int) -> None:
        """
        Delete a flash sale with its items, their view and purchase history and
        its analytics row, all in one transaction.
        """

        await self._get_sale(db, flash_sale_id)

        try:
            await self._delete_items_with_history(db, flash_sale_id)
            await db.execute(
                delete(FlashSaleAnalytics)
                .where(FlashSaleAnalytics.flash_sale_id == flash_sale_id)
                .execution_options(synchronize_session=False)
            )
            await db.execute(
                delete(FlashSale)
                .where(FlashSale.id == flash_sale_id)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        # drop stale instances so later lookups in this session hit the database
        db.expunge_all()
        logger.info("Deleted flash sale %s", flash_sale_id)


    async def get_active_flash_sale(self, db: AsyncSession) -> Optional[FlashSale]:
        """
        The sale marked ACTIVE whose window contains now, or None.

        Only one is expected to be active at a time; if several overlap the one
        that started last wins.
        """

        now = self.clock()
        query = (
            select(FlashSale)
            .where(
                FlashSale.status == FlashSaleStatus.ACTIVE,
                FlashSale.start_time <= now,
                FlashSale.end_time >= now,
            )
            .options(_with_items())
            .order_by(FlashSale.start_time.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return result.scalars().first()


    # Flash sale items

    async def list_items(self, db: AsyncSession, flash_sale_id: int) -> List[FlashSaleItem]:
        await self._get_sale(db, flash_sale_id)

        query = (
            select(FlashSaleItem)
            .where(FlashSaleItem.flash_sale_id == flash_sale_id)
            .options(selectinload(FlashSaleItem.product))
            .order_by(FlashSaleItem.priority.desc(), FlashSaleItem.id)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return list(result.scalars().all())


    async def get_item(self, db: AsyncSession, flash_sale_id: int, item_id: int) -> FlashSaleItem:
        await self._get_sale(db, flash_sale_id)

        query = (
            select(FlashSaleItem)
            .where(FlashSaleItem.id == item_id)
            .options(selectinload(FlashSaleItem.product))
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        item = result.scalar_one_or_none()

        # an item of another sale is reported the same way as a missing one
        if item is None or item.flash_sale_id != flash_sale_id:
            raise NotFoundException("Flash sale item not found")

        return item


    async def add_item(self, db: AsyncSession, flash_sale_id: int, item_data: FlashSaleItemCreate) -> FlashSaleItem:
        await self._get_sale(db, flash_sale_id)
        await self._ensure_products_exist(db, [item_data.product_id])

        existing_query = select(FlashSaleItem.id).where(
            FlashSaleItem.flash_sale_id == flash_sale_id,
            FlashSaleItem.product_id == item_data.product_id,
        )
        if await db.scalar(existing_query) is not None:
            raise ConflictException("Product already exists in this flash sale")

        discount_percent = validate_item_pricing(
            item_data.original_price, item_data.sale_price, item_data.discount_percent
        )

        item = self._build_item(flash_sale_id, item_data, discount_percent)
        db.add(item)

        try:
            await db.commit()
        except IntegrityError:
            # lost a race against a concurrent insert of the same product
            await db.rollback()
            raise ConflictException("Product already exists in this flash sale")

        return await self.get_item(db, flash_sale_id, item.id)


    async def update_item(
        self,
        db: AsyncSession,
        flash_sale_id: int,
        item_id: int,
        item_data: FlashSaleItemUpdate
    ) -> FlashSaleItem:
        """
        Partially update an item.

        Prices are validated together using stored values for the side not
        supplied, and the discount percent follows them. Changing total_quantity
        leaves remaining_quantity alone unless it is sent explicitly.
        """

        item = await self.get_item(db, flash_sale_id, item_id)
        update_data = item_data.model_dump(exclude_unset=True)

        original_price = update_data.get("original_price", item.original_price)
        sale_price = update_data.get("sale_price", item.sale_price)

        if {"original_price", "sale_price", "discount_percent"} & update_data.keys():
            update_data["discount_percent"] = validate_item_pricing(
                original_price, sale_price, update_data.get("discount_percent")
            )

        total_quantity = update_data.get("total_quantity", item.total_quantity)
        remaining_quantity = update_data.get("remaining_quantity", item.remaining_quantity)

        if remaining_quantity > total_quantity:
            raise ValidationException(
                "Remaining quantity cannot exceed total quantity",
                details={"total_quantity": total_quantity, "remaining_quantity": remaining_quantity},
            )

        for field, value in update_data.items():
            setattr(item, field, value)

        await db.commit()
        return await self.get_item(db, flash_sale_id, item_id)


    async def delete_item(self, db: AsyncSession, flash_sale_id: int, item_id: int) -> None:
        await self.get_item(db, flash_sale_id, item_id)

        try:
            await db.execute(
                delete(FlashSaleItemPurchase)
                .where(FlashSaleItemPurchase.flash_sale_item_id == item_id)
                .execution_options(synchronize_session=False)
            )
            await db.execute(
                delete(FlashSaleItemView)
                .where(FlashSaleItemView.flash_sale_item_id == item_id)
                .execution_options(synchronize_session=False)
            )
            await db.execute(
                delete(FlashSaleItem)
                .where(FlashSaleItem.id == item_id)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        db.expunge_all()


    async def replace_items(
        self,
        db: AsyncSession,
        flash_sale_id: int,
        items_data: List[FlashSaleItemCreate]
    ) -> List[FlashSaleItem]:
        """
        Replace every item of a sale with a new set.

        All new items are validated first; the old items (with their history)
        are removed and the new ones inserted in a single transaction, so a
        failure leaves the previous set untouched.
        """

        await self._get_sale(db, flash_sale_id)

        product_ids = [item_data.product_id for item_data in items_data]
        duplicates = sorted({pid for pid in product_ids if product_ids.count(pid) > 1})
        if duplicates:
            raise ConflictException("Duplicate products in request", details={"product_ids": duplicates})

        await self._ensure_products_exist(db, product_ids)

        new_items = [
            self._build_item(
                flash_sale_id,
                item_data,
                validate_item_pricing(item_data.original_price, item_data.sale_price, item_data.discount_percent),
            )
            for item_data in items_data
        ]

        try:
            await self._delete_items_with_history(db, flash_sale_id)
            db.expunge_all()
            db.add_all(new_items)
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictException("Product already exists in this flash sale")
        except Exception:
            await db.rollback()
            raise

        logger.info("Replaced items of flash sale %s with %d items", flash_sale_id, len(new_items))
        return await self.list_items(db, flash_sale_id)


    # Helpers

    def _build_item(self, flash_sale_id: int, item_data: FlashSaleItemCreate, discount_percent: int) -> FlashSaleItem:
        return FlashSaleItem(
            flash_sale_id=flash_sale_id,
            product_id=item_data.product_id,
            original_price=item_data.original_price,
            sale_price=item_data.sale_price,
            discount_percent=discount_percent,
            total_quantity=item_data.total_quantity,
            remaining_quantity=item_data.total_quantity,
            max_per_user=item_data.max_per_user,
            priority=item_data.priority,
        )


    async def _ensure_products_exist(self, db: AsyncSession, product_ids: List[int]) -> None:
        if not product_ids:
            return

        result = await db.execute(select(Product.id).where(Product.id.in_(product_ids)))
        existing_product_ids = {row[0] for row in result.all()}

        missing_ids = sorted(set(product_ids) - existing_product_ids)
        if missing_ids:
            message = "Product not found" if len(product_ids) == 1 else f"Products not found: {missing_ids}"
            raise NotFoundException(message)


    async def _delete_items_with_history(self, db: AsyncSession, flash_sale_id: int) -> None:
        item_ids = select(FlashSaleItem.id).where(FlashSaleItem.flash_sale_id == flash_sale_id)

        await db.execute(
            delete(FlashSaleItemPurchase)
            .where(FlashSaleItemPurchase.flash_sale_item_id.in_(item_ids))
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            delete(FlashSaleItemView)
            .where(FlashSaleItemView.flash_sale_item_id.in_(item_ids))
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            delete(FlashSaleItem)
            .where(FlashSaleItem.flash_sale_id == flash_sale_id)
            .execution_options(synchronize_session=False)
        )


flash_sale_service = FlashSaleService()
