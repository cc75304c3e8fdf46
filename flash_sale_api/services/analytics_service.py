import logging
from datetime import datetime, timedelta
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Callable, Dict, List, Optional

from ..core.security import CurrentUser
from ..enums import DeviceType
from ..models import (
    FlashSale,
    FlashSaleAnalytics,
    FlashSaleItem,
    FlashSaleItemPurchase,
    FlashSaleItemView,
)
from ..schemas.analytics import (
    DeviceBreakdown,
    FlashSaleAnalyticsSummary,
    ItemPerformance,
    TrackViewRequest,
)
from ..utils.time import utcnow
from .flash_sale_service import FlashSaleService
from .pricing import classify_device, compute_average_discount, compute_conversion_rate


logger = logging.getLogger(__name__)

TOP_SELLING_LIMIT = 5

DEVICE_COUNTERS = {
    DeviceType.MOBILE: FlashSaleAnalytics.mobile_views,
    DeviceType.TABLET: FlashSaleAnalytics.tablet_views,
    DeviceType.DESKTOP: FlashSaleAnalytics.desktop_views,
}


class FlashSaleAnalyticsService:
    """
    View tracking and analytics for flash sales.

    Tracking is best effort: it never raises, failures are logged and reported
    as a False return so the storefront request is not affected.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock


    async def track_view(
        self,
        db: AsyncSession,
        view_data: TrackViewRequest,
        user: Optional[CurrentUser] = None,
        ip_address: str = "unknown",
    ) -> bool:
        """Append a view event for a flash sale item and bump the sale's counters"""

        try:
            item = await db.get(FlashSaleItem, view_data.flash_sale_item_id)
            if item is None:
                logger.warning("View tracked for unknown flash sale item %s", view_data.flash_sale_item_id)
                return False

            flash_sale_id = item.flash_sale_id
            device_type = classify_device(view_data.user_agent)

            view = FlashSaleItemView(
                flash_sale_item_id=item.id,
                user_id=user.id if user else None,
                session_id=user.session_id if user else None,
                ip_address=ip_address,
                user_agent=view_data.user_agent or "unknown",
                device_type=device_type.value,
                created_at=view_data.timestamp or self.clock(),
            )
            db.add(view)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.warning("Error tracking flash sale view for item %s", view_data.flash_sale_item_id, exc_info=True)
            return False

        try:
            await self._increment_view_counters(db, flash_sale_id, device_type)
            await db.commit()
        except Exception:
            # the view itself is stored; counters get fixed on the next recompute
            await db.rollback()
            logger.warning("Error updating flash sale analytics for sale %s", flash_sale_id, exc_info=True)

        return True


    async def recompute_analytics(self, db: AsyncSession, flash_sale_id: int) -> FlashSaleAnalyticsSummary:
        """
        Recompute a sale's analytics from the view and purchase events.

        Each metric is its own aggregate query per window (all time, last 24
        hours, last 7 days). The stored analytics row is resynchronised with the
        all-time totals.
        """

        flash_sale = await self._get_sale(db, flash_sale_id)

        now = self.clock()
        one_day_ago = now - timedelta(days=1)
        one_week_ago = now - timedelta(days=7)

        # view statistics
        total_views = await self._count_views(db, flash_sale_id)
        today_views = await self._count_views(db, flash_sale_id, since=one_day_ago)
        week_views = await self._count_views(db, flash_sale_id, since=one_week_ago)

        # purchase statistics
        total_purchases = await self._count_purchases(db, flash_sale_id)
        today_purchases = await self._count_purchases(db, flash_sale_id, since=one_day_ago)
        week_purchases = await self._count_purchases(db, flash_sale_id, since=one_week_ago)

        # revenue statistics
        total_revenue = await self._sum_revenue(db, flash_sale_id)
        today_revenue = await self._sum_revenue(db, flash_sale_id, since=one_day_ago)
        week_revenue = await self._sum_revenue(db, flash_sale_id, since=one_week_ago)

        unique_visitors = await self._count_unique_visitors(db, flash_sale_id)
        conversion_rate = compute_conversion_rate(total_purchases, total_views)

        items = await self._item_performance(db, flash_sale)
        discounts = [item.discount_percent for item in flash_sale.items]
        avg_discount_percent = compute_average_discount(discounts)

        analytics = await self._get_or_create_analytics(db, flash_sale_id)
        analytics.total_views = total_views
        analytics.total_purchases = total_purchases
        analytics.total_revenue = total_revenue
        analytics.conversion_rate = conversion_rate
        analytics.unique_visitors = unique_visitors
        analytics.avg_discount_percent = avg_discount_percent
        devices = DeviceBreakdown(
            mobile=analytics.mobile_views or 0,
            tablet=analytics.tablet_views or 0,
            desktop=analytics.desktop_views or 0,
        )
        await db.commit()

        top_selling = sorted(
            (item for item in items if item.units_sold > 0),
            key=lambda item: (item.units_sold, item.revenue),
            reverse=True,
        )[:TOP_SELLING_LIMIT]

        return FlashSaleAnalyticsSummary(
            total_views=total_views,
            today_views=today_views,
            week_views=week_views,
            total_purchases=total_purchases,
            today_purchases=today_purchases,
            week_purchases=week_purchases,
            total_revenue=total_revenue,
            today_revenue=today_revenue,
            week_revenue=week_revenue,
            unique_visitors=unique_visitors,
            conversion_rate=conversion_rate,
            avg_discount_percent=avg_discount_percent,
            devices=devices,
            items=items,
            top_selling=top_selling,
            computed_at=now,
        )


    async def get_stored_analytics(self, db: AsyncSession, flash_sale_id: int) -> Optional[FlashSaleAnalytics]:
        """The denormalised counters row as last written, without recomputing"""
        result = await db.execute(
            select(FlashSaleAnalytics).where(FlashSaleAnalytics.flash_sale_id == flash_sale_id)
        )
        return result.scalar_one_or_none()


    # Helpers

    async def _get_sale(self, db: AsyncSession, flash_sale_id: int) -> FlashSale:
        return await FlashSaleService(clock=self.clock).get_flash_sale(db, flash_sale_id)


    async def _get_or_create_analytics(self, db: AsyncSession, flash_sale_id: int) -> FlashSaleAnalytics:
        analytics = await self.get_stored_analytics(db, flash_sale_id)

        if analytics is None:
            analytics = FlashSaleAnalytics(
                flash_sale_id=flash_sale_id,
                total_views=0,
                total_purchases=0,
                total_revenue=0,
                conversion_rate=0,
                unique_visitors=0,
                avg_discount_percent=0,
                mobile_views=0,
                desktop_views=0,
                tablet_views=0,
            )
            db.add(analytics)
            await db.flush()

        return analytics


    async def _increment_view_counters(self, db: AsyncSession, flash_sale_id: int, device_type: DeviceType) -> None:
        analytics = await self._get_or_create_analytics(db, flash_sale_id)
        device_counter = DEVICE_COUNTERS[device_type]

        # increment in SQL so concurrent views don't overwrite each other
        await db.execute(
            update(FlashSaleAnalytics)
            .where(FlashSaleAnalytics.id == analytics.id)
            .values({
                FlashSaleAnalytics.total_views: FlashSaleAnalytics.total_views + 1,
                device_counter: device_counter + 1,
            })
            .execution_options(synchronize_session=False)
        )
        await db.refresh(analytics)


    def _scoped(self, query, event_model, flash_sale_id: int, since: Optional[datetime]):
        query = query.join(FlashSaleItem, FlashSaleItem.id == event_model.flash_sale_item_id).where(
            FlashSaleItem.flash_sale_id == flash_sale_id
        )
        if since is not None:
            query = query.where(event_model.created_at >= since)
        return query


    async def _count_views(self, db: AsyncSession, flash_sale_id: int, since: Optional[datetime] = None) -> int:
        query = self._scoped(select(func.count(FlashSaleItemView.id)), FlashSaleItemView, flash_sale_id, since)
        return await db.scalar(query) or 0


    async def _count_purchases(self, db: AsyncSession, flash_sale_id: int, since: Optional[datetime] = None) -> int:
        query = self._scoped(select(func.count(FlashSaleItemPurchase.id)), FlashSaleItemPurchase, flash_sale_id, since)
        return await db.scalar(query) or 0


    async def _sum_revenue(self, db: AsyncSession, flash_sale_id: int, since: Optional[datetime] = None) -> float:
        query = self._scoped(
            select(func.coalesce(func.sum(FlashSaleItemPurchase.total_price), 0)),
            FlashSaleItemPurchase,
            flash_sale_id,
            since,
        )
        return float(await db.scalar(query) or 0.0)


    async def _count_unique_visitors(self, db: AsyncSession, flash_sale_id: int) -> int:
        query = self._scoped(
            select(func.count(func.distinct(FlashSaleItemView.user_id))),
            FlashSaleItemView,
            flash_sale_id,
            None,
        ).where(FlashSaleItemView.user_id.isnot(None))
        return await db.scalar(query) or 0


    async def _item_performance(self, db: AsyncSession, flash_sale: FlashSale) -> List[ItemPerformance]:
        view_rows = await db.execute(
            self._scoped(
                select(FlashSaleItemView.flash_sale_item_id, func.count(FlashSaleItemView.id)),
                FlashSaleItemView,
                flash_sale.id,
                None,
            ).group_by(FlashSaleItemView.flash_sale_item_id)
        )
        views: Dict[int, int] = {item_id: count for item_id, count in view_rows.all()}

        purchase_rows = await db.execute(
            self._scoped(
                select(
                    FlashSaleItemPurchase.flash_sale_item_id,
                    func.count(FlashSaleItemPurchase.id),
                    func.coalesce(func.sum(FlashSaleItemPurchase.quantity), 0),
                    func.coalesce(func.sum(FlashSaleItemPurchase.total_price), 0),
                ),
                FlashSaleItemPurchase,
                flash_sale.id,
                None,
            ).group_by(FlashSaleItemPurchase.flash_sale_item_id)
        )
        purchases = {row[0]: row[1:] for row in purchase_rows.all()}

        performance = []
        for item in flash_sale.items:
            item_views = views.get(item.id, 0)
            item_purchases, units_sold, revenue = purchases.get(item.id, (0, 0, 0.0))
            performance.append(
                ItemPerformance(
                    flash_sale_item_id=item.id,
                    product_id=item.product_id,
                    product_name=item.product.name if item.product else None,
                    views=item_views,
                    purchases=item_purchases,
                    units_sold=int(units_sold),
                    revenue=float(revenue),
                    conversion_rate=compute_conversion_rate(item_purchases, item_views),
                    remaining_quantity=item.remaining_quantity,
                )
            )

        return performance


analytics_service = FlashSaleAnalyticsService()
