from sqlalchemy import Column, DateTime, Enum, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ..db.base import Base
from ..enums import FlashSaleStatus
from ..utils.time import utcnow
from .base import TimeStampMixin


class FlashSale(Base, TimeStampMixin):
    """
    Represents a flash sale event in the system.

    Attributes:
        id (int): Primary key identifier for the flash sale.
        name (str): Name of the flash sale.
        start_time (datetime): The starting datetime of the flash sale (naive UTC).
        end_time (datetime): The ending datetime of the flash sale (naive UTC).
        status (FlashSaleStatus): Status derived from the window on the last write.
            It is not refreshed on read, so it can lag behind the clock.
        max_quantity_per_user (int): Optional cap on units a user may buy across the sale.
        min_order_amount (float): Optional minimum order amount to qualify.
        items (List[FlashSaleItem]): Discounted products, highest priority first.

    """

    __tablename__ = "flash_sales"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    banner_image = Column(String(500), nullable=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(Enum(FlashSaleStatus), nullable=False, default=FlashSaleStatus.UPCOMING, index=True)
    max_quantity_per_user = Column(Integer, nullable=True)
    min_order_amount = Column(Float, nullable=True)

    # relationships
    items = relationship(
        "FlashSaleItem",
        back_populates="flash_sale",
        order_by="FlashSaleItem.priority.desc()",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    analytics = relationship(
        "FlashSaleAnalytics",
        back_populates="flash_sale",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


    def __repr__(self):
        return (
            f'<FlashSale(id={self.id}, name={self.name}, start_time={self.start_time},'
            f' end_time={self.end_time}, status={self.status})>'
        )


class FlashSaleItem(Base, TimeStampMixin):
    """ A product offered at a discount inside a flash sale, with its own stock allocation. """

    __tablename__ = "flash_sale_items"

    id = Column(Integer, primary_key=True, index=True)
    flash_sale_id = Column(Integer, ForeignKey("flash_sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    original_price = Column(Float, nullable=False)
    sale_price = Column(Float, nullable=False)
    discount_percent = Column(Integer, nullable=False)
    total_quantity = Column(Integer, nullable=False)
    remaining_quantity = Column(Integer, nullable=False)
    max_per_user = Column(Integer, nullable=False, default=1)
    priority = Column(Integer, nullable=False, default=0)

    # relationships
    flash_sale = relationship("FlashSale", back_populates="items")
    product = relationship("Product", back_populates="flash_sale_items")
    views = relationship("FlashSaleItemView", back_populates="flash_sale_item", cascade="all, delete-orphan", passive_deletes=True)
    purchases = relationship("FlashSaleItemPurchase", back_populates="flash_sale_item", cascade="all, delete-orphan", passive_deletes=True)

    # one entry per product per sale
    __table_args__ = (
        UniqueConstraint("flash_sale_id", "product_id", name="uq_flash_sale_items_sale_product"),
    )


    def __repr__(self):
        return (
            f'<FlashSaleItem(id={self.id}, flash_sale_id={self.flash_sale_id}, product_id={self.product_id},'
            f' sale_price={self.sale_price}, remaining_quantity={self.remaining_quantity})>'
        )


class FlashSaleItemView(Base):
    """ Append-only record of a storefront view of a flash sale item. """

    __tablename__ = "flash_sale_item_views"

    id = Column(Integer, primary_key=True)
    flash_sale_item_id = Column(Integer, ForeignKey("flash_sale_items.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=True, index=True)  # opaque id issued by the auth service
    session_id = Column(String, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    device_type = Column(String(20), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    flash_sale_item = relationship("FlashSaleItem", back_populates="views")


    def __repr__(self):
        return f'<FlashSaleItemView(flash_sale_item_id={self.flash_sale_item_id}, user_id={self.user_id})>'


class FlashSaleItemPurchase(Base):
    """ Append-only record of units bought at the flash sale price. """

    __tablename__ = "flash_sale_item_purchases"

    id = Column(Integer, primary_key=True)
    flash_sale_item_id = Column(Integer, ForeignKey("flash_sale_items.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=True, index=True)
    session_id = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    flash_sale_item = relationship("FlashSaleItem", back_populates="purchases")


    def __repr__(self):
        return (
            f'<FlashSaleItemPurchase(flash_sale_item_id={self.flash_sale_item_id}, quantity={self.quantity},'
            f' total_price={self.total_price})>'
        )


class FlashSaleAnalytics(Base, TimeStampMixin):
    """
    Denormalised counters for one flash sale.

    Incremented as views come in and resynchronised from the event tables when
    analytics are recomputed, so the values may drift in between.
    """

    __tablename__ = "flash_sale_analytics"

    id = Column(Integer, primary_key=True)
    flash_sale_id = Column(Integer, ForeignKey("flash_sales.id", ondelete="CASCADE"), nullable=False, unique=True)
    total_views = Column(Integer, nullable=False, default=0)
    total_purchases = Column(Integer, nullable=False, default=0)
    total_revenue = Column(Float, nullable=False, default=0)
    conversion_rate = Column(Float, nullable=False, default=0)
    unique_visitors = Column(Integer, nullable=False, default=0)
    avg_discount_percent = Column(Float, nullable=False, default=0)
    mobile_views = Column(Integer, nullable=False, default=0)
    desktop_views = Column(Integer, nullable=False, default=0)
    tablet_views = Column(Integer, nullable=False, default=0)

    flash_sale = relationship("FlashSale", back_populates="analytics")


    def __repr__(self):
        return f'<FlashSaleAnalytics(flash_sale_id={self.flash_sale_id}, total_views={self.total_views})>'
