from sqlalchemy import Column, Integer, String, Boolean, Float, JSON
from sqlalchemy.orm import relationship

from ..db.base import Base
from .base import TimeStampMixin


class Product(Base, TimeStampMixin):
    """
    Catalogue product as seen by the flash sale engine.

    Products are owned by the catalogue, only the columns needed to reference
    and display them inside a flash sale are mapped here.
    """

    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True, index=True)
    price = Column(Float, nullable=False)
    discounted_price = Column(Float, default=0)
    stock = Column(Integer, nullable=False, default=0)
    images = Column(JSON)  # Stores array of image objects with url, alt and is_main flag
    is_active = Column(Boolean, default=True)

    # Relationships
    flash_sale_items = relationship("FlashSaleItem", back_populates="product")


    def __repr__(self):
        return f"<Product(id={self.id}, slug={self.slug}, price={self.price})>"
