from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from shared.database import Base


class Seller(Base):
    """Seller profile with the location used for shipping quotes."""

    __tablename__ = "sellers"

    seller_id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, default="")
    city = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    latitude = Column(Float, nullable=True)  # Saved coordinates skip seller geocoding
    longitude = Column(Float, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    products = relationship("Product", back_populates="seller")


class Product(Base):
    """Catalog entry. The cart only reads it."""

    __tablename__ = "products"

    product_id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    price = Column(Float, nullable=True)  # Nullable so corrupted catalog rows are representable
    image = Column(String(1000), nullable=True)
    category = Column(String(255), nullable=True)
    stock = Column(Integer, nullable=False, default=0)
    seller_id = Column(String(64), ForeignKey("sellers.seller_id"), nullable=True, index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    seller = relationship("Seller", back_populates="products")
