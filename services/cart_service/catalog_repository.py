import logging
import math
import re
from typing import Dict, Iterable, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from services.cart_service.errors import InvalidInputError, InvalidStateError, ProductNotFoundError
from services.cart_service.models import Product, Seller

logger = logging.getLogger(__name__)

PRODUCT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def validate_product_id(product_id: Optional[str]) -> str:
    """Reject ids that cannot name a catalog entry."""
    if not product_id or not isinstance(product_id, str) or not PRODUCT_ID_PATTERN.match(product_id):
        raise InvalidInputError("Invalid product id")
    return product_id


def has_valid_price(product: Product) -> bool:
    price = product.price
    return isinstance(price, (int, float)) and not math.isnan(price) and price >= 0


class CatalogRepository:
    """Read access to products and sellers, plus the writes seed data and seller profiles need."""

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    def get_product(self, product_id: str) -> Optional[Product]:
        """Get product by ID."""
        return self.db.get(Product, product_id)

    def get_products(self, product_ids: Iterable[str]) -> Dict[str, Product]:
        """Products keyed by id; unknown ids are absent from the result."""
        ids = list(set(product_ids))
        if not ids:
            return {}
        products = self.db.query(Product).filter(Product.product_id.in_(ids)).all()
        return {p.product_id: p for p in products}

    def get_priced_product(self, product_id: str) -> Product:
        """Product that can be put in a cart: it exists and carries a usable price."""
        validate_product_id(product_id)
        product = self.get_product(product_id)
        if product is None:
            logger.warning(f"Product {product_id} not found")
            raise ProductNotFoundError(product_id)
        if not has_valid_price(product):
            logger.error(
                f"Product {product_id} has invalid price {product.price!r}",
                extra={"product_id": product_id},
            )
            raise InvalidStateError("Product has invalid price")
        return product

    def get_seller(self, seller_id: str) -> Optional[Seller]:
        return self.db.get(Seller, seller_id)

    def create_seller(
        self,
        name: str,
        city: Optional[str] = None,
        address: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        seller_id: Optional[str] = None,
    ) -> Seller:
        seller = Seller(
            seller_id=seller_id or f"SELL-{uuid4().hex[:12].upper()}",
            name=name,
            city=city,
            address=address,
            latitude=latitude,
            longitude=longitude,
        )
        self.db.add(seller)
        self.db.flush()
        logger.info(f"Created seller {seller.seller_id}: {name} ({city})")
        return seller

    def create_product(
        self,
        name: str,
        price: Optional[float],
        seller_id: Optional[str] = None,
        description: str = "",
        category: str = "",
        image: str = "",
        stock: int = 0,
        product_id: Optional[str] = None,
    ) -> Product:
        """Create a new product."""
        product = Product(
            product_id=product_id or f"PROD-{uuid4().hex[:12].upper()}",
            name=name,
            description=description,
            price=price,
            image=image,
            category=category,
            stock=stock,
            seller_id=seller_id,
        )
        self.db.add(product)
        self.db.flush()
        logger.info(f"Created product {product.product_id}: {name}, price: {price}")
        return product

    def update_seller_location(
        self,
        seller_id: str,
        city: str,
        address: str,
        latitude: Optional[float],
        longitude: Optional[float],
    ) -> Seller:
        """Upsert the seller's location. Coordinates are stored only as a complete pair."""
        seller = self.get_seller(seller_id)
        if seller is None:
            seller = Seller(seller_id=seller_id, name="")
            self.db.add(seller)

        seller.city = city
        seller.address = address
        if latitude is not None and longitude is not None:
            seller.latitude, seller.longitude = latitude, longitude
        else:
            seller.latitude = seller.longitude = None

        self.db.flush()
        logger.info(f"Updated location for seller {seller_id}: {city}")
        return seller
