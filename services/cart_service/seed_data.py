import logging

from sqlalchemy.orm import Session

from services.cart_service.catalog_repository import CatalogRepository

logger = logging.getLogger(__name__)

# (seller_id, name, city, address, latitude, longitude)
SAMPLE_SELLERS = [
    ("SELL-NBO-001", "Westlands Woodworks", "Nairobi", "Waiyaki Way, Westlands", -1.2676, 36.8108),
    ("SELL-MSA-001", "Coast Cane & Rattan", "Mombasa", "Moi Avenue", -4.0435, 39.6682),
    # No saved coordinates: quotes geocode the city
    ("SELL-KSM-001", "Lakeside Interiors", "Kisumu", "Oginga Odinga Street", None, None),
]

# (product_id, seller_id, name, description, category, price, stock)
SAMPLE_PRODUCTS = [
    ("PROD-SOFA-001", "SELL-NBO-001", "Three Seater Sofa", "Mvule frame, linen upholstery", "Living Room", 45000, 8),
    ("PROD-TBL-001", "SELL-NBO-001", "Coffee Table", "Solid cypress with shelf", "Living Room", 12500, 15),
    ("PROD-BED-001", "SELL-MSA-001", "Rattan Bed Frame", "Queen size, hand woven", "Bedroom", 38000, 4),
    ("PROD-CHR-001", "SELL-MSA-001", "Lounge Chair", "Cane seat with cushions", "Living Room", 9500, 20),
    ("PROD-DSK-001", "SELL-KSM-001", "Study Desk", "Mahogany veneer, two drawers", "Office", 16000, 10),
    ("PROD-WRD-001", "SELL-KSM-001", "Two Door Wardrobe", "Pine, sliding doors", "Bedroom", 27000, 6),
]


def seed_catalog(db: Session) -> int:
    """Seed database with sample sellers and products. Returns how many products were created."""
    logger.info("Seeding catalog...")
    repo = CatalogRepository(db)

    for seller_id, name, city, address, latitude, longitude in SAMPLE_SELLERS:
        if repo.get_seller(seller_id):
            logger.info(f"Seller {seller_id} already exists, skipping")
            continue
        repo.create_seller(name, city, address, latitude, longitude, seller_id=seller_id)

    created = 0
    for product_id, seller_id, name, description, category, price, stock in SAMPLE_PRODUCTS:
        if repo.get_product(product_id):
            logger.info(f"Product {product_id} already exists, skipping")
            continue
        repo.create_product(
            name,
            price,
            seller_id=seller_id,
            description=description,
            category=category,
            stock=stock,
            product_id=product_id,
        )
        created += 1

    db.commit()
    logger.info(f"Seeded {created} products")
    return created
