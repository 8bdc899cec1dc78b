"""Sample bedding catalog. Run `python seed.py` or POST /seed as an admin on an empty store."""
import logging
from typing import Optional

from products import create_product

logger = logging.getLogger(__name__)

SAMPLE_PRODUCTS = [
    {
        "name": "Luxury Egyptian Cotton Sheet Set",
        "image": "/images/cotton-sheets.jpg",
        "description": "Premium 1000 thread count Egyptian cotton sheets for ultimate comfort and luxury.",
        "brand": "LuxurySleep",
        "category": "Cotton",
        "price": 299.99,
        "countInStock": 25,
        "material": "100% Egyptian Cotton",
        "threadCount": 1000,
        "sizes": ["Queen", "King", "California King"],
        "colors": [
            {"name": "White", "hexCode": "#FFFFFF"},
            {"name": "Cream", "hexCode": "#F5F5DC"},
            {"name": "Navy", "hexCode": "#000080"},
        ],
        "features": ["Hypoallergenic", "Deep Pocket", "Wrinkle Resistant"],
    },
    {
        "name": "Organic Bamboo Comfort Sheets",
        "image": "/images/bamboo-sheets.jpg",
        "description": "Eco-friendly bamboo fiber sheets that are naturally antimicrobial and temperature regulating.",
        "brand": "EcoSleep",
        "category": "Bamboo",
        "price": 199.99,
        "countInStock": 30,
        "material": "100% Bamboo Fiber",
        "threadCount": 400,
        "sizes": ["Full", "Queen", "King"],
        "colors": [
            {"name": "Natural", "hexCode": "#F5F5DC"},
            {"name": "Sage Green", "hexCode": "#87A96B"},
        ],
        "features": ["Temperature Regulating", "Antimicrobial", "Moisture Wicking"],
    },
    {
        "name": "Mulberry Silk Sheet Set",
        "image": "/images/silk-sheets.jpg",
        "description": "Pure mulberry silk sheets for the ultimate in luxury and skin-friendly sleeping.",
        "brand": "SilkDreams",
        "category": "Silk",
        "price": 449.99,
        "countInStock": 15,
        "material": "100% Mulberry Silk",
        "threadCount": 600,
        "sizes": ["Queen", "King"],
        "colors": [
            {"name": "Champagne", "hexCode": "#F7E7CE"},
            {"name": "Ivory", "hexCode": "#FFFFF0"},
            {"name": "Charcoal", "hexCode": "#36454F"},
        ],
        "features": ["Hypoallergenic", "Temperature Regulating"],
    },
    {
        "name": "French Linen Sheet Set",
        "image": "/images/linen-sheets.jpg",
        "description": "Stonewashed French linen that gets softer with every wash.",
        "brand": "LinenLoft",
        "category": "Linen",
        "price": 179.99,
        "countInStock": 40,
        "material": "100% French Linen",
        "sizes": ["Queen", "King"],
        "colors": [
            {"name": "Natural Flax", "hexCode": "#E6D690"},
            {"name": "Stone Gray", "hexCode": "#928E85"},
            {"name": "Dusty Rose", "hexCode": "#DCAE96"},
        ],
        "features": ["Breathable", "Stonewashed"],
    },
    {
        "name": "Cooling Microfiber Sheet Set",
        "image": "/images/microfiber-sheets.jpg",
        "description": "Brushed microfiber sheets that stay cool and resist wrinkles.",
        "brand": "CoolRest",
        "category": "Microfiber",
        "price": 89.99,
        "countInStock": 50,
        "sizes": ["Twin", "Full", "Queen", "King"],
        "colors": [
            {"name": "White", "hexCode": "#FFFFFF"},
            {"name": "Light Blue", "hexCode": "#ADD8E6"},
            {"name": "Gray", "hexCode": "#808080"},
        ],
        "features": ["Wrinkle Resistant", "Deep Pocket"],
    },
]


def seed_products(db, user_id: Optional[str] = None) -> int:
    """Insert the sample catalog when the product collection is empty; returns how many were created."""
    if db["product"].count_documents({}) > 0:
        logger.info("Product collection not empty, skipping seed")
        return 0
    for data in SAMPLE_PRODUCTS:
        create_product(db, dict(data), user_id=user_id)
    logger.info("Seeded %d products", len(SAMPLE_PRODUCTS))
    return len(SAMPLE_PRODUCTS)


if __name__ == "__main__":
    from database import get_db

    logging.basicConfig(level=logging.INFO)
    seed_products(get_db())
