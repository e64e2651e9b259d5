"""
Starter catalog for a fresh database.

Inserted once at startup when the products table is empty, so a new install
has something to browse and Gift Buddy has something to recommend.
"""
import logging
from typing import Any, Dict, List

from database import DatabaseError, create_document, query, transaction

logger = logging.getLogger("uvicorn")

CATEGORIES: List[Dict[str, Any]] = [
    {
        "name": "Water Bottles",
        "slug": "water-bottles",
        "image": "/water-bottle.jpg",
        "subcategories": [
            {"name": "Steel Bottles", "slug": "steel-bottles"},
            {"name": "Kids Bottles", "slug": "kids-bottles"},
        ],
    },
    {
        "name": "Soft Toys",
        "slug": "soft-toys",
        "image": "/soft-toy.jpg",
        "subcategories": [{"name": "Teddy Bears", "slug": "teddy-bears"}],
    },
    {"name": "Photo Frames", "slug": "photo-frames", "image": "/photo-frame.jpg", "subcategories": []},
    {"name": "Personalized Gifts", "slug": "personalized-gifts", "image": "/personalized-gift.jpg", "subcategories": []},
    {"name": "Anniversary Gifts", "slug": "anniversary-gifts", "image": "/anniversary-gift.jpg", "subcategories": []},
    {"name": "Birthday Gifts", "slug": "birthday-gifts", "image": "/birthday-gift.jpg", "subcategories": []},
]

PRODUCTS: List[Dict[str, Any]] = [
    {
        "name": "Personalized Steel Water Bottle",
        "description": "Insulated steel bottle engraved with a name of your choice. Keeps drinks cold for 24 hours.",
        "price": 499,
        "category": "water-bottles",
        "subcategory": "Steel Bottles",
        "sizes": [{"name": "500ml", "price": 499}, {"name": "750ml", "price": 649}, {"name": "1L", "price": 799}],
        "badge": "Bestseller",
        "is_featured": True,
    },
    {
        "name": "Kids Cartoon Sipper",
        "description": "Leak-proof sipper bottle with a flip straw, sized for little hands.",
        "price": 349,
        "category": "water-bottles",
        "subcategory": "Kids Bottles",
        "is_new_arrival": True,
    },
    {
        "name": "Cuddly Teddy Bear",
        "description": "Extra soft plush teddy, a favourite gift for babies and kids.",
        "price": 599,
        "category": "soft-toys",
        "subcategory": "Teddy Bears",
        "sizes": [{"name": "1 ft", "price": 599}, {"name": "2 ft", "price": 999}, {"name": "3 ft", "price": 1499}],
        "is_featured": True,
    },
    {
        "name": "Couple Photo Frame",
        "description": "Wooden frame for two photos with a printed love quote. Perfect for an anniversary.",
        "price": 799,
        "category": "photo-frames",
        "badge": "Trending",
        "is_festival": True,
    },
    {
        "name": "Personalized Name Keychain",
        "description": "Acrylic keychain printed with any name or short message.",
        "price": 199,
        "category": "personalized-gifts",
        "is_new_arrival": True,
    },
    {
        "name": "Anniversary Love Lamp",
        "description": "Warm LED lamp with a heart cut-out and custom initials for couples.",
        "price": 1299,
        "category": "anniversary-gifts",
        "is_featured": True,
    },
    {
        "name": "Birthday Surprise Hamper",
        "description": "Chocolates, a mug and a greeting card packed in a gift box for birthdays.",
        "price": 1899,
        "category": "birthday-gifts",
        "badge": "New",
        "is_new_arrival": True,
    },
    {
        "name": "Birthday Photo Collage",
        "description": "Collage frame holding twelve photos with a happy birthday banner.",
        "price": 2499,
        "category": "birthday-gifts",
        "is_festival": True,
    },
]


def _insert_catalog(conn) -> int:
    category_ids: Dict[str, str] = {}
    for category in CATEGORIES:
        category_ids[category["slug"]] = create_document("categories", category, conn=conn)

    for product in PRODUCTS:
        row = {k: v for k, v in product.items() if k != "category"}
        row["category_id"] = category_ids[product["category"]]
        row.setdefault("images", [])
        row.setdefault("in_stock", True)
        create_document("products", row, conn=conn)
    return len(PRODUCTS)


def seed_catalog_if_empty() -> int:
    """Insert the starter catalog when there are no products. Returns rows added."""
    try:
        existing = query("SELECT COUNT(*) AS n FROM products")[0]["n"]
        if existing:
            return 0
        added = transaction(_insert_catalog)
    except DatabaseError as e:
        # a failed seed must not keep the API from starting
        logger.exception(f"Catalog seeding failed: {e.message} ({e.detail})")
        return 0
    logger.info(f"Seeded starter catalog: {len(CATEGORIES)} categories, {added} products")
    return added
