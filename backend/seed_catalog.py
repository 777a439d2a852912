"""Seed a demo print catalog (pouches and labels).

Usage:
    python seed_catalog.py          # create tables if needed, replace catalog rows
"""
from app.db.init_db import init_db
from app.db.session import SessionLocal
from app.models.catalog import Category, Product, Material, Finish

POUCH_DIMENSIONS = [
    {"name": "W", "unit": "inches", "is_required": True, "min_value": 1, "max_value": 40},
    {"name": "H", "unit": "inches", "is_required": True, "min_value": 1, "max_value": 40},
    {"name": "G", "unit": "inches", "is_required": True, "min_value": 0.5, "max_value": 10},
]
FLAT_DIMENSIONS = [
    {"name": "W", "unit": "inches", "is_required": True, "min_value": 1, "max_value": 40},
    {"name": "H", "unit": "inches", "is_required": True, "min_value": 1, "max_value": 40},
]

CATALOG = [
    {
        "category": {
            "external_id": 101, "name": "Mylar Bags", "sort_order": 1,
            "description": "Custom printed mylar bags and pouches",
            "aliases": ["mylar", "mylar pouch", "pouch bags"],
        },
        "products": [
            {"external_id": 201, "name": "Stand Up Pouch", "sort_order": 1,
             "description": "Bottom gusset pouch that stands on shelves",
             "dimension_fields": POUCH_DIMENSIONS, "base_price": 0.35},
            {"external_id": 202, "name": "Flat Pouch", "sort_order": 2,
             "description": "Three side seal lay flat pouch",
             "dimension_fields": FLAT_DIMENSIONS, "base_price": 0.22},
            {"external_id": 203, "name": "Retired Spout Pouch", "sort_order": 9,
             "description": "No longer offered", "dimension_fields": POUCH_DIMENSIONS,
             "is_active": False},
        ],
        "materials": [
            {"external_id": 301, "name": "PET", "sort_order": 1,
             "description": "Clear glossy polyester film", "thickness": "3.5 mil"},
            {"external_id": 302, "name": "Kraft", "sort_order": 2,
             "description": "Natural brown paper look", "thickness": "4 mil"},
            {"external_id": 303, "name": "Silver Foil", "sort_order": 3,
             "description": "Metallized high barrier foil", "thickness": "4.5 mil"},
        ],
        "finishes": [
            {"external_id": 401, "name": "Matte", "sort_order": 1,
             "description": "Soft touch matte lamination", "attribute": "Lamination"},
            {"external_id": 402, "name": "Gloss", "sort_order": 2,
             "description": "High shine gloss lamination", "attribute": "Lamination"},
            {"external_id": 403, "name": "Spot UV", "sort_order": 3,
             "description": "Raised glossy highlights", "attribute": "Embellishment"},
        ],
    },
    {
        "category": {
            "external_id": 102, "name": "Labels", "sort_order": 2,
            "description": "Roll and sheet labels and stickers",
            "aliases": ["stickers", "sticker labels"],
        },
        "products": [
            {"external_id": 211, "name": "Roll Label", "sort_order": 1,
             "description": "Labels on a roll for machine application",
             "dimension_fields": FLAT_DIMENSIONS, "base_price": 0.05},
        ],
        "materials": [
            {"external_id": 311, "name": "White BOPP", "sort_order": 1,
             "description": "Waterproof white film", "thickness": "2.3 mil"},
            {"external_id": 312, "name": "Silver Foil", "sort_order": 2,
             "description": "Brushed silver label stock", "thickness": "2 mil"},
        ],
        "finishes": [
            {"external_id": 411, "name": "Gloss Varnish", "sort_order": 1,
             "description": "Clear gloss coating", "attribute": "Coating"},
        ],
    },
    {
        "category": {
            "external_id": 103, "name": "Folding Cartons", "sort_order": 3,
            "description": "Paperboard boxes (paused)", "aliases": ["boxes"], "is_active": False,
        },
        "products": [],
        "materials": [],
        "finishes": [],
    },
]


def seed_catalog(db) -> int:
    """Replace every catalog row with the demo catalog. Returns the category count."""
    db.query(Finish).delete()
    db.query(Material).delete()
    db.query(Product).delete()
    db.query(Category).delete()
    db.flush()

    for group in CATALOG:
        category = Category(**{"is_active": True, **group["category"]})
        db.add(category)
        db.flush()
        for model, rows in ((Product, group["products"]), (Material, group["materials"]), (Finish, group["finishes"])):
            for row in rows:
                db.add(model(category_id=category.id, **{"is_active": True, **row}))

    db.commit()
    return len(CATALOG)


if __name__ == "__main__":
    init_db()
    db = SessionLocal()
    try:
        count = seed_catalog(db)
        print(f"✅ Seeded {count} categories")
    finally:
        db.close()
