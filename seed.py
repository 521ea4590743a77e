"""
Bootstrap data: the store admin account and a small demo catalog.

    python seed.py admin            # create the admin user if missing
    python seed.py products         # insert demo products into an empty catalog
    python seed.py all
"""
import argparse
from typing import Optional

import structlog

from auth import hash_password
from config import ADMIN_EMAIL, ADMIN_PASSWORD
from database import create_document, db, ensure_indexes
from schemas import Product as ProductSchema, User as UserSchema

logger = structlog.get_logger(__name__)

DEMO_PRODUCTS = [
    {
        "name": "Cloud Nine Baby Blanket",
        "description": "Chunky chenille blanket, soft enough for naps and stroller rides.",
        "price": 65,
        "category": "Blankets",
        "images": ["https://images.unsplash.com/photo-1584992236310-6edddc08acff"],
        "discount": 10,
        "days_to_make": 7,
        "shipping_cost": 8,
    },
    {
        "name": "Amigurumi Bunny",
        "description": "Hand-stitched cotton bunny with safety eyes.",
        "price": 28,
        "category": "Toys",
        "images": ["https://images.unsplash.com/photo-1559454403-b8fb88521f11"],
        "days_to_make": 4,
        "shipping_cost": 4.5,
    },
    {
        "name": "Granny Square Cardigan",
        "description": "Colour-blocked cardigan made to your measurements.",
        "price": 120,
        "category": "Apparel",
        "images": ["https://images.unsplash.com/photo-1620799140408-edc6dcb6d633"],
        "days_to_make": 14,
        "shipping_cost": 10,
    },
    {
        "name": "Daisy Bucket Hat",
        "description": "Breathable cotton bucket hat with appliqué daisies.",
        "price": 35,
        "category": "Accessories",
        "images": ["https://images.unsplash.com/photo-1521369909029-2afed882baee"],
        "discount": 15,
        "days_to_make": 3,
        "shipping_cost": 5,
    },
]


def create_admin(email: str = ADMIN_EMAIL, password: str = ADMIN_PASSWORD, name: str = "Admin User") -> Optional[str]:
    """Create the admin account; returns None when it already exists."""
    email = email.strip().lower()
    if db["user"].find_one({"email": email}):
        logger.info("admin_exists", email=email)
        return None
    admin = UserSchema(
        email=email,
        password_hash=hash_password(password),
        name=name,
        role="admin",
        avatar="https://ui-avatars.com/api/?background=d946ef&color=fff&name=Admin",
    )
    admin_id = create_document("user", admin)
    logger.info("admin_created", email=email, user_id=admin_id)
    return admin_id


def seed_products() -> int:
    if db["product"].count_documents({}) > 0:
        logger.info("products_exist", count=db["product"].count_documents({}))
        return 0
    for p in DEMO_PRODUCTS:
        create_document("product", ProductSchema(**p))
    logger.info("products_seeded", count=len(DEMO_PRODUCTS))
    return len(DEMO_PRODUCTS)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Seed the storefront database")
    parser.add_argument("target", choices=["admin", "products", "all"])
    parser.add_argument("--email", default=ADMIN_EMAIL)
    parser.add_argument("--password", default=ADMIN_PASSWORD)
    args = parser.parse_args(argv)

    ensure_indexes()
    if args.target in ("admin", "all"):
        create_admin(args.email, args.password)
    if args.target in ("products", "all"):
        seed_products()


if __name__ == "__main__":
    main()
