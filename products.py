"""
Product store

Catalog reads and admin writes, plus the two stock primitives the order
workflow relies on. Stock is only ever changed with single-document `$inc`
updates so that concurrent requests cannot lose writes or drive it negative.
"""
import math
import re
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument

from database import create_document, get_documents, to_object_id
from errors import InvalidInput, NotFound
from schemas import CATEGORIES, Product as ProductSchema

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def slugify(text: str) -> str:
    """URL-friendly slug: lowercase, words joined by single dashes, punctuation dropped."""
    slug = str(text).lower().strip()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^\w-]+", "", slug)
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-")


def unique_slug(db, text: str, exclude_id=None) -> str:
    base = slugify(text)
    slug = base
    counter = 1
    while True:
        query: Dict[str, Any] = {"slug": slug}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        if not db["product"].find_one(query, {"_id": 1}):
            return slug
        slug = f"{base}-{counter}"
        counter += 1


def paginate(page: int, limit: int, total: int, max_limit: int = MAX_PAGE_SIZE, default_limit: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
    current_page = max(1, int(page or 1))
    per_page = max(1, min(max_limit, int(limit or default_limit)))
    total_pages = math.ceil(total / per_page) if total else 0
    return {
        "skip": (current_page - 1) * per_page,
        "limit": per_page,
        "currentPage": current_page,
        "totalPages": total_pages,
        "totalItems": total,
        "hasNextPage": current_page < total_pages,
        "hasPrevPage": current_page > 1,
    }


def find_product(db, product_id) -> Optional[Dict[str, Any]]:
    obj_id = to_object_id(product_id)
    if obj_id is None:
        return None
    return db["product"].find_one({"_id": obj_id})


def get_product(db, product_id) -> Dict[str, Any]:
    product = find_product(db, product_id)
    if not product:
        raise NotFound("Product not found")
    return product


def list_products(db, keyword: Optional[str] = None, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if keyword:
        query["name"] = {"$regex": re.escape(keyword), "$options": "i"}
    total = db["product"].count_documents(query)
    pages = paginate(page, limit, total)
    cursor = db["product"].find(query).skip(pages["skip"]).limit(pages["limit"])
    return {
        "products": list(cursor),
        "page": pages["currentPage"],
        "pages": pages["totalPages"],
        "total": total,
    }


def products_by_category(db, category: str) -> List[Dict[str, Any]]:
    query = {"category": {"$regex": f"^{re.escape(category)}$", "$options": "i"}}
    products = get_documents("product", query, database=db)
    logger.debug("Category %s matched %d products", category, len(products))
    return products


def _check_category(category: str) -> None:
    if category not in CATEGORIES:
        raise InvalidInput(f"Invalid category. Must be one of: {', '.join(CATEGORIES)}")


def create_product(db, data: Dict[str, Any], user_id: Optional[str] = None) -> Dict[str, Any]:
    data = {k: v for k, v in data.items() if v is not None}
    category = data.get("category")
    _check_category(category)
    data.setdefault("image", f"/images/{category.lower()}-sheets.jpg")
    data.setdefault("material", f"100% {category}")
    data["slug"] = unique_slug(db, data.get("slug") or data["name"])
    # Derived review fields always start from an empty review list
    data.pop("reviews", None)
    data.pop("rating", None)
    data.pop("numReviews", None)
    product = ProductSchema(user=user_id, **data)

    product_id = create_document("product", product, database=db)
    logger.info("Product %s created (%s)", product_id, product.slug)
    return db["product"].find_one({"_id": to_object_id(product_id)})


def update_product(db, product_id, changes: Dict[str, Any]) -> Dict[str, Any]:
    product = get_product(db, product_id)
    changes = {k: v for k, v in changes.items() if v is not None}
    if not changes:
        raise InvalidInput("No fields to update")
    if "category" in changes:
        _check_category(changes["category"])
    if "slug" in changes and changes["slug"] != product.get("slug"):
        changes["slug"] = unique_slug(db, changes["slug"], exclude_id=product["_id"])
    changes["updatedAt"] = datetime.now(timezone.utc)
    updated = db["product"].find_one_and_update(
        {"_id": product["_id"]},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Product %s updated", product["_id"])
    return updated


def delete_product(db, product_id) -> None:
    obj_id = to_object_id(product_id)
    res = db["product"].delete_one({"_id": obj_id}) if obj_id else None
    if not res or res.deleted_count == 0:
        raise NotFound("Product not found")
    logger.info("Product %s deleted", obj_id)


def reserve_stock(db, product_id, qty: int) -> bool:
    """Atomically take `qty` units; returns False when fewer than `qty` remain."""
    obj_id = to_object_id(product_id)
    if obj_id is None:
        return False
    res = db["product"].update_one(
        {"_id": obj_id, "countInStock": {"$gte": qty}},
        {"$inc": {"countInStock": -qty}},
    )
    return res.modified_count == 1


def restore_stock(db, product_id, qty: int) -> None:
    obj_id = to_object_id(product_id)
    if obj_id is None:
        return
    db["product"].update_one({"_id": obj_id}, {"$inc": {"countInStock": qty}})
