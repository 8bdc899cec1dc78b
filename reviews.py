"""
Product reviews

Reviews are embedded in the product document. A user may review a product
once, and only after an order of theirs containing it has shipped or been
delivered. `rating` and `numReviews` are recomputed from the embedded list on
every change.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Tuple

from bson import ObjectId

from database import serialize_doc
from errors import Conflict, Forbidden, NotFound
from orders import has_reviewable_order
from products import get_product
from schemas import Review as ReviewSchema

logger = logging.getLogger(__name__)


def product_rating(reviews: Iterable[Dict[str, Any]]) -> Tuple[float, int]:
    """Mean rating and review count; a product without reviews rates 0."""
    ratings = [r["rating"] for r in reviews]
    if not ratings:
        return 0, 0
    return sum(ratings) / len(ratings), len(ratings)


def _already_reviewed(product: Dict[str, Any], user_id: str) -> bool:
    return any(r["user"] == user_id for r in product.get("reviews", []))


def _refresh_rating(db, product_id) -> None:
    """Recompute rating and numReviews from the stored reviews.

    The write only applies if no other review change landed after the read; the
    request behind that later change refreshes the figures itself.
    """
    product = db["product"].find_one({"_id": product_id}, {"reviews": 1, "reviewsVersion": 1})
    if not product:
        return
    rating, count = product_rating(product.get("reviews", []))
    db["product"].update_one(
        {"_id": product_id, "reviewsVersion": product.get("reviewsVersion")},
        {"$set": {"rating": rating, "numReviews": count, "updatedAt": datetime.now(timezone.utc)}},
    )


def review_eligibility(db, user_id: str, product_id: str) -> Dict[str, bool]:
    product = get_product(db, product_id)
    has_order = has_reviewable_order(db, user_id, str(product["_id"]))
    reviewed = _already_reviewed(product, user_id)
    return {
        "canReview": has_order and not reviewed,
        "hasEligibleOrder": has_order,
        "alreadyReviewed": reviewed,
    }


def list_reviews(db, product_id: str) -> List[Dict[str, Any]]:
    product = get_product(db, product_id)
    return serialize_doc(product.get("reviews", []))


def create_review(db, user: Dict[str, Any], product_id: str, rating: int, comment: str) -> Dict[str, Any]:
    product = get_product(db, product_id)
    user_id = user["id"]
    if _already_reviewed(product, user_id):
        raise Conflict("Product already reviewed")
    if not has_reviewable_order(db, user_id, str(product["_id"])):
        raise Forbidden("You can only review products from orders that have been shipped or delivered")

    review = ReviewSchema(
        user=user_id,
        name=user.get("name", ""),
        rating=rating,
        comment=comment,
        createdAt=datetime.now(timezone.utc),
    ).model_dump()
    review["_id"] = ObjectId()
    # One review per user, enforced in the same write that adds it
    res = db["product"].update_one(
        {"_id": product["_id"], "reviews.user": {"$ne": user_id}},
        {"$push": {"reviews": review}, "$inc": {"reviewsVersion": 1}},
    )
    if res.modified_count == 0:
        raise Conflict("Product already reviewed")
    _refresh_rating(db, product["_id"])
    logger.info("Review %s added to product %s", review["_id"], product["_id"])
    return review


def delete_review(db, actor_id: str, actor_is_admin: bool, product_id: str, review_id: str) -> None:
    product = get_product(db, product_id)
    reviews = product.get("reviews", [])
    match = next((r for r in reviews if str(r.get("_id")) == review_id), None)
    if match is None:
        raise NotFound("Review not found")
    if match["user"] != actor_id and not actor_is_admin:
        raise Forbidden("Not authorized")

    res = db["product"].update_one(
        {"_id": product["_id"], "reviews._id": match["_id"]},
        {"$pull": {"reviews": {"_id": match["_id"]}}, "$inc": {"reviewsVersion": 1}},
    )
    if res.modified_count == 0:
        raise NotFound("Review not found")
    _refresh_rating(db, product["_id"])
    logger.info("Review %s removed from product %s", review_id, product["_id"])
