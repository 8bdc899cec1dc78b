"""
Cart store

One cart document per user, created lazily on the first add. Line items keep
the price the product had when it was last added; the cart total is always
recomputed from the items before the cart is written.

Every write is conditioned on the `version` the change was computed from. A
write that finds the cart changed underneath it re-reads and re-applies the
change, so overlapping requests for one user never lose each other's updates,
whichever process serves them.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional

from pymongo.errors import DuplicateKeyError

from database import create_document, serialize_doc, to_object_id
from errors import Conflict, InsufficientStock, NotFound
from products import find_product
from schemas import Cart as CartSchema

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5


def cart_total(items: Iterable[Dict[str, Any]]) -> float:
    return round(sum(float(it["price"]) * int(it["quantity"]) for it in items), 2)


def empty_cart() -> Dict[str, Any]:
    return {"items": [], "totalPrice": 0}


def populate(db, cart: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize a cart with each item's `product` replaced by the current product document."""
    out = serialize_doc(cart)
    items = []
    for it in cart.get("items", []):
        prod = find_product(db, it["product"])
        items.append({**serialize_doc(it), "product": serialize_doc(prod) if prod else None})
    out["items"] = items
    return out


def _save(db, cart: Dict[str, Any]) -> bool:
    """Write the cart if nobody else has since the read; returns False otherwise."""
    cart["totalPrice"] = cart_total(cart["items"])
    read_version = cart.get("version")
    now = datetime.now(timezone.utc)
    if "_id" in cart:
        res = db["cart"].update_one(
            {"_id": cart["_id"], "version": read_version},
            {"$set": {
                "items": cart["items"],
                "totalPrice": cart["totalPrice"],
                "updatedAt": now,
                "version": (read_version or 0) + 1,
            }},
        )
        if res.matched_count == 0:
            return False
    else:
        new_cart = CartSchema(user=cart["user"], items=cart["items"], totalPrice=cart["totalPrice"], version=1)
        try:
            cart_id = create_document("cart", new_cart, database=db)
        except DuplicateKeyError:
            # Another request created this user's cart first
            return False
        cart["_id"] = to_object_id(cart_id)
    cart["version"] = (read_version or 0) + 1
    cart["updatedAt"] = now
    return True


def _mutate(db, user_id: str, change: Callable[[Dict[str, Any]], None], create: bool = False) -> Dict[str, Any]:
    """Apply `change` to the user's stored cart and save it, retrying on concurrent writes."""
    for attempt in range(1, MAX_ATTEMPTS + 1):
        cart = db["cart"].find_one({"user": user_id})
        if cart is None:
            if not create:
                raise NotFound("Cart not found")
            cart = {"user": user_id, "items": [], "totalPrice": 0}
        change(cart)
        if _save(db, cart):
            return cart
        logger.info("Cart of user %s changed during update (attempt %d), retrying", user_id, attempt)
    logger.warning("Giving up on cart update for user %s after %d attempts", user_id, MAX_ATTEMPTS)
    raise Conflict("Cart is being updated by another request, please retry")


def _find_index(cart: Dict[str, Any], product_id: str) -> int:
    for i, it in enumerate(cart.get("items", [])):
        if it["product"] == product_id:
            return i
    return -1


def get_cart(db, user_id: str) -> Dict[str, Any]:
    cart = db["cart"].find_one({"user": user_id})
    if not cart:
        return empty_cart()
    return populate(db, cart)


def add_item(db, user_id: str, product_id: str, quantity: int, size: Optional[str] = None, color: Optional[str] = None) -> Dict[str, Any]:
    product = find_product(db, product_id)
    if not product:
        raise NotFound("Product not found")
    product_id = str(product["_id"])

    def change(cart):
        index = _find_index(cart, product_id)
        in_cart = cart["items"][index]["quantity"] if index > -1 else 0
        new_quantity = in_cart + quantity
        available = product.get("countInStock", 0)
        if new_quantity > available:
            raise InsufficientStock(
                f"Not enough stock. Only {available} items available. You currently have {in_cart} in cart.",
                available=available,
                requested=new_quantity,
            )

        if index > -1:
            item = cart["items"][index]
            item["quantity"] = new_quantity
            item["price"] = product["price"]
            if size is not None:
                item["size"] = size
            if color is not None:
                item["color"] = color
        else:
            cart["items"].append({
                "product": product_id,
                "quantity": quantity,
                "price": product["price"],
                "size": size,
                "color": color,
            })

    return populate(db, _mutate(db, user_id, change, create=True))


def update_item(db, user_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
    def change(cart):
        index = _find_index(cart, product_id)
        if index == -1:
            raise NotFound("Item not found in cart")

        if quantity <= 0:
            cart["items"].pop(index)
            return
        product = find_product(db, product_id)
        if not product:
            raise NotFound("Product not found")
        available = product.get("countInStock", 0)
        if quantity > available:
            raise InsufficientStock(
                f"Not enough stock. Only {available} items available.",
                available=available,
                requested=quantity,
            )
        cart["items"][index]["quantity"] = quantity

    return populate(db, _mutate(db, user_id, change))


def remove_item(db, user_id: str, product_id: str) -> Dict[str, Any]:
    def change(cart):
        cart["items"] = [it for it in cart["items"] if it["product"] != product_id]

    return populate(db, _mutate(db, user_id, change))


def clear_cart(db, user_id: str) -> Dict[str, Any]:
    def change(cart):
        cart["items"] = []

    return serialize_doc(_mutate(db, user_id, change))


def reset_cart(db, user_id: str) -> None:
    """Empty the user's cart if one exists; used after an order is placed."""
    db["cart"].update_one(
        {"user": user_id},
        {"$set": {"items": [], "totalPrice": 0, "updatedAt": datetime.now(timezone.utc)}, "$inc": {"version": 1}},
    )
