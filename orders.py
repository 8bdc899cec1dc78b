"""
Order workflow

Orders are created from a list of items after every item has been checked
against live stock. Stock is then taken with one conditional decrement per
product; if another order wins a race for the last units, the units already
taken by this request are put back and the order fails as a whole.

Status moves along pending -> processing -> shipped -> delivered, or to
cancelled. Cancelling (or deleting an order that was never cancelled) returns
the ordered quantities to stock exactly once.
"""
import logging
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument

from cart import reset_cart
from database import create_document, serialize_doc, to_object_id
from errors import Forbidden, InsufficientStock, InvalidInput, NotFound
from products import find_product, reserve_stock, restore_stock
from schemas import ORDER_STATUSES, REVIEWABLE_STATUSES, Order as OrderSchema

logger = logging.getLogger(__name__)

PRICE_TOLERANCE = 0.01


def _requested_quantities(order_items: List[Dict[str, Any]]) -> "OrderedDict[str, int]":
    totals: "OrderedDict[str, int]" = OrderedDict()
    for item in order_items:
        totals[item["product"]] = totals.get(item["product"], 0) + int(item["qty"])
    return totals


def _check_totals(items_price, tax_price, shipping_price, total_price) -> None:
    # itemsPrice is the client's cart snapshot and is stored as sent
    if abs(items_price + tax_price + shipping_price - total_price) > PRICE_TOLERANCE:
        raise InvalidInput("Total price does not match items, tax and shipping")


def _restore_items(db, order: Dict[str, Any]) -> None:
    for item in order.get("orderItems", []):
        restore_stock(db, item["product"], item["qty"])
    logger.info("Stock restored for order %s", order["_id"])


def _load(db, order_id) -> Dict[str, Any]:
    obj_id = to_object_id(order_id)
    order = db["order"].find_one({"_id": obj_id}) if obj_id else None
    if not order:
        raise NotFound("Order not found")
    return order


def _check_actor(order: Dict[str, Any], actor_id: str, actor_is_admin: bool, action: str) -> None:
    if not actor_is_admin and order["user"] != actor_id:
        raise Forbidden(f"Not authorized to {action} this order")


def _with_user(db, order: Dict[str, Any]) -> Dict[str, Any]:
    out = serialize_doc(order)
    user_id = to_object_id(order.get("user"))
    user = db["user"].find_one({"_id": user_id}, {"name": 1, "email": 1}) if user_id else None
    out["user"] = serialize_doc(user) if user else {"id": order.get("user")}
    return out


def create_order(
    db,
    user_id: str,
    order_items: List[Dict[str, Any]],
    shipping_address: Dict[str, Any],
    payment_method: str,
    items_price: float,
    tax_price: float,
    shipping_price: float,
    total_price: float,
    payment_screenshot: Optional[str] = None,
) -> Dict[str, Any]:
    if not order_items:
        raise InvalidInput("No order items")
    if payment_method == "JazzCash" and not payment_screenshot:
        raise InvalidInput("Please upload a payment screenshot for JazzCash payment.")
    _check_totals(items_price, tax_price, shipping_price, total_price)

    # Validate every item before touching any stock
    requested = _requested_quantities(order_items)
    products = {}
    for item in order_items:
        product = find_product(db, item["product"])
        if not product:
            raise NotFound(f"Product not found: {item.get('name') or item['product']}")
        qty = requested[item["product"]]
        available = product.get("countInStock", 0)
        if qty > available:
            raise InsufficientStock(
                f"Not enough stock for {product['name']}. Only {available} items available, but {qty} requested.",
                available=available,
                requested=qty,
            )
        products[item["product"]] = product

    reserved = []
    for product_id, qty in requested.items():
        if reserve_stock(db, product_id, qty):
            reserved.append((product_id, qty))
            continue
        for taken_id, taken_qty in reserved:
            restore_stock(db, taken_id, taken_qty)
        logger.warning("Stock reservation lost a race on product %s; released %d items", product_id, len(reserved))
        current = find_product(db, product_id) or {}
        available = current.get("countInStock", 0)
        raise InsufficientStock(
            f"Not enough stock for {products[product_id]['name']}. Only {available} items available, but {qty} requested.",
            available=available,
            requested=qty,
        )

    order = OrderSchema(
        user=user_id,
        orderItems=[{**item, "product": str(products[item["product"]]["_id"])} for item in order_items],
        shippingAddress=shipping_address,
        paymentMethod=payment_method,
        itemsPrice=items_price,
        taxPrice=tax_price,
        shippingPrice=shipping_price,
        totalPrice=total_price,
        paymentScreenshot=payment_screenshot,
    )
    order_id = create_document("order", order, database=db)

    reset_cart(db, user_id)
    logger.info("Order %s created for user %s (%d items)", order_id, user_id, len(order_items))
    return db["order"].find_one({"_id": to_object_id(order_id)})


def get_order(db, order_id, actor_id: str, actor_is_admin: bool) -> Dict[str, Any]:
    order = _load(db, order_id)
    _check_actor(order, actor_id, actor_is_admin, "view")
    return _with_user(db, order)


def list_my_orders(db, user_id: str) -> List[Dict[str, Any]]:
    return list(db["order"].find({"user": user_id}).sort("createdAt", -1))


def list_orders(db) -> List[Dict[str, Any]]:
    return [_with_user(db, o) for o in db["order"].find({}).sort("createdAt", -1)]


def mark_paid(db, order_id, payment_result: Dict[str, Any]) -> Dict[str, Any]:
    order = _load(db, order_id)
    now = datetime.now(timezone.utc)
    updated = db["order"].find_one_and_update(
        {"_id": order["_id"]},
        {"$set": {"isPaid": True, "paidAt": now, "paymentResult": payment_result, "updatedAt": now}},
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Order %s marked paid", order["_id"])
    return updated


def mark_delivered(db, order_id) -> Dict[str, Any]:
    order = _load(db, order_id)
    now = datetime.now(timezone.utc)
    updated = db["order"].find_one_and_update(
        {"_id": order["_id"]},
        {"$set": {"isDelivered": True, "deliveredAt": now, "updatedAt": now}},
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Order %s marked delivered", order["_id"])
    return updated


def update_status(db, actor_id: str, actor_is_admin: bool, order_id, new_status: str) -> Dict[str, Any]:
    order = _load(db, order_id)
    _check_actor(order, actor_id, actor_is_admin, "update")
    if new_status not in ORDER_STATUSES:
        raise InvalidInput("Invalid order status")

    now = datetime.now(timezone.utc)
    changes: Dict[str, Any] = {"status": new_status, "updatedAt": now}
    if new_status == "delivered":
        changes["isDelivered"] = True
        changes["deliveredAt"] = now

    if new_status == "cancelled":
        # Only the request that actually flips the status restores stock
        previous = db["order"].find_one_and_update(
            {"_id": order["_id"], "status": {"$ne": "cancelled"}},
            {"$set": changes},
            return_document=ReturnDocument.BEFORE,
        )
        if previous:
            _restore_items(db, previous)
    else:
        db["order"].update_one({"_id": order["_id"]}, {"$set": changes})

    logger.info("Order %s status updated to %s by %s", order["_id"], new_status, "admin" if actor_is_admin else "customer")
    return db["order"].find_one({"_id": order["_id"]})


def delete_order(db, actor_id: str, actor_is_admin: bool, order_id) -> None:
    order = _load(db, order_id)
    _check_actor(order, actor_id, actor_is_admin, "delete")
    if not actor_is_admin and order["status"] != "cancelled":
        raise InvalidInput("You can only delete cancelled orders. Please cancel the order first.")

    deleted = db["order"].find_one_and_delete({"_id": order["_id"]})
    if not deleted:
        raise NotFound("Order not found")
    if deleted["status"] != "cancelled":
        _restore_items(db, deleted)
    logger.info("Order %s deleted by %s", order["_id"], "admin" if actor_is_admin else "customer")


def has_reviewable_order(db, user_id: str, product_id: str) -> bool:
    return db["order"].find_one({
        "user": user_id,
        "status": {"$in": REVIEWABLE_STATUSES},
        "orderItems.product": product_id,
    }) is not None
