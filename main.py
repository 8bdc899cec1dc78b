import os
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

import auth as auth_service
import cart as cart_store
import database
import messages as message_store
import orders as order_workflow
import products as product_store
import reviews as review_store
from auth import authenticate_user, get_current_user, issue_token, public_user, register_user, require_admin
from database import ensure_indexes, get_db, serialize_doc
from errors import InvalidInput, StoreError
from schemas import Color, MessageSubject, PaymentMethod, ShippingAddress, Size
from seed import seed_products

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        ensure_indexes(database.db)
    yield


app = FastAPI(title="Bedding Store API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error handling

def _is_messaging(request: Request) -> bool:
    return request.url.path.startswith("/messages")


def _error(request: Request, status_code: int, message: str, errors: Optional[list] = None) -> JSONResponse:
    body: Dict[str, Any] = {"message": message}
    if _is_messaging(request):
        body = {"success": False, **body}
    if errors is not None:
        body["errors"] = errors
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return _error(request, exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error(request, exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [{"field": ".".join(str(p) for p in e["loc"][1:]), "message": e["msg"]} for e in exc.errors()]
    return _error(request, 400, "Validation failed", errors)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(request, 500, "Server error")


# Routes
@app.get("/")
def read_root():
    return {
        "message": "Bedding Store API is running",
        "version": "1.0.0",
        "endpoints": {
            "auth": "/auth",
            "users": "/users",
            "products": "/products",
            "cart": "/cart",
            "orders": "/orders",
            "messages": "/messages",
        },
    }


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = database.db.name
            response["collections"] = database.db.list_collection_names()
        else:
            response["database"] = "❌ Not Available"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Auth models
class RegisterInput(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginInput(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Dict[str, Any]


# Auth
@app.post("/auth/register", response_model=TokenResponse)
def register(payload: RegisterInput, db=Depends(get_db)):
    user = register_user(db, payload.name, payload.email, payload.password)
    return TokenResponse(access_token=issue_token(user), user=public_user(user))


@app.post("/auth/login", response_model=TokenResponse)
def login(payload: LoginInput, db=Depends(get_db)):
    user = authenticate_user(db, payload.email, payload.password)
    return TokenResponse(access_token=issue_token(user), user=public_user(user))


@app.get("/auth/me")
def me(current_user: dict = Depends(get_current_user)):
    return current_user


# Users
class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)


@app.get("/users/profile")
def get_profile(current_user: dict = Depends(get_current_user)):
    return current_user


@app.put("/users/profile", response_model=TokenResponse)
def update_profile(data: ProfileUpdate, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    user = auth_service.update_profile(db, current_user["id"], data.name, data.email, data.password)
    return TokenResponse(access_token=issue_token(user), user=public_user(user))


@app.get("/users/orders")
def user_orders(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return serialize_doc(order_workflow.list_my_orders(db, current_user["id"]))


# Products
class ProductIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    brand: str = Field(..., min_length=1, max_length=50)
    category: str
    description: str = Field(..., min_length=1, max_length=1000)
    price: float = Field(..., ge=0)
    countInStock: int = Field(..., ge=0)
    image: Optional[str] = None
    images: Optional[List[str]] = None
    material: Optional[str] = None
    threadCount: Optional[int] = Field(None, ge=0)
    care: Optional[str] = None
    sizes: Optional[List[Size]] = None
    colors: Optional[List[Color]] = None
    features: Optional[List[str]] = None
    slug: Optional[str] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    brand: Optional[str] = Field(None, min_length=1, max_length=50)
    category: Optional[str] = None
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    price: Optional[float] = Field(None, ge=0)
    countInStock: Optional[int] = Field(None, ge=0)
    image: Optional[str] = None
    images: Optional[List[str]] = None
    material: Optional[str] = None
    threadCount: Optional[int] = Field(None, ge=0)
    care: Optional[str] = None
    sizes: Optional[List[Size]] = None
    colors: Optional[List[Color]] = None
    features: Optional[List[str]] = None
    slug: Optional[str] = None


@app.get("/products")
def list_products(keyword: Optional[str] = None, page: int = 1, limit: int = product_store.DEFAULT_PAGE_SIZE, db=Depends(get_db)):
    result = product_store.list_products(db, keyword=keyword, page=page, limit=limit)
    result["products"] = serialize_doc(result["products"])
    return result


@app.get("/products/category/{category}")
def list_products_by_category(category: str, db=Depends(get_db)):
    return serialize_doc(product_store.products_by_category(db, category))


@app.get("/products/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    return serialize_doc(product_store.get_product(db, product_id))


@app.post("/products", status_code=201)
def create_product(data: ProductIn, current_user: dict = Depends(require_admin), db=Depends(get_db)):
    product = product_store.create_product(db, data.model_dump(), user_id=current_user["id"])
    return serialize_doc(product)


@app.put("/products/{product_id}")
def update_product(product_id: str, data: ProductUpdate, current_user: dict = Depends(require_admin), db=Depends(get_db)):
    product = product_store.update_product(db, product_id, data.model_dump(exclude_unset=True))
    return serialize_doc(product)


@app.delete("/products/{product_id}")
def delete_product(product_id: str, current_user: dict = Depends(require_admin), db=Depends(get_db)):
    product_store.delete_product(db, product_id)
    return {"message": "Product removed successfully"}


# Reviews
class ReviewIn(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=5, max_length=500)


@app.post("/products/{product_id}/reviews", status_code=201)
def create_review(product_id: str, data: ReviewIn, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    review_store.create_review(db, current_user, product_id, data.rating, data.comment.strip())
    return {"message": "Review added"}


@app.get("/products/{product_id}/reviews")
def get_reviews(product_id: str, db=Depends(get_db)):
    return review_store.list_reviews(db, product_id)


@app.get("/products/{product_id}/can-review")
def can_review(product_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return review_store.review_eligibility(db, current_user["id"], product_id)


@app.delete("/products/{product_id}/reviews/{review_id}")
def delete_review(product_id: str, review_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    review_store.delete_review(db, current_user["id"], bool(current_user.get("is_admin")), product_id, review_id)
    return {"message": "Review removed"}


# Cart
class CartItemIn(BaseModel):
    productId: str
    quantity: int = Field(1, ge=1, le=10)
    size: Optional[str] = None
    color: Optional[str] = None


class CartItemUpdate(BaseModel):
    productId: str
    quantity: int


@app.get("/cart")
def get_cart(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return cart_store.get_cart(db, current_user["id"])


@app.post("/cart")
def add_to_cart(item: CartItemIn, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    if not ObjectId.is_valid(item.productId):
        raise InvalidInput("Invalid product id")
    return cart_store.add_item(db, current_user["id"], item.productId, item.quantity, item.size, item.color)


@app.put("/cart")
def update_cart(item: CartItemUpdate, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return cart_store.update_item(db, current_user["id"], item.productId, item.quantity)


@app.delete("/cart/{product_id}")
def remove_from_cart(product_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return cart_store.remove_item(db, current_user["id"], product_id)


@app.delete("/cart")
def clear_cart(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return cart_store.clear_cart(db, current_user["id"])


# Orders
class OrderItemIn(BaseModel):
    product: str
    name: str
    image: Optional[str] = None
    price: float = Field(..., ge=0)
    qty: int = Field(..., ge=1)


class OrderIn(BaseModel):
    orderItems: List[OrderItemIn]
    shippingAddress: ShippingAddress
    paymentMethod: PaymentMethod
    itemsPrice: float = Field(..., ge=0)
    taxPrice: float = Field(0, ge=0)
    shippingPrice: float = Field(0, ge=0)
    totalPrice: float = Field(..., ge=0)
    paymentScreenshot: Optional[str] = None


class StatusIn(BaseModel):
    status: str


@app.post("/orders", status_code=201)
def create_order(payload: OrderIn, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    order = order_workflow.create_order(
        db,
        current_user["id"],
        [i.model_dump() for i in payload.orderItems],
        payload.shippingAddress.model_dump(),
        payload.paymentMethod,
        payload.itemsPrice,
        payload.taxPrice,
        payload.shippingPrice,
        payload.totalPrice,
        payload.paymentScreenshot,
    )
    return serialize_doc(order)


@app.get("/orders/myorders")
def my_orders(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return serialize_doc(order_workflow.list_my_orders(db, current_user["id"]))


@app.get("/orders")
def all_orders(current_user: dict = Depends(require_admin), db=Depends(get_db)):
    return order_workflow.list_orders(db)


@app.get("/orders/{order_id}")
def get_order(order_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return order_workflow.get_order(db, order_id, current_user["id"], bool(current_user.get("is_admin")))


@app.put("/orders/{order_id}/pay")
def pay_order(order_id: str, payment_result: Dict[str, Any] = Body(default={}), current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return serialize_doc(order_workflow.mark_paid(db, order_id, payment_result))


@app.put("/orders/{order_id}/deliver")
def deliver_order(order_id: str, current_user: dict = Depends(require_admin), db=Depends(get_db)):
    return serialize_doc(order_workflow.mark_delivered(db, order_id))


@app.put("/orders/{order_id}/status")
def update_order_status(order_id: str, data: StatusIn, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    order = order_workflow.update_status(db, current_user["id"], bool(current_user.get("is_admin")), order_id, data.status)
    return serialize_doc(order)


@app.delete("/orders/{order_id}")
def delete_order(order_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    order_workflow.delete_order(db, current_user["id"], bool(current_user.get("is_admin")), order_id)
    return {"message": "Order deleted successfully"}


# Messages
class MessageIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    subject: MessageSubject
    message: str = Field(..., min_length=10, max_length=1000)


class MessageReply(BaseModel):
    reply: str = Field(..., min_length=1, max_length=1000)


@app.post("/messages", status_code=201)
def send_message(data: MessageIn, db=Depends(get_db)):
    created = message_store.create_message(db, data.name, data.email, data.subject, data.message)
    return {
        "success": True,
        "message": "Message sent successfully! We will get back to you soon.",
        "data": created,
    }


@app.get("/messages")
def get_messages(page: int = 1, limit: int = message_store.DEFAULT_LIMIT, current_user: dict = Depends(require_admin), db=Depends(get_db)):
    result = message_store.list_messages(db, page, limit)
    result["messages"] = serialize_doc(result["messages"])
    return {"success": True, "data": result}


@app.put("/messages/{message_id}/read")
def read_message(message_id: str, current_user: dict = Depends(require_admin), db=Depends(get_db)):
    message = message_store.mark_as_read(db, message_id)
    return {"success": True, "message": "Message marked as read", "data": serialize_doc(message)}


@app.put("/messages/{message_id}/reply")
def reply_message(message_id: str, data: MessageReply, current_user: dict = Depends(require_admin), db=Depends(get_db)):
    message = message_store.reply_to_message(db, message_id, data.reply)
    return {"success": True, "message": "Reply saved", "data": serialize_doc(message)}


@app.delete("/messages/{message_id}")
def remove_message(message_id: str, current_user: dict = Depends(require_admin), db=Depends(get_db)):
    message_store.delete_message(db, message_id)
    return {"success": True, "message": "Message deleted successfully"}


# Seed sample catalog
@app.post("/seed")
def seed(current_user: dict = Depends(require_admin), db=Depends(get_db)):
    created = seed_products(db, user_id=current_user["id"])
    return {"status": "ok", "created": created}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
