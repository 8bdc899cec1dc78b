"""
Database Schemas

MongoDB collection schemas for the bedding store, defined as Pydantic models.
Each Pydantic model represents a collection in your database.
Model name lowercased is the collection name.

References between documents (user, product) are stored as string ids.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, EmailStr

CATEGORIES = ["Cotton", "Silk", "Linen", "Microfiber", "Bamboo", "Polyester"]
SIZES = ["Twin", "Full", "Queen", "King", "California King"]
ORDER_STATUSES = ["pending", "processing", "shipped", "delivered", "cancelled"]
# An order in one of these states lets its owner review the products in it
REVIEWABLE_STATUSES = ["shipped", "delivered"]
PAYMENT_METHODS = ["Cash on Delivery", "JazzCash", "PayPal", "Stripe", "Credit Card"]
MESSAGE_SUBJECTS = ["product-inquiry", "order-status", "return-exchange", "bulk-order", "other"]

Category = Literal["Cotton", "Silk", "Linen", "Microfiber", "Bamboo", "Polyester"]
Size = Literal["Twin", "Full", "Queen", "King", "California King"]
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
PaymentMethod = Literal["Cash on Delivery", "JazzCash", "PayPal", "Stripe", "Credit Card"]
MessageSubject = Literal["product-inquiry", "order-status", "return-exchange", "bulk-order", "other"]


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password_hash: str = Field(..., description="BCrypt hashed password")
    is_admin: bool = Field(False, description="Store administrator")


class Color(BaseModel):
    name: str
    hexCode: str


class Review(BaseModel):
    user: str = Field(..., description="Reviewer user id")
    name: str = Field(..., description="Reviewer display name")
    rating: int = Field(..., ge=1, le=5)
    comment: str
    createdAt: Optional[datetime] = None


class Product(BaseModel):
    user: Optional[str] = Field(None, description="Admin who created the product")
    name: str
    brand: str
    category: Category
    description: str
    price: float = Field(..., ge=0)
    countInStock: int = Field(0, ge=0)
    image: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    material: Optional[str] = None
    threadCount: Optional[int] = Field(None, ge=0)
    care: str = "Machine wash cold, tumble dry low"
    sizes: List[Size] = Field(default_factory=lambda: ["Queen"])
    colors: List[Color] = Field(default_factory=lambda: [Color(name="White", hexCode="#FFFFFF")])
    features: List[str] = Field(default_factory=list)
    slug: Optional[str] = None
    reviews: List[Dict[str, Any]] = Field(default_factory=list)
    rating: float = Field(0, ge=0, le=5)
    numReviews: int = Field(0, ge=0)
    reviewsVersion: int = Field(0, ge=0)


class CartItem(BaseModel):
    product: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Product price when the item was last added")
    size: Optional[str] = None
    color: Optional[str] = None


class Cart(BaseModel):
    user: str
    items: List[CartItem] = Field(default_factory=list)
    totalPrice: float = 0
    version: int = Field(0, ge=0, description="Incremented on every write; updates are conditioned on it")


class OrderItem(BaseModel):
    product: str
    name: str
    image: Optional[str] = None
    price: float = Field(..., ge=0)
    qty: int = Field(..., ge=1)


class ShippingAddress(BaseModel):
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postalCode: str = Field(..., min_length=1)
    phoneNumber: Optional[str] = None
    country: Optional[str] = None


class Order(BaseModel):
    user: str
    orderItems: List[OrderItem]
    shippingAddress: ShippingAddress
    paymentMethod: PaymentMethod
    itemsPrice: float = Field(0, ge=0)
    taxPrice: float = Field(0, ge=0)
    shippingPrice: float = Field(0, ge=0)
    totalPrice: float = Field(0, ge=0)
    status: OrderStatus = "pending"
    isPaid: bool = False
    paidAt: Optional[datetime] = None
    paymentResult: Optional[Dict[str, Any]] = None
    paymentScreenshot: Optional[str] = None
    isDelivered: bool = False
    deliveredAt: Optional[datetime] = None


class Message(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    subject: MessageSubject
    message: str = Field(..., min_length=10, max_length=1000)
    isRead: bool = False
    adminReply: Optional[str] = Field(None, max_length=1000)
    repliedAt: Optional[datetime] = None
