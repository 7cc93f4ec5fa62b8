"""
Database Schemas for the shop API

Each Pydantic model maps to a MongoDB collection (lowercased class name),
or to a sub-document embedded in one.

Collections:
- user      (Account, with embedded CartLine and Address lists)
- category
- product
- order
"""
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field

MIN_QUANTITY = 1
MAX_QUANTITY = 10


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURN = "return"
    RETURNED = "returned"


class Role(str, Enum):
    CUSTOMER = "customer"
    SELLER = "seller"
    ADMIN = "admin"


class Document(BaseModel):
    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
    )


class CartLine(Document):
    product_id: ObjectId
    quantity: int = Field(1, ge=MIN_QUANTITY, le=MAX_QUANTITY)
    # set while an order is being placed from this line
    order_id: Optional[ObjectId] = None
    claimed_at: Optional[datetime] = None

    def public(self) -> dict:
        return self.model_dump(include={"product_id", "quantity"})


class Address(Document):
    id: ObjectId = Field(default_factory=ObjectId, alias="_id")
    pincode: str = Field(..., min_length=1, description="Postal code")
    state: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    road_name: str = Field(..., min_length=1, description="Street line")
    is_selected: bool = False

    def snapshot(self) -> "AddressSnapshot":
        return AddressSnapshot(
            pincode=self.pincode,
            state=self.state,
            city=self.city,
            road_name=self.road_name,
        )


class AddressSnapshot(BaseModel):
    """Copy of an address frozen into an order."""
    pincode: str
    state: str
    city: str
    road_name: str


class Account(Document):
    """
    Users collection schema
    Collection name: "user"
    """
    id: ObjectId = Field(default_factory=ObjectId, alias="_id")
    name: str = Field(..., description="Display name")
    email: EmailStr = Field(..., description="Email address")
    phone: str = Field(..., description="Phone number")
    password_hash: str = Field(..., description="BCrypt password hash")
    role: Role = Role.CUSTOMER
    cart: List[CartLine] = Field(default_factory=list)
    addresses: List[Address] = Field(default_factory=list)
    version: int = Field(0, ge=0, description="Optimistic concurrency counter")
    created_at: datetime = Field(default_factory=utcnow)

    def find_line(self, product_id: ObjectId) -> Optional[CartLine]:
        return next((line for line in self.cart if line.product_id == product_id), None)

    def selected_addresses(self) -> List[Address]:
        return [addr for addr in self.addresses if addr.is_selected]


class Category(Document):
    """
    Categories collection schema
    Collection name: "category"
    """
    id: ObjectId = Field(default_factory=ObjectId, alias="_id")
    name: str = Field(..., min_length=1, description="Lowercased, unique")


class Product(Document):
    """
    Products collection schema
    Collection name: "product"
    """
    id: ObjectId = Field(default_factory=ObjectId, alias="_id")
    title: str = Field(..., description="Product title")
    price: float = Field(..., ge=0)
    description: str
    availability: bool = Field(True, description="Only available products can be added to a cart")
    category_id: ObjectId
    images: List[str] = Field(default_factory=list, description="Image URLs")


class Order(Document):
    """
    Orders collection schema
    Collection name: "order"
    """
    id: ObjectId = Field(default_factory=ObjectId, alias="_id")
    user_id: ObjectId
    product_id: ObjectId
    quantity: int = Field(1, ge=MIN_QUANTITY, le=MAX_QUANTITY)
    address: AddressSnapshot
    status: OrderStatus = OrderStatus.PENDING
    role: Role = Role.CUSTOMER
    order_date: datetime = Field(default_factory=utcnow)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)
