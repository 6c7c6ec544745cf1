"""
Request body models for the JSON API
"""
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

IDEMPOTENCY_KEY_MAX_LENGTH = 128


class OrderLineRequest(BaseModel):
    """One line of a placement request; price is informational only"""
    product_id: int
    quantity: int
    price: Optional[Decimal] = None


class OrderCreateRequest(BaseModel):
    """Request model for placing an order"""
    model_config = ConfigDict(populate_by_name=True)

    items: List[OrderLineRequest]
    total_amount: Optional[Decimal] = Field(default=None, alias='totalAmount')
    shipping_address: str = Field(default='', alias='shippingAddress')
    payment_method: str = Field(default='', alias='paymentMethod')
    idempotency_key: Optional[str] = Field(default=None, alias='idempotencyKey', max_length=IDEMPOTENCY_KEY_MAX_LENGTH)


class CartAddRequest(BaseModel):
    """Request model for adding a product to the cart"""
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(alias='productId')
    quantity: int = 1


class CartUpdateRequest(BaseModel):
    quantity: int


class OrderStatusRequest(BaseModel):
    status: str


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class ProductUpdateRequest(BaseModel):
    """Admin product edit; only the fields present are applied"""
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    original_price: Optional[Decimal] = None
    stock_quantity: Optional[int] = None
    is_featured: Optional[bool] = None
    size: Optional[str] = None
    color: Optional[str] = None
    brand: Optional[str] = None
    image: Optional[str] = None
    category_id: Optional[int] = None
