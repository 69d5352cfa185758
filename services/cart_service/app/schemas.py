"""Pydantic schemas for the cart service."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, PositiveInt


class CartItemCreate(BaseModel):
    product_id: PositiveInt = Field(alias="productId")
    quantity: int = 1

    model_config = ConfigDict(populate_by_name=True)


class CartItemUpdate(BaseModel):
    quantity: int


class CheckoutRequest(BaseModel):
    shipping_address_id: PositiveInt = Field(alias="shippingAddressId")

    model_config = ConfigDict(populate_by_name=True)


class ProductSummary(BaseModel):
    id: PositiveInt
    slug: str
    name: str
    description: str | None = None
    thumbnail_url: str | None = Field(default=None, alias="thumbnailUrl")
    price: Decimal | None
    price_discount: Decimal | None = Field(default=None, alias="priceDiscount")

    model_config = ConfigDict(populate_by_name=True)


class CartItemResponse(BaseModel):
    quantity: int
    product: ProductSummary


class CartResponse(BaseModel):
    items: list[CartItemResponse]
    total: Decimal


class CartItemMutationResponse(BaseModel):
    message: str
    item: CartItemResponse | None = None


class OrderItemResponse(BaseModel):
    id: PositiveInt
    product_id: PositiveInt = Field(alias="productId")
    name: str
    quantity: int
    price: Decimal

    model_config = ConfigDict(populate_by_name=True)


class TransactionResponse(BaseModel):
    id: PositiveInt
    order_id: PositiveInt = Field(alias="orderId")
    no_invoice: str = Field(alias="noInvoice")
    amount: Decimal
    status: str
    payment_date: datetime = Field(alias="paymentDate")

    model_config = ConfigDict(populate_by_name=True)


class OrderResponse(BaseModel):
    id: PositiveInt
    user_id: PositiveInt = Field(alias="userId")
    total_price: Decimal = Field(alias="totalPrice")
    status: str
    shipping_address_id: PositiveInt = Field(alias="shippingAddressId")
    items: list[OrderItemResponse]
    transaction: TransactionResponse | None = None
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)


class CheckoutResponse(BaseModel):
    message: str
    order: OrderResponse
    transaction: TransactionResponse


class OrderListResponse(BaseModel):
    items: list[OrderResponse]
    total: int
