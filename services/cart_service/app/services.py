"""Cart use cases: read the cart, upsert and remove its lines."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Literal

from .errors import CommerceError, ErrorKind
from .metrics import CART_MUTATIONS_TOTAL
from .models import Cart, CartItem, Product
from .pricing import cart_total, product_price
from .repository import CartRepository

logger = logging.getLogger(__name__)


class UpsertMode(str, Enum):
    INCREMENT = "increment"
    SET = "set"


MutationOutcome = Literal["created", "updated", "removed"]


@dataclass
class CartView:
    cart: Cart
    items: list[CartItem]
    total: Decimal


@dataclass
class CartItemMutation:
    outcome: MutationOutcome
    message: str
    item: CartItem | None


def compute_cart_total(items: list[CartItem]) -> Decimal:
    return cart_total(
        (product_price(item.product.price_cents, product_name=item.product.name), item.quantity)
        for item in items
    )


def _ensure_available(product: Product, quantity: int) -> None:
    available = product.stock_qty or 0
    if quantity > available:
        raise CommerceError(
            ErrorKind.INVALID_QUANTITY,
            f"Product {product.name} has only {available} available stock!",
        )


class CartService:
    """Cart operations, each running inside the caller's unit of work."""

    def __init__(self, repository: CartRepository) -> None:
        self.repository = repository

    async def get_or_create_cart(self, *, user_id: int) -> CartView:
        cart = await self.repository.get_or_create_cart(user_id=user_id)
        items = await self.repository.list_items(cart)
        return CartView(cart=cart, items=items, total=compute_cart_total(items))

    async def upsert_item(
        self,
        *,
        user_id: int,
        product_id: int,
        quantity: int,
        mode: UpsertMode = UpsertMode.INCREMENT,
    ) -> CartItemMutation:
        if quantity < 0 or (mode is UpsertMode.INCREMENT and quantity == 0):
            raise CommerceError(ErrorKind.INVALID_QUANTITY, "Quantity must be greater than 0")

        cart = await self.repository.get_or_create_cart(user_id=user_id)
        product = await self.repository.get_product(product_id)
        existing = await self.repository.get_item(user_id=user_id, product_id=product_id)

        if product is None:
            raise CommerceError(ErrorKind.PRODUCT_NOT_FOUND, "Product not found")

        current = existing.quantity if existing is not None else 0
        new_quantity = current + quantity if mode is UpsertMode.INCREMENT else quantity

        _ensure_available(product, new_quantity)

        if mode is UpsertMode.SET and new_quantity == 0:
            if existing is None:
                raise CommerceError(ErrorKind.CART_ITEM_NOT_FOUND, "Cart item not found!")
            await self.repository.remove_item(existing)
            CART_MUTATIONS_TOTAL.labels(outcome="removed").inc()
            logger.info("Removed product %s from cart %s", product.id, cart.id)
            return CartItemMutation(
                outcome="removed",
                message=f"Successfully removed product {product.name} from cart!",
                item=None,
            )

        if existing is None:
            item, created = await self.repository.add_item(cart, product=product, quantity=new_quantity)
            if created:
                CART_MUTATIONS_TOTAL.labels(outcome="created").inc()
                logger.info("Added product %s x%s to cart %s", product.id, new_quantity, cart.id)
                return CartItemMutation(outcome="created", message="Successfully added product to cart!", item=item)
            # Another request created the line first; apply this change on top of it.
            existing = item
            new_quantity = existing.quantity + quantity if mode is UpsertMode.INCREMENT else quantity
            _ensure_available(product, new_quantity)

        if mode is UpsertMode.INCREMENT:
            item = await self.repository.increment_quantity(existing, amount=quantity)
        else:
            item = await self.repository.set_quantity(existing, quantity=new_quantity)
        CART_MUTATIONS_TOTAL.labels(outcome="updated").inc()
        logger.info("Updated product %s in cart %s to quantity %s", product.id, cart.id, item.quantity)
        return CartItemMutation(outcome="updated", message="Successfully updated cart item!", item=item)

    async def delete_item(self, *, user_id: int, product_id: int) -> CartItem:
        item = await self.repository.get_item(user_id=user_id, product_id=product_id)
        if item is None:
            raise CommerceError(ErrorKind.CART_ITEM_NOT_FOUND, "Cart item not found.")
        await self.repository.remove_item(item)
        CART_MUTATIONS_TOTAL.labels(outcome="removed").inc()
        return item
