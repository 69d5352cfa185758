"""Data access helpers for carts, orders and the address book."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .models import (
    ORDER_STATUS_PENDING,
    TRANSACTION_STATUS_PENDING,
    Cart,
    CartItem,
    Order,
    OrderItem,
    Product,
    Transaction,
    UserAddress,
)


class CartRepository:
    """Persistence helpers for shopping carts and their items."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_cart(self, *, user_id: int) -> Cart | None:
        result = await self.session.execute(
            select(Cart)
            .options(selectinload(Cart.items).selectinload(CartItem.product))
            .where(Cart.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_or_create_cart(self, *, user_id: int) -> Cart:
        cart = await self.get_cart(user_id=user_id)
        if cart is not None:
            return cart
        try:
            async with self.session.begin_nested():
                cart = Cart(user_id=user_id)
                self.session.add(cart)
                await self.session.flush()
        except IntegrityError:
            # Lost the race against a concurrent request creating the same cart.
            cart = await self.get_cart(user_id=user_id)
            if cart is None:
                raise
            return cart
        await self.session.refresh(cart, attribute_names=["created_at", "updated_at", "items"])
        return cart

    async def list_items(self, cart: Cart) -> list[CartItem]:
        result = await self.session.execute(
            select(CartItem)
            .join(Product, CartItem.product_id == Product.id)
            .options(selectinload(CartItem.product))
            .where(CartItem.cart_id == cart.id)
            .order_by(Product.name.asc(), CartItem.id.asc())
        )
        return list(result.scalars().unique())

    async def get_item(self, *, user_id: int, product_id: int) -> CartItem | None:
        result = await self.session.execute(
            select(CartItem)
            .join(Cart, CartItem.cart_id == Cart.id)
            .options(selectinload(CartItem.product))
            .where(Cart.user_id == user_id, CartItem.product_id == product_id)
        )
        return result.scalar_one_or_none()

    async def get_product(self, product_id: int) -> Product | None:
        result = await self.session.execute(select(Product).where(Product.id == product_id))
        return result.scalar_one_or_none()

    async def add_item(self, cart: Cart, *, product: Product, quantity: int) -> tuple[CartItem, bool]:
        """Insert a new cart line, returning ``(item, created)``.

        When a concurrent request inserted the same line first, the winner's row
        comes back with ``created=False`` and is left unchanged.
        """

        try:
            async with self.session.begin_nested():
                item = CartItem(cart_id=cart.id, product_id=product.id, quantity=quantity)
                self.session.add(item)
                await self.session.flush()
        except IntegrityError:
            existing = await self.get_item(user_id=cart.user_id, product_id=product.id)
            if existing is None:
                raise
            return existing, False
        await self.session.refresh(item, attribute_names=["product"])
        return item, True

    async def set_quantity(self, item: CartItem, *, quantity: int) -> CartItem:
        item.quantity = quantity
        await self.session.flush()
        return item

    async def increment_quantity(self, item: CartItem, *, amount: int) -> CartItem:
        item.quantity = CartItem.quantity + amount
        await self.session.flush()
        await self.session.refresh(item, attribute_names=["quantity"])
        return item

    async def remove_item(self, item: CartItem) -> None:
        await self.session.delete(item)
        await self.session.flush()

    async def item_quantities(self, cart: Cart) -> list[tuple[int, int]]:
        result = await self.session.execute(
            select(CartItem.product_id, CartItem.quantity).where(CartItem.cart_id == cart.id)
        )
        return [(product_id, quantity) for product_id, quantity in result.all()]

    async def clear_items(self, cart: Cart) -> int:
        result = await self.session.execute(
            delete(CartItem).where(CartItem.cart_id == cart.id).execution_options(synchronize_session=False)
        )
        self.session.expire(cart, ["items"])
        return result.rowcount

    async def count_carts(self, *, user_id: int) -> int:
        result = await self.session.execute(select(func.count(Cart.id)).where(Cart.user_id == user_id))
        return int(result.scalar_one())


class AddressBook:
    """Read access to users' shipping addresses."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def exists(self, address_id: int, *, user_id: int) -> bool:
        result = await self.session.execute(
            select(func.count(UserAddress.id)).where(
                UserAddress.id == address_id,
                UserAddress.user_id == user_id,
            )
        )
        return int(result.scalar_one()) > 0


class OrderRepository:
    """Persistence helpers for orders, order items and payment transactions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_order(
        self,
        *,
        user_id: int,
        shipping_address_id: int,
        total_price_cents: int,
        items: Sequence[dict[str, int]],
    ) -> Order:
        order = Order(
            user_id=user_id,
            shipping_address_id=shipping_address_id,
            total_price_cents=total_price_cents,
            status=ORDER_STATUS_PENDING,
        )
        self.session.add(order)
        await self.session.flush()

        if items:
            await self.session.execute(
                insert(OrderItem),
                [
                    {
                        "order_id": order.id,
                        "product_id": entry["product_id"],
                        "quantity": entry["quantity"],
                        "price_cents": entry["price_cents"],
                    }
                    for entry in items
                ],
            )
        await self.session.refresh(order, attribute_names=["items", "created_at"])
        return order

    async def create_transaction(self, order: Order, *, invoice_number: str) -> Transaction:
        """Insert the pending payment record under a savepoint.

        A duplicate invoice number raises ``IntegrityError`` after rolling back
        to the savepoint only, so the caller can retry with a fresh number.
        """

        async with self.session.begin_nested():
            transaction = Transaction(
                order_id=order.id,
                no_invoice=invoice_number,
                amount_cents=order.total_price_cents,
                status=TRANSACTION_STATUS_PENDING,
            )
            self.session.add(transaction)
            await self.session.flush()
        await self.session.refresh(transaction, attribute_names=["payment_date"])
        return transaction

    async def get_order(self, *, user_id: int, order_id: int) -> Order | None:
        result = await self.session.execute(
            select(Order)
            .options(
                selectinload(Order.items).selectinload(OrderItem.product),
                selectinload(Order.transaction),
            )
            .where(Order.id == order_id, Order.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_orders(self, *, user_id: int, limit: int, offset: int) -> tuple[list[Order], int]:
        count = await self.session.execute(select(func.count(Order.id)).where(Order.user_id == user_id))
        total = count.scalar_one()
        result = await self.session.execute(
            select(Order)
            .options(
                selectinload(Order.items).selectinload(OrderItem.product),
                selectinload(Order.transaction),
            )
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().unique()), total
