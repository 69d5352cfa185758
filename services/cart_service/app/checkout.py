"""Checkout: turn a user's cart into an order, a pending transaction and stock decrements."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from time import monotonic

from sqlalchemy.exc import IntegrityError
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from services.common import traced_operation

from .errors import CommerceError, ErrorKind
from .invoice import generate_invoice_number
from .metrics import CHECKOUT_LATENCY_SECONDS, CHECKOUT_TOTAL, INVOICE_COLLISIONS_TOTAL
from .models import Order, Transaction
from .pricing import cart_total, product_price, to_cents
from .repository import AddressBook, CartRepository, OrderRepository
from .stock import StockLedger, aggregate_demand, find_shortages

logger = logging.getLogger(__name__)

DEFAULT_INVOICE_ATTEMPTS = 3


@dataclass
class CheckoutResult:
    order: Order
    transaction: Transaction


class CheckoutService:
    """Runs the whole checkout inside the caller's unit of work.

    Every step reads and writes through the same session, so a failure at any
    point (validation or storage) leaves no order, no stock change and the cart
    untouched once the unit of work rolls back.
    """

    def __init__(
        self,
        carts: CartRepository,
        orders: OrderRepository,
        stock: StockLedger,
        addresses: AddressBook,
        *,
        invoice_factory: Callable[[], str] = generate_invoice_number,
        invoice_attempts: int = DEFAULT_INVOICE_ATTEMPTS,
    ) -> None:
        self.carts = carts
        self.orders = orders
        self.stock = stock
        self.addresses = addresses
        self.invoice_factory = invoice_factory
        self.invoice_attempts = invoice_attempts

    async def checkout(self, *, user_id: int, shipping_address_id: int) -> CheckoutResult:
        started = monotonic()
        with traced_operation("cart.checkout", **{"enduser.id": str(user_id)}):
            try:
                result = await self._checkout(user_id=user_id, shipping_address_id=shipping_address_id)
            except CommerceError as exc:
                CHECKOUT_TOTAL.labels(result=exc.kind.value).inc()
                logger.info("Checkout rejected for user %s: %s", user_id, exc.message)
                raise
        CHECKOUT_TOTAL.labels(result="completed").inc()
        CHECKOUT_LATENCY_SECONDS.observe(monotonic() - started)
        logger.info(
            "Checkout completed for user %s: order=%s invoice=%s",
            user_id,
            result.order.id,
            result.transaction.no_invoice,
        )
        return result

    async def _checkout(self, *, user_id: int, shipping_address_id: int) -> CheckoutResult:
        cart = await self.carts.get_cart(user_id=user_id)
        if cart is None or not cart.items:
            raise CommerceError(ErrorKind.EMPTY_CART, "Cart is empty")

        if not await self.addresses.exists(shipping_address_id, user_id=user_id):
            raise CommerceError(ErrorKind.ADDRESS_NOT_FOUND, "Shipping address not found")

        products = {item.product_id: item.product for item in cart.items}
        stock = await self.stock.get_stock(products, lock=True)
        lines = await self.carts.item_quantities(cart)
        lines = [(product_id, quantity) for product_id, quantity in lines if product_id in products]
        if not lines:
            raise CommerceError(ErrorKind.EMPTY_CART, "Cart is empty")

        demand = aggregate_demand(lines)
        shortages = find_shortages(demand, stock)
        if shortages:
            names = ", ".join(products[product_id].name for product_id in shortages)
            raise CommerceError(ErrorKind.INSUFFICIENT_STOCK, f"Insufficient stock for product(s): {names}")

        priced = [
            (product_id, quantity, product_price(products[product_id].price_cents, product_name=products[product_id].name))
            for product_id, quantity in lines
        ]
        total = cart_total((price, quantity) for _, quantity, price in priced)

        order = await self.orders.create_order(
            user_id=user_id,
            shipping_address_id=shipping_address_id,
            total_price_cents=to_cents(total),
            items=[
                {"product_id": product_id, "quantity": quantity, "price_cents": to_cents(price)}
                for product_id, quantity, price in priced
            ],
        )

        for product_id, quantity in sorted(demand.items()):
            if not await self.stock.decrement(product_id, quantity):
                raise CommerceError(
                    ErrorKind.INSUFFICIENT_STOCK,
                    f"Insufficient stock for product(s): {products[product_id].name}",
                )

        transaction = await self._record_transaction(order)
        await self.carts.clear_items(cart)
        return CheckoutResult(order=order, transaction=transaction)

    async def _record_transaction(self, order: Order) -> Transaction:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.invoice_attempts),
            retry=retry_if_exception_type(IntegrityError),
            before_sleep=self._on_invoice_collision,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self.orders.create_transaction(order, invoice_number=self.invoice_factory())
        except IntegrityError as exc:
            raise CommerceError(
                ErrorKind.COMPUTATION_ERROR,
                "Could not allocate a unique invoice number, please retry the checkout",
            ) from exc
        raise RuntimeError("invoice retry loop ended without an outcome")

    @staticmethod
    def _on_invoice_collision(retry_state: RetryCallState) -> None:
        INVOICE_COLLISIONS_TOTAL.inc()
        logger.warning("Invoice number collision on attempt %s, regenerating", retry_state.attempt_number)


class OrderQueries:
    """Read side for completed purchases."""

    def __init__(self, orders: OrderRepository) -> None:
        self.orders = orders

    async def get_order(self, *, user_id: int, order_id: int) -> Order:
        order = await self.orders.get_order(user_id=user_id, order_id=order_id)
        if order is None:
            raise CommerceError(ErrorKind.ORDER_NOT_FOUND, "Order not found")
        return order

    async def list_orders(self, *, user_id: int, limit: int, offset: int) -> tuple[list[Order], int]:
        return await self.orders.list_orders(user_id=user_id, limit=limit, offset=offset)
