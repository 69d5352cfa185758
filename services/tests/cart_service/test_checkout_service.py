import asyncio
from collections.abc import Callable, Iterable
from typing import Any

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.cart_service.app.checkout import CheckoutResult, CheckoutService
from services.cart_service.app.errors import CommerceError, ErrorKind
from services.cart_service.app.invoice import generate_invoice_number, is_invoice_number
from services.cart_service.app.models import Base, CartItem, Order, OrderItem, Product, Transaction, UserAddress
from services.cart_service.app.repository import AddressBook, CartRepository, OrderRepository
from services.cart_service.app.services import CartService, UpsertMode
from services.cart_service.app.stock import StockLedger
from services.common import create_engine, dispose_engines, get_session_factory, unit_of_work


async def _prepare_database(tmp_path) -> async_sessionmaker[AsyncSession]:
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'checkout.db'}"
    engine = create_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return get_session_factory(database_url)


async def _seed(session_factory: async_sessionmaker[AsyncSession], *rows: Any) -> list[int]:
    async with unit_of_work(session_factory) as session:
        session.add_all(rows)
        await session.flush()
        return [row.id for row in rows]


def _product(name: str, *, price_cents: int | None = 4500000, stock: int | None = 5) -> Product:
    return Product(slug=name.lower().replace(" ", "-"), name=name, price_cents=price_cents, stock_qty=stock)


def _address(user_id: int) -> UserAddress:
    return UserAddress(
        user_id=user_id,
        street="Jl. Malioboro 7",
        city="Yogyakarta",
        state="DIY",
        postal_code="55271",
        country="Indonesia",
    )


def _checkout_service(
    session: AsyncSession,
    *,
    invoice_factory: Callable[[], str] = generate_invoice_number,
    invoice_attempts: int = 3,
) -> CheckoutService:
    return CheckoutService(
        CartRepository(session),
        OrderRepository(session),
        StockLedger(session),
        AddressBook(session),
        invoice_factory=invoice_factory,
        invoice_attempts=invoice_attempts,
    )


def _invoices(values: Iterable[str]) -> Callable[[], str]:
    iterator = iter(values)
    return lambda: next(iterator)


async def _add(session_factory, user_id: int, product_id: int, quantity: int) -> None:
    async with unit_of_work(session_factory) as session:
        await CartService(CartRepository(session)).upsert_item(
            user_id=user_id, product_id=product_id, quantity=quantity, mode=UpsertMode.INCREMENT
        )


async def _stock(session_factory, product_id: int) -> int | None:
    async with unit_of_work(session_factory) as session:
        return (await session.execute(select(Product.stock_qty).where(Product.id == product_id))).scalar_one()


async def _count(session_factory, model) -> int:
    async with unit_of_work(session_factory) as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


async def _cart_lines(session_factory, user_id: int) -> list[tuple[int, int]]:
    async with unit_of_work(session_factory) as session:
        repository = CartRepository(session)
        cart = await repository.get_cart(user_id=user_id)
        if cart is None:
            return []
        return sorted(await repository.item_quantities(cart))


@pytest.mark.asyncio
async def test_checkout_moves_cart_into_order(tmp_path) -> None:
    session_factory = await _prepare_database(tmp_path)
    gayo, dampit, address_id = await _seed(
        session_factory,
        _product("Arabica Gayo", price_cents=4500000, stock=5),
        _product("Robusta Dampit", price_cents=3000000, stock=4),
        _address(1),
    )
    await _add(session_factory, 1, gayo, 2)
    await _add(session_factory, 1, dampit, 1)

    async with unit_of_work(session_factory) as session:
        result = await _checkout_service(session).checkout(user_id=1, shipping_address_id=address_id)

    assert result.order.status == "pending"
    assert result.order.total_price_cents == 12000000
    assert result.order.shipping_address_id == address_id
    assert sorted((item.product_id, item.quantity, item.price_cents) for item in result.order.items) == [
        (gayo, 2, 4500000),
        (dampit, 1, 3000000),
    ]
    assert result.transaction.order_id == result.order.id
    assert result.transaction.amount_cents == result.order.total_price_cents
    assert result.transaction.status == "Pending"
    assert is_invoice_number(result.transaction.no_invoice)

    assert await _stock(session_factory, gayo) == 3
    assert await _stock(session_factory, dampit) == 3
    assert await _cart_lines(session_factory, 1) == []
    assert await _count(session_factory, OrderItem) == 2

    await dispose_engines()


@pytest.mark.asyncio
async def test_insufficient_stock_names_every_short_product(tmp_path) -> None:
    session_factory = await _prepare_database(tmp_path)
    gayo, dampit, toraja, address_id = await _seed(
        session_factory,
        _product("Arabica Gayo", stock=5),
        _product("Robusta Dampit", stock=5),
        _product("Toraja Sapan", stock=5),
        _address(1),
    )
    for product_id in (gayo, dampit, toraja):
        await _add(session_factory, 1, product_id, 3)

    async with unit_of_work(session_factory) as session:
        await session.execute(update(Product).where(Product.id.in_([gayo, toraja])).values(stock_qty=1))

    with pytest.raises(CommerceError) as excinfo:
        async with unit_of_work(session_factory) as session:
            await _checkout_service(session).checkout(user_id=1, shipping_address_id=address_id)

    assert excinfo.value.kind is ErrorKind.INSUFFICIENT_STOCK
    assert excinfo.value.status_code == 400
    assert "Arabica Gayo" in excinfo.value.message
    assert "Toraja Sapan" in excinfo.value.message
    assert "Robusta Dampit" not in excinfo.value.message

    assert await _stock(session_factory, dampit) == 5
    assert await _cart_lines(session_factory, 1) == sorted([(gayo, 3), (dampit, 3), (toraja, 3)])
    assert await _count(session_factory, Order) == 0

    await dispose_engines()


@pytest.mark.asyncio
async def test_second_buyer_cannot_oversell_shared_stock(tmp_path) -> None:
    session_factory = await _prepare_database(tmp_path)
    product_id, first_address, second_address = await _seed(
        session_factory, _product("Kintamani", stock=5), _address(1), _address(2)
    )
    await _add(session_factory, 1, product_id, 3)
    await _add(session_factory, 2, product_id, 3)

    async with unit_of_work(session_factory) as session:
        await _checkout_service(session).checkout(user_id=1, shipping_address_id=first_address)

    with pytest.raises(CommerceError) as excinfo:
        async with unit_of_work(session_factory) as session:
            await _checkout_service(session).checkout(user_id=2, shipping_address_id=second_address)

    assert excinfo.value.kind is ErrorKind.INSUFFICIENT_STOCK
    assert await _stock(session_factory, product_id) == 2
    assert await _count(session_factory, Order) == 1
    assert await _cart_lines(session_factory, 2) == [(product_id, 3)]

    await dispose_engines()


@pytest.mark.asyncio
async def test_concurrent_checkouts_cannot_oversell(tmp_path) -> None:
    session_factory = await _prepare_database(tmp_path)
    product_id, first_address, second_address = await _seed(
        session_factory, _product("Kerinci Natural", stock=5), _address(1), _address(2)
    )
    await _add(session_factory, 1, product_id, 3)
    await _add(session_factory, 2, product_id, 3)

    async def attempt(user_id: int, address_id: int) -> CheckoutResult:
        async with unit_of_work(session_factory) as session:
            return await _checkout_service(session).checkout(user_id=user_id, shipping_address_id=address_id)

    outcomes = await asyncio.gather(
        attempt(1, first_address), attempt(2, second_address), return_exceptions=True
    )

    completed = [outcome for outcome in outcomes if isinstance(outcome, CheckoutResult)]
    rejected = [outcome for outcome in outcomes if isinstance(outcome, CommerceError)]
    assert len(completed) == 1
    assert len(rejected) == 1
    assert rejected[0].kind is ErrorKind.INSUFFICIENT_STOCK
    assert await _stock(session_factory, product_id) == 2
    assert await _count(session_factory, Order) == 1

    await dispose_engines()


@pytest.mark.asyncio
async def test_checkout_rejects_empty_cart_and_foreign_address(tmp_path) -> None:
    session_factory = await _prepare_database(tmp_path)
    product_id, own_address, other_address = await _seed(
        session_factory, _product("Flores Bajawa"), _address(1), _address(2)
    )

    with pytest.raises(CommerceError) as empty:
        async with unit_of_work(session_factory) as session:
            await _checkout_service(session).checkout(user_id=1, shipping_address_id=own_address)
    assert empty.value.kind is ErrorKind.EMPTY_CART

    await _add(session_factory, 1, product_id, 1)

    with pytest.raises(CommerceError) as foreign:
        async with unit_of_work(session_factory) as session:
            await _checkout_service(session).checkout(user_id=1, shipping_address_id=other_address)
    assert foreign.value.kind is ErrorKind.ADDRESS_NOT_FOUND
    assert foreign.value.status_code == 404

    assert await _cart_lines(session_factory, 1) == [(product_id, 1)]
    assert await _stock(session_factory, product_id) == 5

    await dispose_engines()


@pytest.mark.asyncio
async def test_invoice_collision_is_retried_with_a_new_number(tmp_path) -> None:
    session_factory = await _prepare_database(tmp_path)
    product_id, first_address, second_address = await _seed(
        session_factory, _product("Java Preanger", stock=10), _address(1), _address(2)
    )
    await _add(session_factory, 1, product_id, 1)
    await _add(session_factory, 2, product_id, 2)

    async with unit_of_work(session_factory) as session:
        await _checkout_service(session, invoice_factory=lambda: "INV-20260101-AAAAAA").checkout(
            user_id=1, shipping_address_id=first_address
        )

    async with unit_of_work(session_factory) as session:
        result = await _checkout_service(
            session, invoice_factory=_invoices(["INV-20260101-AAAAAA", "INV-20260101-BBBBBB"])
        ).checkout(user_id=2, shipping_address_id=second_address)

    assert result.transaction.no_invoice == "INV-20260101-BBBBBB"
    assert await _count(session_factory, Transaction) == 2
    assert await _count(session_factory, Order) == 2
    assert await _stock(session_factory, product_id) == 7

    await dispose_engines()


@pytest.mark.asyncio
async def test_exhausted_invoice_retries_roll_back_the_whole_checkout(tmp_path) -> None:
    session_factory = await _prepare_database(tmp_path)
    product_id, first_address, second_address = await _seed(
        session_factory, _product("Aceh Gayo Wine", stock=10), _address(1), _address(2)
    )
    await _add(session_factory, 1, product_id, 1)
    await _add(session_factory, 2, product_id, 4)

    async with unit_of_work(session_factory) as session:
        await _checkout_service(session, invoice_factory=lambda: "INV-20260101-AAAAAA").checkout(
            user_id=1, shipping_address_id=first_address
        )

    with pytest.raises(CommerceError) as excinfo:
        async with unit_of_work(session_factory) as session:
            await _checkout_service(
                session, invoice_factory=lambda: "INV-20260101-AAAAAA", invoice_attempts=2
            ).checkout(user_id=2, shipping_address_id=second_address)

    assert excinfo.value.kind is ErrorKind.COMPUTATION_ERROR
    assert excinfo.value.status_code == 500
    assert await _count(session_factory, Order) == 1
    assert await _count(session_factory, OrderItem) == 1
    assert await _stock(session_factory, product_id) == 9
    assert await _cart_lines(session_factory, 2) == [(product_id, 4)]

    await dispose_engines()


@pytest.mark.asyncio
async def test_unpriced_product_fails_checkout_without_side_effects(tmp_path) -> None:
    session_factory = await _prepare_database(tmp_path)
    product_id, address_id = await _seed(session_factory, _product("Mystery Blend", price_cents=None), _address(1))
    await _add(session_factory, 1, product_id, 2)

    with pytest.raises(CommerceError) as excinfo:
        async with unit_of_work(session_factory) as session:
            await _checkout_service(session).checkout(user_id=1, shipping_address_id=address_id)

    assert excinfo.value.kind is ErrorKind.COMPUTATION_ERROR
    assert excinfo.value.message == "Invalid price for product Mystery Blend"
    assert await _stock(session_factory, product_id) == 5
    assert await _count(session_factory, CartItem) == 1
    assert await _count(session_factory, Order) == 0

    await dispose_engines()
