"""Dependency helpers for the cart service."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.common import ServiceSettings, bind_user_id, unit_of_work

from .checkout import CheckoutService, OrderQueries
from .errors import CommerceError, ErrorKind
from .repository import AddressBook, CartRepository, OrderRepository
from .services import CartService
from .stock import StockLedger

logger = logging.getLogger(__name__)


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield a session whose work commits when the request succeeds."""

    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with unit_of_work(session_factory) as session:
        yield session


async def commit_changes(session: AsyncSession) -> None:
    """Commit the request's writes so the response only reports durable state.

    The session dependency commits again on teardown, which is a no-op once this
    has run; its rollback still covers every failure raised before this point.
    """

    try:
        await session.commit()
    except SQLAlchemyError as exc:
        logger.exception("Commit failed")
        raise CommerceError(ErrorKind.COMPUTATION_ERROR, "Could not save changes, please retry") from exc


def get_current_user_id(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> int:
    """Resolve the authenticated user supplied by the upstream auth layer."""

    raw = (x_user_id or "").strip()
    if not raw.isdigit() or int(raw) < 1:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "success": False,
                "error": "AUTHORIZATION_REQUIRED",
                "message": "Authenticated user id is required!",
            },
        )
    user_id = int(raw)
    bind_user_id(user_id)
    return user_id


def get_cart_service(session: AsyncSession = Depends(get_session)) -> CartService:
    return CartService(CartRepository(session))


def get_checkout_service(request: Request, session: AsyncSession = Depends(get_session)) -> CheckoutService:
    settings: ServiceSettings = request.app.state.settings
    return CheckoutService(
        CartRepository(session),
        OrderRepository(session),
        StockLedger(session),
        AddressBook(session),
        invoice_attempts=settings.invoice_max_attempts,
    )


def get_order_queries(session: AsyncSession = Depends(get_session)) -> OrderQueries:
    return OrderQueries(OrderRepository(session))
