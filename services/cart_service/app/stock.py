"""Stock ledger: per-product available quantity and race-safe decrements."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Product


def aggregate_demand(lines: Iterable[tuple[int, int]]) -> dict[int, int]:
    """Sum ``(product_id, quantity)`` pairs per product."""

    demand: dict[int, int] = {}
    for product_id, quantity in lines:
        demand[product_id] = demand.get(product_id, 0) + quantity
    return demand


def find_shortages(demand: Mapping[int, int], stock: Mapping[int, int]) -> list[int]:
    """Return every product whose demand exceeds stock; a missing product has none."""

    return [product_id for product_id, quantity in demand.items() if quantity > stock.get(product_id, 0)]


class StockLedger:
    """Reads and decrements product stock inside the caller's transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_stock(self, product_ids: Iterable[int], *, lock: bool = False) -> dict[int, int]:
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        stmt = select(Product.id, Product.stock_qty).where(Product.id.in_(ids)).order_by(Product.id)
        if lock:
            # Sorted ids give concurrent checkouts a consistent lock order.
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return {product_id: stock_qty or 0 for product_id, stock_qty in result.all()}

    async def decrement(self, product_id: int, amount: int) -> bool:
        """Apply ``stock_qty - amount`` at the storage layer.

        The statement only matches while enough stock remains, so it can never
        drive the counter negative even if another writer got there first.
        Returns whether the row was updated.
        """

        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock_qty >= amount)
            .values(stock_qty=Product.stock_qty - amount)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
