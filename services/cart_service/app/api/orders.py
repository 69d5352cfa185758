"""Read-only routes over the user's completed orders."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query

from ..checkout import OrderQueries
from ..dependencies import get_current_user_id, get_order_queries
from ..schemas import OrderListResponse, OrderResponse
from .serializers import serialize_order

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("", response_model=OrderListResponse)
async def list_orders(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user_id: int = Depends(get_current_user_id),
    queries: OrderQueries = Depends(get_order_queries),
) -> OrderListResponse:
    orders, total = await queries.list_orders(user_id=user_id, limit=limit, offset=offset)
    items = [OrderResponse.model_validate(serialize_order(order)) for order in orders]
    return OrderListResponse(items=items, total=total)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int = Path(..., ge=1),
    user_id: int = Depends(get_current_user_id),
    queries: OrderQueries = Depends(get_order_queries),
) -> OrderResponse:
    order = await queries.get_order(user_id=user_id, order_id=order_id)
    return OrderResponse.model_validate(serialize_order(order))
