"""API routes for the authenticated user's cart."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..checkout import CheckoutService
from ..dependencies import (
    commit_changes,
    get_cart_service,
    get_checkout_service,
    get_current_user_id,
    get_session,
)
from ..schemas import (
    CartItemCreate,
    CartItemMutationResponse,
    CartItemUpdate,
    CartResponse,
    CheckoutRequest,
    CheckoutResponse,
)
from ..services import CartItemMutation, CartService, UpsertMode
from .serializers import serialize_cart_item, serialize_order, serialize_transaction

router = APIRouter(prefix="/cart", tags=["cart"])


def _serialize_mutation(mutation: CartItemMutation) -> dict[str, object]:
    return {
        "message": mutation.message,
        "item": serialize_cart_item(mutation.item) if mutation.item is not None else None,
    }


@router.get("", response_model=CartResponse)
async def get_cart(
    user_id: int = Depends(get_current_user_id),
    service: CartService = Depends(get_cart_service),
    session: AsyncSession = Depends(get_session),
) -> CartResponse:
    view = await service.get_or_create_cart(user_id=user_id)
    await commit_changes(session)
    return CartResponse.model_validate(
        {"items": [serialize_cart_item(item) for item in view.items], "total": view.total}
    )


@router.post("/item", response_model=CartItemMutationResponse, status_code=status.HTTP_201_CREATED)
async def add_item(
    payload: CartItemCreate,
    user_id: int = Depends(get_current_user_id),
    service: CartService = Depends(get_cart_service),
    session: AsyncSession = Depends(get_session),
) -> CartItemMutationResponse:
    mutation = await service.upsert_item(
        user_id=user_id,
        product_id=payload.product_id,
        quantity=payload.quantity,
        mode=UpsertMode.INCREMENT,
    )
    await commit_changes(session)
    return CartItemMutationResponse.model_validate(_serialize_mutation(mutation))


@router.patch("/item/{product_id}", response_model=CartItemMutationResponse)
async def update_item(
    payload: CartItemUpdate,
    product_id: int = Path(..., ge=1),
    user_id: int = Depends(get_current_user_id),
    service: CartService = Depends(get_cart_service),
    session: AsyncSession = Depends(get_session),
) -> CartItemMutationResponse:
    mutation = await service.upsert_item(
        user_id=user_id,
        product_id=product_id,
        quantity=payload.quantity,
        mode=UpsertMode.SET,
    )
    await commit_changes(session)
    return CartItemMutationResponse.model_validate(_serialize_mutation(mutation))


@router.delete("/item/{product_id}", response_model=CartItemMutationResponse)
async def delete_item(
    product_id: int = Path(..., ge=1),
    user_id: int = Depends(get_current_user_id),
    service: CartService = Depends(get_cart_service),
    session: AsyncSession = Depends(get_session),
) -> CartItemMutationResponse:
    item = await service.delete_item(user_id=user_id, product_id=product_id)
    await commit_changes(session)
    return CartItemMutationResponse.model_validate(
        {"message": "Success to delete cart item!", "item": serialize_cart_item(item)}
    )


@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    payload: CheckoutRequest,
    user_id: int = Depends(get_current_user_id),
    service: CheckoutService = Depends(get_checkout_service),
    session: AsyncSession = Depends(get_session),
) -> CheckoutResponse:
    result = await service.checkout(user_id=user_id, shipping_address_id=payload.shipping_address_id)
    await commit_changes(session)
    return CheckoutResponse.model_validate(
        {
            "message": "Success to checkout cart!",
            "order": serialize_order(result.order, include_transaction=False),
            "transaction": serialize_transaction(result.transaction),
        }
    )
