"""Shape ORM rows into the camelCase payloads returned by the API."""

from __future__ import annotations

from ..models import CartItem, Order, Product, Transaction
from ..pricing import from_cents


def serialize_product(product: Product) -> dict[str, object]:
    return {
        "id": product.id,
        "slug": product.slug,
        "name": product.name,
        "description": product.description,
        "thumbnailUrl": product.thumbnail_url,
        "price": from_cents(product.price_cents) if product.price_cents is not None else None,
        "priceDiscount": (
            from_cents(product.price_discount_cents) if product.price_discount_cents is not None else None
        ),
    }


def serialize_cart_item(item: CartItem) -> dict[str, object]:
    return {"quantity": item.quantity, "product": serialize_product(item.product)}


def serialize_transaction(transaction: Transaction) -> dict[str, object]:
    return {
        "id": transaction.id,
        "orderId": transaction.order_id,
        "noInvoice": transaction.no_invoice,
        "amount": from_cents(transaction.amount_cents),
        "status": transaction.status,
        "paymentDate": transaction.payment_date,
    }


def serialize_order(order: Order, *, include_transaction: bool = True) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": order.id,
        "userId": order.user_id,
        "totalPrice": from_cents(order.total_price_cents),
        "status": order.status,
        "shippingAddressId": order.shipping_address_id,
        "items": [
            {
                "id": item.id,
                "productId": item.product_id,
                "name": item.product.name,
                "quantity": item.quantity,
                "price": from_cents(item.price_cents),
            }
            for item in order.items
        ],
        "createdAt": order.created_at,
    }
    if include_transaction and order.transaction is not None:
        payload["transaction"] = serialize_transaction(order.transaction)
    return payload
