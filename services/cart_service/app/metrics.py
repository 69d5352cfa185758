"""Prometheus metrics for the cart service."""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Histogram

# Cart lifecycle ---------------------------------------------------------------------------
CART_MUTATIONS_TOTAL: Final = Counter(
    "cart_item_mutations_total",
    "Cart line mutations applied, by outcome.",
    labelnames=("outcome",),
)

# Checkout ---------------------------------------------------------------------------------
CHECKOUT_TOTAL: Final = Counter(
    "checkout_total",
    "Checkout attempts by result (completed or the failure kind).",
    labelnames=("result",),
)

CHECKOUT_LATENCY_SECONDS: Final = Histogram(
    "checkout_latency_seconds",
    "Time spent inside the checkout transaction before commit.",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)

INVOICE_COLLISIONS_TOTAL: Final = Counter(
    "checkout_invoice_collisions_total",
    "Invoice numbers rejected by the uniqueness constraint and regenerated.",
)
