"""Typed failures raised by the cart and checkout core."""

from __future__ import annotations

import logging
from enum import Enum

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    CART_ITEM_NOT_FOUND = "CART_ITEM_NOT_FOUND"
    EMPTY_CART = "EMPTY_CART"
    ADDRESS_NOT_FOUND = "ADDRESS_NOT_FOUND"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    COMPUTATION_ERROR = "COMPUTATION_ERROR"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.PRODUCT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_QUANTITY: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CART_ITEM_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.EMPTY_CART: status.HTTP_400_BAD_REQUEST,
    ErrorKind.ADDRESS_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INSUFFICIENT_STOCK: status.HTTP_400_BAD_REQUEST,
    ErrorKind.COMPUTATION_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.ORDER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


class CommerceError(Exception):
    """A business failure with a kind, a status code and a human message."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    def __repr__(self) -> str:
        return f"CommerceError({self.kind.value}, {self.message!r})"


def error_body(kind: str, message: str) -> dict[str, object]:
    return {"success": False, "error": kind, "message": message}


async def _handle_commerce_error(_request: Request, exc: CommerceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed with %s: %s", exc.kind.value, exc.message)
    else:
        logger.info("Request rejected with %s: %s", exc.kind.value, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.kind.value, exc.message))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CommerceError, _handle_commerce_error)  # type: ignore[arg-type]
