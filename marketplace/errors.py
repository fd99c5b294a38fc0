import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class MarketplaceError(Exception):
    """Base error carrying the HTTP status it maps to."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    title = "Internal server error"

    def __init__(self, message: str, title: str | None = None, errors: list[str] | None = None):
        super().__init__(message)
        self.message = message
        if title:
            self.title = title
        self.errors = errors


class ValidationError(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    title = "Validation error"

    def __init__(self, errors: list[str] | str):
        error_list = errors if isinstance(errors, list) else [errors]
        super().__init__(", ".join(error_list), errors=error_list)


class InvalidRequestError(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    title = "Invalid request"


class UnavailableError(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    title = "Product unavailable"


class InsufficientStockError(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    title = "Insufficient stock"

    def __init__(self, product_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {product_name}: {available} available, {requested} requested"
        )
        self.product_name = product_name
        self.available = available
        self.requested = requested


class ForbiddenError(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    title = "Access denied"


class NotFoundError(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    title = "Not found"


class ConflictError(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    title = "Conflict"


class GatewayError(MarketplaceError):
    """Failure talking to the payment gateway; keeps the remote status and body."""

    status_code = status.HTTP_502_BAD_GATEWAY
    title = "Payment gateway error"

    def __init__(self, message: str, remote_status: int | None = None, response: dict | None = None):
        super().__init__(message)
        self.remote_status = remote_status
        self.response = response or {}


class GatewayNotConfiguredError(GatewayError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    title = "Payment gateway unavailable"


class OrderPersistenceError(MarketplaceError):
    """Local write failed after the gateway order was created."""

    title = "Order could not be saved"

    def __init__(self, message: str, revolut_order_id: str | None = None):
        super().__init__(message)
        self.revolut_order_id = revolut_order_id


def _error_body(exc: MarketplaceError) -> dict:
    body = {
        "success": False,
        "status": exc.status_code,
        "title": exc.title,
        "message": exc.message,
    }
    if exc.errors:
        body["errors"] = exc.errors
    if isinstance(exc, GatewayError) and exc.remote_status is not None:
        body["gateway_status"] = exc.remote_status
    if isinstance(exc, OrderPersistenceError) and exc.revolut_order_id:
        body["revolut_order_id"] = exc.revolut_order_id
    return body


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
