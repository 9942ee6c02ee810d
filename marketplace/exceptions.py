"""
Domain errors raised by services and routers, and the handlers that turn
them into the `{success, message, data}` envelope.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("marketplace")


class MarketplaceError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, data=None):
        self.message = message or self.default_message
        self.data = data
        super().__init__(self.message)


class ValidationError(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Missing required fields"


class AuthenticationError(MarketplaceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Could not validate credentials"


class ForbiddenError(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not allowed"


class NotFoundError(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class PaymentNotReadyError(NotFoundError):
    default_message = "Payment not found or not completed"


class ConflictError(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Conflict"


class SignatureError(MarketplaceError):
    """Webhook signature rejected. Stripe does not redeliver on 4xx."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid webhook signature"


class PaymentProviderError(MarketplaceError):
    def __init__(self, message: str | None = None, provider_code: str | None = None):
        super().__init__(message)
        self.provider_code = provider_code


def envelope_response(status_code: int, message: str, data=None, success: bool = False) -> JSONResponse:
    content = {"success": success, "message": message}
    if data is not None:
        content["data"] = data
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return envelope_response(exc.status_code, exc.message, exc.data)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if any(err.get("type") == "missing" for err in errors):
        message = "Missing required fields"
    else:
        message = "Invalid request"
    fields = [".".join(str(p) for p in err.get("loc", ()) if p != "body") for err in errors]
    return envelope_response(status.HTTP_400_BAD_REQUEST, message, {"fields": fields})


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return envelope_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
