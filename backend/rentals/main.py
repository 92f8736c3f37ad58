import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from . import models  # noqa: F401  registers tables on Base.metadata
from .api import api_cart, api_distance, api_order, api_payment, api_pricing
from .core.config import settings
from .core.observability import setup_logging
from .database import Base, engine
from .utils.redis_cache import close_redis_client
from .services.errors import (
    CartStorageError,
    InvalidStatusTransition,
    OrderPersistenceError,
    PaymentProviderError,
    PricingRulesError,
    RentalsError,
)

setup_logging()
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Bounce House Rentals API", default_response_class=ORJSONResponse)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ORIGINS != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
logger.info("CORS origins set to: %s", settings.CORS_ORIGINS)

# Most specific class first
_ERROR_STATUS = (
    (PricingRulesError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (OrderPersistenceError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (CartStorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (InvalidStatusTransition, status.HTTP_409_CONFLICT),
    (PaymentProviderError, status.HTTP_502_BAD_GATEWAY),
)


@app.exception_handler(RentalsError)
async def rentals_error_handler(request: Request, exc: RentalsError):
    code = next((c for cls, c in _ERROR_STATUS if isinstance(exc, cls)), status.HTTP_422_UNPROCESSABLE_ENTITY)
    log = logger.error if code >= 500 else logger.warning
    log("%s at %s: %s %s", type(exc).__name__, request.url.path, exc.message, exc.field_errors)
    return ORJSONResponse(
        status_code=code,
        content={"detail": {"message": exc.message, "field_errors": exc.field_errors}},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return validation errors with details and log them for debugging."""
    errors = exc.errors()
    logger.warning("Validation error at %s: %s", request.url.path, errors)
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        # pydantic error contexts may hold exception instances
        content={"detail": jsonable_encoder(errors, custom_encoder={Exception: str})},
    )


@app.on_event("shutdown")
def shutdown_redis_client() -> None:
    """Close Redis connections when the application shuts down."""
    logger.info("Closing Redis client")
    close_redis_client()


@app.get("/healthz", tags=["health"])
def healthz():
    return {"status": "ok"}


api_prefix = settings.API_V1_STR  # usually "/api/v1"

app.include_router(api_distance.router, prefix=f"{api_prefix}", tags=["distance"])
app.include_router(api_pricing.router, prefix=f"{api_prefix}", tags=["pricing"])
app.include_router(api_order.router, prefix=f"{api_prefix}", tags=["orders"])
app.include_router(api_cart.router, prefix=f"{api_prefix}", tags=["cart"])
app.include_router(api_payment.router, prefix=f"{api_prefix}", tags=["payments"])
