from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.config.database import Database
from shared.config.settings import Settings
from shared.exceptions import ServiceError
from shared.observability import setup_observability
from shared.security import limiter
from services.notification_service.email_client import BrevoEmailClient
from services.notification_service.notifier import OrderNotifier
from services.order_service.checkout import CheckoutService
from services.order_service.router import admin_router, public_router, router
from services.order_service.service import OrderService
from services.user_service.service import GuestAccountResolver

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    email_client: Optional[BrevoEmailClient] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    database = database or Database(settings)
    email_client = email_client or BrevoEmailClient(settings)
    notifier = OrderNotifier(database, email_client, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.create_schema_on_startup:
            await database.create_all()
        if settings.seed_order_statuses:
            async with database.session() as db:
                await OrderService.seed_statuses(db)
        logger.info("order_service_started")
        yield
        # Let queued confirmation e-mails finish before the pool goes away
        await notifier.drain()
        await email_client.aclose()
        await database.dispose()

    app = FastAPI(title="Order Service", version="1.0.0", lifespan=lifespan)

    # --- OBSERVABILITY BOOTSTRAP ---
    setup_observability(app, "order_service", settings)

    app.state.settings = settings
    app.state.database = database
    app.state.notifier = notifier
    app.state.checkout_service = CheckoutService(
        database, notifier, GuestAccountResolver(settings.home_delivery_methods)
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
        )

    app.include_router(public_router)
    app.include_router(router)
    app.include_router(admin_router)
    return app


app = create_app()
