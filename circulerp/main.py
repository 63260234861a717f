from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

from circulerp.config import settings
from circulerp.database import init_db, close_db, get_db
from circulerp.logging_config import setup_logging
from circulerp.middleware.correlation import CorrelationIdMiddleware
from circulerp.services import email_service

# Import models so they are registered with Base.metadata
import circulerp.models  # noqa: F401

logger = structlog.get_logger()

ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
    500: "INTERNAL_ERROR",
    501: "NOT_IMPLEMENTED",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("starting_circulerp", env=settings.ENVIRONMENT)
    await init_db()
    yield
    await email_service.close_http_client()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Global exception handlers: every error body is
# {"error": {"code": "...", "message": "..."}}
# ---------------------------------------------------------------------------

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, str):
        code = ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
        detail = {"error": {"code": code, "message": detail}}
    elif isinstance(detail, dict) and "error" not in detail:
        detail = {"error": detail}
    return JSONResponse(status_code=exc.status_code, content=detail, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": jsonable_encoder(exc.errors()),
            }
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}},
    )


app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_origin_regex=settings.CORS_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "X-Request-ID"],
    expose_headers=["Content-Disposition", "X-Request-ID"],
)


@app.get("/health", tags=["System"])
async def health(response: Response, db: AsyncSession = Depends(get_db)):
    health_status = {"status": "healthy", "version": settings.APP_VERSION, "checks": {}}

    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["db"] = "ok"
    except Exception as e:
        logger.error("health_check_db_failed", error=str(e))
        health_status["checks"]["db"] = "error"
        health_status["status"] = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    health_status["checks"]["email"] = "configured" if email_service.is_configured() else "disabled"
    return health_status


# --- Routers ---
from circulerp.routes.auth import router as auth_router  # noqa: E402
from circulerp.routes.users import router as users_router  # noqa: E402
from circulerp.routes.customers import router as customers_router  # noqa: E402
from circulerp.routes.suppliers import router as suppliers_router  # noqa: E402
from circulerp.routes.products import router as products_router  # noqa: E402
from circulerp.routes.orders import router as orders_router  # noqa: E402
from circulerp.routes.invoices import router as invoices_router  # noqa: E402
from circulerp.routes.payments import router as payments_router  # noqa: E402
from circulerp.routes.shipments import router as shipments_router  # noqa: E402
from circulerp.routes.production import router as production_router  # noqa: E402
from circulerp.routes.inventory import router as inventory_router  # noqa: E402
from circulerp.routes.warehouse_stock import router as warehouse_stock_router  # noqa: E402
from circulerp.routes.files import router as files_router  # noqa: E402
from circulerp.routes.invoice_generate import router as invoice_generate_router  # noqa: E402
from circulerp.routes.invoice_template import router as invoice_template_router  # noqa: E402
from circulerp.routes.dashboard import router as dashboard_router  # noqa: E402

app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
app.include_router(users_router, prefix="/api/users", tags=["Users"])
app.include_router(customers_router, prefix="/api/customers", tags=["Customers"])
app.include_router(suppliers_router, prefix="/api/suppliers", tags=["Suppliers"])
app.include_router(products_router, prefix="/api/products", tags=["Products"])
app.include_router(orders_router, prefix="/api/orders", tags=["Orders"])
app.include_router(invoices_router, prefix="/api/invoices", tags=["Invoices"])
app.include_router(payments_router, prefix="/api/payments", tags=["Payments"])
app.include_router(shipments_router, prefix="/api/shipments", tags=["Shipments"])
app.include_router(production_router, prefix="/api/production", tags=["Production"])
app.include_router(inventory_router, prefix="/api/inventory", tags=["Inventory"])
app.include_router(warehouse_stock_router, prefix="/api/warehouse-stock", tags=["Warehouse Stock"])
app.include_router(files_router, prefix="/api/files", tags=["Files"])
app.include_router(invoice_generate_router, prefix="/api/invoice-generate", tags=["Invoice Generator"])
app.include_router(invoice_template_router, prefix="/api/invoice-template", tags=["Invoice Template"])
app.include_router(dashboard_router, prefix="/api/dashboard", tags=["Dashboard"])
