import logging
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from marketplace.api import orders, payments, seller
from marketplace.config import settings
from marketplace.db_init import init_db
from marketplace.errors import register_error_handlers
from marketplace.webhooks import revolut_webhook

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("marketplace.startup")

REVOLUT_MODES = {"sandbox", "production"}
POSTGRES_SCHEMES = {"postgres", "postgresql", "postgresql+psycopg"}
INSECURE_JWT_SECRET = "change-me-in-production"


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.hostname)


def _is_localhost(value: str) -> bool:
    return urlparse(value).hostname in {"localhost", "127.0.0.1"}


def _cors_origins(cors_raw: str) -> list[str]:
    return [origin.strip().rstrip("/") for origin in cors_raw.split(",") if origin.strip()]


def _validate_database_url_for_runtime(database_url: str) -> None:
    parsed = urlparse(database_url)
    scheme = parsed.scheme

    if not scheme:
        raise RuntimeError("DATABASE_URL is missing URL scheme (expected postgresql:// or sqlite://).")
    if scheme == "sqlite":
        return
    if scheme not in POSTGRES_SCHEMES:
        raise RuntimeError(
            f"DATABASE_URL has unsupported scheme '{scheme}' (expected postgresql:// or sqlite://)."
        )
    if not parsed.hostname:
        raise RuntimeError("DATABASE_URL is missing host.")
    if not parsed.path.lstrip("/"):
        raise RuntimeError("DATABASE_URL is missing database name in path.")


def _db_url_diagnostics(database_url: str) -> str:
    parsed = urlparse(database_url)
    scheme = parsed.scheme or "<missing>"
    if scheme == "sqlite":
        return "scheme=sqlite; tips=Schema is created from the models, Alembic migrations are skipped."

    host = parsed.hostname or "<missing>"
    db_name = parsed.path.lstrip("/") or "<missing>"
    tips = []
    if scheme in {"postgres", "postgresql"}:
        tips.append("Scheme is rewritten to postgresql+psycopg internally.")
    if "sslmode" not in parsed.query:
        tips.append("No sslmode in URL query; managed Postgres usually needs sslmode=require.")
    if not tips:
        tips.append("URL structure looks valid; check network access and credentials.")
    return (
        f"scheme={scheme}, host={host}, port={parsed.port or '<missing>'}, database={db_name}; "
        f"tips={' | '.join(tips)}"
    )


def _validate_required_env_for_runtime() -> None:
    """Fail fast on settings the order and payment flows cannot run without."""
    errors = []
    warnings = []

    mode = settings.REVOLUT_MODE
    production = mode == "production"
    if mode not in REVOLUT_MODES:
        errors.append(f"REVOLUT_MODE must be 'sandbox' or 'production' (got '{mode}').")
    if not settings.REVOLUT_SECRET_KEY.strip():
        if production:
            errors.append("REVOLUT_SECRET_KEY is required when REVOLUT_MODE=production.")
        else:
            warnings.append("REVOLUT_SECRET_KEY is not set; gateway calls will answer 503.")

    jwt_secret = settings.JWT_SECRET.strip()
    if not jwt_secret:
        errors.append("JWT_SECRET is required.")
    elif production and jwt_secret == INSECURE_JWT_SECRET:
        errors.append("JWT_SECRET uses the insecure default value with REVOLUT_MODE=production.")

    for name in ("BASE_URL", "SITE_PUBLIC_BASE_URL"):
        value = getattr(settings, name).strip()
        if not _is_http_url(value):
            errors.append(f"{name} must be an absolute http(s) URL, e.g. https://shop.example.com")
        elif production and _is_localhost(value):
            errors.append(f"{name} points to localhost with REVOLUT_MODE=production.")

    currency = settings.DEFAULT_CURRENCY
    if len(currency) != 3 or not currency.isalpha():
        errors.append(f"DEFAULT_CURRENCY must be a three-letter ISO code (got '{currency}').")

    origins = _cors_origins(settings.CORS_ORIGINS)
    if not origins:
        errors.append("CORS_ORIGINS must contain at least one comma-separated origin URL.")
    else:
        invalid_origins = [origin for origin in origins if not _is_http_url(origin)]
        if invalid_origins:
            errors.append(f"CORS_ORIGINS contains invalid URL(s): {', '.join(invalid_origins)}")

    if not settings.SMTP_HOST or not settings.SMTP_FROM_EMAIL:
        warnings.append("SMTP is not configured; purchase confirmation emails will not be sent.")

    if warnings:
        logger.warning("Startup environment warnings: %s", " | ".join(warnings))

    if errors:
        raise RuntimeError("Startup environment validation failed: " + " | ".join(errors))


@asynccontextmanager
async def lifespan(app: FastAPI):
    database_url = "<unavailable>"
    logger.info("Application startup initiated (Revolut mode: %s).", settings.REVOLUT_MODE)
    try:
        database_url = settings.DATABASE_URL
        logger.info("DATABASE_URL diagnostics at startup: %s", _db_url_diagnostics(database_url))
        _validate_database_url_for_runtime(database_url)
        _validate_required_env_for_runtime()
        init_db()
    except Exception as exc:
        diagnostics = (
            _db_url_diagnostics(database_url)
            if database_url != "<unavailable>"
            else "DATABASE_URL unavailable (missing or unreadable)."
        )
        logger.exception("Startup failed: %s. DATABASE_URL diagnostics: %s", exc, diagnostics)
        raise
    logger.info("Application startup completed successfully.")
    yield


app = FastAPI(
    title="Marketplace API",
    description=(
        "Multi-seller marketplace API: cart pricing, orders, Revolut payments and inventory reconciliation. "
        "Checkout works for guests; use **Authorize** with a bearer JWT for `/api/orders/me` and seller stats."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Orders", "description": "Create, place, confirm and look up orders."},
        {"name": "Payments", "description": "Revolut order setup, payment polling and cancellation."},
        {"name": "Seller", "description": "Sales rollups for sellers (requires auth)."},
        {"name": "Webhooks", "description": "Called by Revolut (logged only)."},
    ],
)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    from fastapi.openapi.utils import get_openapi

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        **openapi_schema.get("components", {}).get("securitySchemes", {}),
        "bearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "Access JWT issued by the authentication service",
        },
    }
    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(settings.CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])
app.include_router(seller.router, prefix="/api/seller", tags=["Seller"])
app.include_router(revolut_webhook.router, prefix="/api/payments", tags=["Webhooks"])

register_error_handlers(app)


@app.get("/")
def root():
    return {"status": "ok", "service": "Marketplace API"}


@app.get("/health")
def health():
    return {"status": "ok"}
