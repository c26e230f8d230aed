import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Register every model with Base before create_all
from . import (
    models,  # noqa: F401
    models_mall,  # noqa: F401
    models_messaging,  # noqa: F401
    models_passport,  # noqa: F401
)
from .bot_detection import BotBlockMiddleware
from .config import ALLOWED_ORIGINS, BOT_DETECTION_ENABLED, SECURITY_HEADERS_ENABLED
from .database import Base, engine
from .domain.affiliate.router import admin_router as affiliate_admin_router
from .domain.affiliate.router import ledger_router, ownership_router
from .domain.affiliate.router import partner_router as partner_customers_router
from .domain.affiliate.scope import PartnerApiError
from .domain.customer_groups.router import router as customer_groups_router
from .domain.documents.router import certificate_router, quote_router
from .domain.landing_pages.router import public_router as public_landing_router
from .domain.landing_pages.router import router as landing_pages_router
from .domain.mall.router import admin_router as mall_admin_router
from .domain.mall.router import router as mall_router
from .domain.messaging.router import funnel_router, scheduled_router, sms_config_router
from .domain.passport.router import admin_router as passport_admin_router
from .domain.passport.router import partner_router as passport_partner_router
from .domain.passport.router import public_router as passport_public_router
from .routes.auth import router as auth_router
from .routes.backup import router as backup_router
from .routes.chat import router as chat_router
from .security_headers import SecurityHeadersMiddleware

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Several workers may race on first boot
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    try:
        from .rate_limiter import get_redis_client

        get_redis_client().ping()
        logger.info("Redis connection established")
    except Exception as e:
        logger.warning(f"Redis connection failed - Rate limiting will operate in fail-open mode: {e}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Cruise Mall API", version="1.0.0", lifespan=lifespan)


def jsonable_errors(exc: RequestValidationError) -> list:
    return [{k: v for k, v in error.items() if k in ("loc", "msg", "type")} for error in exc.errors()]


@app.exception_handler(PartnerApiError)
async def partner_api_error_handler(request: Request, exc: PartnerApiError):
    return JSONResponse(status_code=exc.status, content={"ok": False, "error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    # Partner API callers expect the {ok, error} envelope
    if request.url.path.startswith("/api/partner/"):
        first = exc.errors()[0] if exc.errors() else {}
        return JSONResponse(status_code=400, content={"ok": False, "error": first.get("msg", "Invalid request")})
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


if SECURITY_HEADERS_ENABLED:
    app.add_middleware(SecurityHeadersMiddleware, exclude_paths=["/health", "/docs", "/openapi.json"])
    logger.info("Security headers enabled")
else:
    logger.warning("Security headers DISABLED - only use in development!")

if BOT_DETECTION_ENABLED:
    app.add_middleware(
        BotBlockMiddleware,
        public_prefixes=["/api/public/"],
        read_only_prefixes=["/api/mall/"],
    )
    logger.info("Bot detection enabled")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(affiliate_admin_router)
app.include_router(ownership_router)
app.include_router(partner_customers_router)
app.include_router(ledger_router)
app.include_router(customer_groups_router)
app.include_router(funnel_router)
app.include_router(scheduled_router)
app.include_router(sms_config_router)
app.include_router(landing_pages_router)
app.include_router(public_landing_router)
app.include_router(mall_router)
app.include_router(mall_admin_router)
app.include_router(certificate_router)
app.include_router(quote_router)
app.include_router(passport_admin_router)
app.include_router(passport_partner_router)
app.include_router(passport_public_router)
app.include_router(chat_router)
app.include_router(backup_router)


@app.get("/")
def root():
    return {"message": "Cruise Mall API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/health/redis")
async def redis_health_check():
    """Check Redis connectivity for monitoring"""
    try:
        from .rate_limiter import get_redis_client

        redis_client = get_redis_client()
        start_time = time.time()
        redis_client.ping()
        response_time = (time.time() - start_time) * 1000
        info = redis_client.info()

        return {
            "status": "healthy",
            "redis": {
                "connected": True,
                "response_time_ms": round(response_time, 2),
                "version": info.get("redis_version", "unknown"),
                "used_memory_human": info.get("used_memory_human", "unknown"),
            },
        }
    except Exception as e:
        return {"status": "unhealthy", "redis": {"connected": False, "error": str(e)}}
