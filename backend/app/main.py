"""
Venue Payments — FastAPI Application Entry Point

Aggregates all routers, configures middleware and error handling,
and initializes the database on startup.
"""
import logging
import time
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.config import get_settings
from app.database import SessionLocal, init_db
from app.errors import register_error_handlers
from app.logging_config import configure_logging
from app.routes import (
    admin_router, bookings_router, payment_intent_router, payment_plan_router, stripe_webhook_router,
)
from app.services.template_engine import TemplateEngine

settings = get_settings()
configure_logging(settings)
logger = logging.getLogger("app")

# ─── Application Instance ───────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Back-office API for venue booking payments: split booking payments, "
        "wedding payment plans, scheduled reminders, partial refunds and Stripe settlement."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# One template cache per process; the admin endpoint clears it
app.state.template_engine = TemplateEngine()

# ─── Startup ─────────────────────────────────────────────────────────
BOOT_TIME = time.time()


@app.on_event("startup")
def on_startup():
    """Initialize database tables and log boot info."""
    init_db()
    logger.info(
        "%s v%s started at %s (env=%s, database=%s, stripe=%s, email=%s)",
        settings.APP_NAME,
        settings.APP_VERSION,
        datetime.now().isoformat(),
        settings.ENVIRONMENT,
        settings.DATABASE_URL,
        "configured" if settings.STRIPE_SECRET_KEY else "missing key",
        "configured" if settings.BREVO_API_KEY else "disabled",
    )


# ─── Middleware ──────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with timing."""
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 1)

    if request.url.path.startswith(settings.API_PREFIX):
        logger.info("%s %s -> %s (%sms)", request.method, request.url.path, response.status_code, duration)

    return response


register_error_handlers(app)

# ─── API Routers ─────────────────────────────────────────────────────
app.include_router(payment_intent_router, prefix=settings.API_PREFIX)
app.include_router(payment_plan_router, prefix=settings.API_PREFIX)
app.include_router(bookings_router, prefix=settings.API_PREFIX)
app.include_router(stripe_webhook_router, prefix=settings.API_PREFIX)
app.include_router(admin_router, prefix=settings.API_PREFIX)


@app.get("/health", tags=["Health"])
def deep_health():
    """Detailed health check including dependency statuses."""
    db_ok = False
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        logger.exception("Health check database probe failed")
    finally:
        db.close()

    return {
        "status": "healthy" if db_ok else "degraded",
        "database": "connected" if db_ok else "disconnected",
        "stripe": "configured" if settings.STRIPE_SECRET_KEY else "unconfigured",
        "email": "configured" if settings.BREVO_API_KEY else "unconfigured",
        "uptime_seconds": round(time.time() - BOOT_TIME, 1),
        "version": settings.APP_VERSION,
    }
