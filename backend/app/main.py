"""
Pharmacy Ledger Backend: catalogue, sales, prescriptions, stock history.

ARCHITECTURE:
- FastAPI routes: authentication, role checks, request/response shapes
- Services: every business rule and every transaction boundary
- SQLAlchemy models: the tables and their CHECK/UNIQUE/FOREIGN KEY constraints
- SQLite (default) or PostgreSQL: source of truth for all state

LEDGER MODEL:
- Stock quantity changes only through a conditional UPDATE that cannot go negative
- Every quantity change writes a stock movement in the same transaction
- A sale commits header, items, stock and movements together or not at all
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import auth, catalogue, dashboard, prescriptions, sales, stock
from app.core.config import settings
from app.core.exceptions import register_exception_handlers
from app.db.init_db import init_db

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, identifier counters and the first admin on startup."""
    logger.info("Initializing database...")
    init_db()
    logger.info("Database initialized")
    yield


app = FastAPI(
    title="Pharmacy Ledger API",
    description="Inventory and sales ledger for a pharmacy back office.",
    version="0.1.0",
    lifespan=lifespan,
)

register_exception_handlers(app)

# SECURITY: Restrict CORS to specific methods and headers (not wildcards)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "Accept",
        "Origin",
    ],
    max_age=600,  # Cache preflight for 10 minutes
    expose_headers=["Content-Type", "Content-Disposition"],
)


@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if settings.SECURE_COOKIES:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(catalogue.router, prefix="/catalogue", tags=["catalogue"])
app.include_router(stock.router, prefix="/stock", tags=["stock"])
app.include_router(sales.router, prefix="/sales", tags=["sales"])
app.include_router(prescriptions.router, prefix="/prescriptions", tags=["prescriptions"])
app.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])


@app.get("/health")
def health():
    return {"status": "ok", "environment": settings.ENVIRONMENT}
