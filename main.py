from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging
import os

from config.settings import settings, configure_logging, validate_env_variables
from db.session import create_tables, get_db
from core.errors import PaylinkError
from core.gateway import FlutterwaveGateway
from core.rates import RateCache
from core.reconciliation import start_reconciliation_scheduler, shutdown_reconciliation_scheduler
from middleware.logging import LoggingMiddleware, ErrorLoggingMiddleware
from utilities.response import domain_error_response, error_response

from api.links import router as links_router
from api.payment import router as payment_router
from api.downloads import router as downloads_router

configure_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.BRAND_NAME} payment link API...")
    validate_env_variables()

    create_tables()
    logger.info("Database tables ready")

    # One rate cache per process, shared by every pricing request
    app.state.rate_cache = RateCache(ttl_seconds=settings.RATE_CACHE_TTL_SECONDS)
    app.state.gateway = FlutterwaveGateway()
    start_reconciliation_scheduler()

    yield

    shutdown_reconciliation_scheduler()
    logger.info("Payment link API stopped")

app = FastAPI(
    title="Payment Link API",
    description="Payment-link redemption, Flutterwave settlement and time-limited file download grants",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ErrorLoggingMiddleware)
app.add_middleware(LoggingMiddleware)

@app.exception_handler(PaylinkError)
async def paylink_exception_handler(request: Request, exc: PaylinkError):
    """Domain errors carry a stable kind for the client to branch on"""
    if exc.status_code >= 500:
        logger.error(f"{exc.kind} on {request.url.path}: {exc.context}")
    return JSONResponse(status_code=exc.status_code, content=domain_error_response(exc))

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content=error_response(message=detail))

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content=error_response(message="Internal server error"))

@app.get("/health")
async def health_check(request: Request, db: Session = Depends(get_db)):
    """Liveness plus the state of the collaborators checkout depends on"""
    database = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(f"Health check database error: {e}")
        database = "unavailable"

    rate_cache = getattr(request.app.state, "rate_cache", None)
    snapshot = rate_cache.snapshot if rate_cache else None
    return {
        "status": "healthy" if database == "ok" else "degraded",
        "database": database,
        "rates": {
            "source": snapshot.source if snapshot else "none",
            "fresh": bool(rate_cache and rate_cache.is_fresh()),
        },
        "gateway_configured": bool(settings.FLUTTERWAVE_SECRET_KEY),
    }

@app.get("/")
async def root():
    return {
        "message": f"{settings.BRAND_NAME} Payment Link API",
        "version": app.version,
        "docs": app.docs_url,
    }

app.include_router(links_router, prefix="/api")
app.include_router(payment_router, prefix="/api")
app.include_router(downloads_router, prefix="/api")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", 8000)),
        reload=os.getenv("RELOAD", "false").lower() in ("1", "true", "yes"),
        log_level=settings.LOG_LEVEL.lower(),
    )
