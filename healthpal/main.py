import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import REALTIME_RELAY_ENABLED
from .database import Base, engine
from .domain.appointments.router import router as appointments_router
from .domain.notifications.router import router as notifications_router
from .domain.payments.router import router as payments_router
from .exceptions import register_exception_handlers
from .rate_limiter import get_redis_client
from .websocket.manager import manager
from .websocket.relay import RealtimeRelay
from .websocket.router import router as websocket_router

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
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    relay = None
    if REALTIME_RELAY_ENABLED:
        relay = RealtimeRelay(manager)
        relay.start()

    yield
    logger.info("Application shutting down...")
    if relay:
        await relay.stop()


app = FastAPI(title="HealthPal API", version="1.0.0", lifespan=lifespan)
register_exception_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        if response.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} - {response.status_code}")
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000,http://localhost:8081",
).split(",")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

app.include_router(appointments_router)
app.include_router(payments_router)
app.include_router(notifications_router)
app.include_router(websocket_router)


@app.get("/")
def root():
    return {"message": "HealthPal API is running"}


@app.get("/health")
def health():
    return {"status": "healthy", "websocketConnections": manager.connection_count()}


@app.get("/health/redis")
async def redis_health_check():
    """Check Redis connectivity for monitoring"""
    try:
        info = get_redis_client().info()
        return {
            "status": "healthy",
            "redis": {"connected": True, "version": info.get("redis_version", "unknown")},
        }
    except Exception as e:
        return {"status": "unhealthy", "redis": {"connected": False, "error": str(e)}}
