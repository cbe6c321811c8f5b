"""
Referify API application.

Wires the listing, feed, suggestion and referral routers into one FastAPI
app. Live feeds are in-process: every WebSocket subscriber hangs off the
`listing_channel` singleton, so shutdown closes that channel before the
database engine goes away.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app import database
from app.config import settings
from app.services.change_channel import listing_channel
from app.api import auth, listings, feed, suggestions, referrals

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "Referify API"
API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    db_target = settings.database_url.rsplit('@', 1)[-1] if '@' in settings.database_url else 'local'
    logger.info(f"🚀 {SERVICE_NAME} starting (db={db_target}, reasoning={settings.reasoning_mode}, debug={settings.debug})")

    yield

    logger.info(f"👋 {SERVICE_NAME} stopping; disconnecting {listing_channel.subscriber_count} feed subscribers")
    listing_channel.close()
    await database.engine.dispose()


app = FastAPI(
    title=SERVICE_NAME,
    description="Tier-gated live job feed and AI candidate matching for a referral network",
    version=API_VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

# Dashboard origins; ALLOWED_ORIGINS adds comma-separated production domains
cors_origins = ["http://localhost:3000"]
if settings.allowed_origins:
    cors_origins += [origin.strip() for origin in settings.allowed_origins.split(',') if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,  # auth_token cookie
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Liveness plus a database round trip."""
    try:
        async with database.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        db_status = "ok"
    except SQLAlchemyError as e:
        logger.error(f"Health check database ping failed: {e}")
        db_status = "unavailable"

    return {
        "status": "healthy" if db_status == "ok" else "degraded",
        "service": SERVICE_NAME,
        "version": API_VERSION,
        "database": db_status,
        "feed_subscribers": listing_channel.subscriber_count,
    }


@app.get("/")
async def root():
    return {
        "message": SERVICE_NAME,
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/health",
    }


app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(listings.router, prefix="/api/listings", tags=["listings"])
app.include_router(suggestions.router, prefix="/api/listings", tags=["suggestions"])
app.include_router(feed.router, prefix="/api/feed", tags=["feed"])
app.include_router(referrals.router, prefix="/api/referrals", tags=["referrals"])
