import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from padel_api.core.config import settings
from padel_api.core.errors import register_error_handlers
from padel_api.db.session import engine
from padel_api.api.v1.auth import router as auth_router
from padel_api.api.v1.bookings import router as bookings_router
from padel_api.api.v1.communities import router as communities_router
from padel_api.api.v1.session_templates import router as session_templates_router
from padel_api.api.v1.sessions import router as sessions_router

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("Padel API started (env=%s, venue tz=%s)", settings.APP_ENV, settings.VENUE_TIMEZONE)
    yield
    await engine.dispose()


app = FastAPI(
    title="Padel Community API",
    version="1.0.0",
    description="Backend for padel communities: sessions, templates, bookings.",
    lifespan=lifespan,
)
register_error_handlers(app)

app.include_router(auth_router,              prefix="/api/v1")
app.include_router(communities_router,       prefix="/api/v1")
app.include_router(sessions_router,          prefix="/api/v1")
app.include_router(session_templates_router, prefix="/api/v1")
app.include_router(bookings_router,          prefix="/api/v1")


@app.get("/health", tags=["meta"])
async def health_check():
    return {"status": "ok", "version": app.version}
