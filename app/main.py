"""
Plant Care Reminders API - Main application entry point.

Care reminders for a single device's plant collection: grouped by urgency,
rolled up into per-plant attention, and acted on one at a time or in batches.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import get_settings
from app.core.database import Database
from app.core.middleware import MaxBodySizeMiddleware, RequestLoggingMiddleware
from app.reminders.views import router as reminders_router

settings = get_settings()
API_PREFIX = settings.API_PREFIX

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events."""
    # Startup
    await Database.connect()
    yield
    # Shutdown
    await Database.disconnect()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
## Plant Care Reminders API

### Features

- 📅 **Grouped reminders**: Urgent, high, medium and low, by due date
- 🌱 **Plant attention**: One status per plant from reminders and health signals
- ✅ **Actions**: Mark done, snooze and reschedule, one at a time or in batches
- 🔔 **Notifications**: Device notifications follow every schedule change
- 🔴 **Live view**: WebSocket stream of the derived reminder state

    """,
    lifespan=lifespan,
    docs_url=f"{API_PREFIX}/docs",
    redoc_url=f"{API_PREFIX}/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(MaxBodySizeMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# Include routers
routers = [
    reminders_router,
]

for router in routers:
    app.include_router(router, prefix=API_PREFIX)


@app.get("/", tags=["Health"])
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "database": "connected" if Database.client else "disconnected",
        "version": settings.APP_VERSION,
    }
