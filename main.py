"""
Wedding Guestbook - FastAPI Backend
Main application entry point
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from app.core.config import settings
from app.core.db import engine, Base, log_db_info
from app.core.errors import GuestbookError
from app.api import routes_admin, routes_doorprize, routes_guest, routes_public, routes_walkin, ws
from app.services.notifications import change_notifier
from app.services.repositories import use_firestore
from app.utils.responses import guestbook_error_response

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    if use_firestore():
        logger.info("Using Firestore backend")
    else:
        # Create database tables
        Base.metadata.create_all(bind=engine)
        log_db_info()
        logger.info("Database tables created")
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)

    ws.websocket_manager.bind_loop(asyncio.get_running_loop())
    change_notifier.subscribe(ws.websocket_manager.on_change)
    yield
    change_notifier.unsubscribe(ws.websocket_manager.on_change)
    logger.info("Application shutdown")


# Create FastAPI application
app = FastAPI(
    title="Wedding Guestbook",
    description="Guest list, check-in, gift and doorprize backend for wedding events",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GuestbookError)
async def handle_guestbook_error(request: Request, exc: GuestbookError):
    return guestbook_error_response(exc)


# Include routers
app.include_router(routes_public.router, tags=["public"])
app.include_router(routes_admin.router, prefix="/admin", tags=["admin"])
app.include_router(routes_guest.router, tags=["guests"])
app.include_router(routes_walkin.router, tags=["walk-ins"])
app.include_router(routes_doorprize.router, prefix="/doorprize", tags=["doorprize"])
app.include_router(ws.router, prefix="/ws", tags=["websocket"])

# Note: Run this ASGI app directly with Uvicorn or Hypercorn. For Gunicorn,
# use `uvicorn.workers.UvicornWorker` instead of wrapping the app.

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="127.0.0.1",
        port=8000,
        reload=True
    )
