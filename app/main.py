"""FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import SQLModel

from app.api.notifications import router as notifications_router
from app.api.push import router as push_router
from app.api.streaks import router as streaks_router
from app.channels.push import WebSocketPushChannel
from app.config import get_settings
from app.db.session import engine
from app.engine import build_reminder_engine

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, start the reminder engine, and stop it on shutdown."""
    # Import models to register them with SQLModel
    from app.models import Notification, Task, User, UserStreakState  # noqa: F401
    SQLModel.metadata.create_all(engine)

    push_channel = WebSocketPushChannel(send_timeout=settings.CHANNEL_TIMEOUT_SECONDS)
    push_channel.bind_loop(asyncio.get_running_loop())
    reminder_engine = build_reminder_engine(engine, settings, push_channel=push_channel)
    app.state.engine = reminder_engine

    if settings.SCHEDULER_ENABLED:
        reminder_engine.start()
    else:
        logger.info("Scheduler disabled; reminders will not be dispatched by this process")

    try:
        yield
    finally:
        # Joining the scheduler thread blocks; keep it off the event loop
        await asyncio.to_thread(reminder_engine.close)
        app.state.engine = None

app = FastAPI(
    title="Task Reminder Engine API",
    description="Reminders, notifications and activity streaks for the task tracker",
    version="1.0.0",
    lifespan=lifespan,
)

cors_origins = [
    settings.FRONTEND_URL,
    "http://localhost:3000",
    "http://localhost:3001",
]
# Remove duplicates and empty strings
cors_origins = [origin for origin in set(cors_origins) if origin]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(notifications_router)
app.include_router(streaks_router)
app.include_router(push_router)


@app.get("/health")
def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
