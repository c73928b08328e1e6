"""FastAPI entry point for the Lingo tutor engine."""

import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import get_settings
from services.middleware import RequestIdLogFilter, RequestIdMiddleware
from services.notifier import get_notifier
from services.repository import RedisTutorRepository, get_repository
from services.session_registry import get_session_registry, periodic_cleanup

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIdLogFilter())

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle — start/stop shared resources."""
    repository = get_repository()
    registry = get_session_registry()
    cleanup_task = asyncio.create_task(
        periodic_cleanup(interval_seconds=settings.session_cleanup_interval)
    )

    # Verify Redis connectivity if using the Redis repository
    if isinstance(repository, RedisTutorRepository):
        if await repository.ping():
            logger.info("Redis connection verified")
        else:
            logger.warning("Redis connection failed — history will not persist")

    yield

    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass

    await registry.close()
    await repository.close()
    await get_notifier().close()


app = FastAPI(
    title="Lingo Tutor Engine",
    description="Conversational English tutor with streamed replies and hidden structured feedback",
    version="0.3.0",
    lifespan=lifespan,
)

# ── Middleware stack (outermost first) ─────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIdMiddleware)

# ── Register routers ────────────────────────────────────────
from api.chat import router as chat_router  # noqa: E402
from api.health import router as health_router  # noqa: E402
from api.lessons import router as lessons_router  # noqa: E402

app.include_router(health_router)
app.include_router(chat_router)
app.include_router(lessons_router)


if __name__ == "__main__":
    # Single worker: live sessions are held in process memory
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.service_port,
        reload=settings.debug,
        timeout_keep_alive=120,
    )
