"""
Pilot API
=========

FastAPI entry point for the WordPress data-source service.

Run:
    python -m app.main
    uvicorn app.main:app --host 0.0.0.0 --port 8000
"""

import logging
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from os import getenv
from threading import Lock

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

load_dotenv(override=False)

from pilot.wordpress import wordpress_router
from pilot.wordpress.config import load_wordpress_sync_config

logger = logging.getLogger(__name__)

_RATE_LIMIT = int(getenv("PILOT_RATE_LIMIT", "100"))
_RATE_WINDOW_SECONDS = 60


class RateLimitMiddleware(BaseHTTPMiddleware):
    """In-memory sliding-window limit per client address."""

    def __init__(self, app, rate_limit: int = 100, window_seconds: int = 60):
        super().__init__(app)
        self.rate_limit = rate_limit
        self.window_seconds = window_seconds
        self._requests: dict[str, list[float]] = defaultdict(list)
        self._lock = Lock()

    async def dispatch(self, request: Request, call_next):
        if request.url.path in ["/health", "/docs", "/openapi.json"]:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        cutoff = now - self.window_seconds

        with self._lock:
            recent = [ts for ts in self._requests[client_ip] if ts > cutoff]
            if len(recent) >= self.rate_limit:
                self._requests[client_ip] = recent
                return JSONResponse(
                    status_code=429,
                    content={
                        "detail": f"Rate limit exceeded. Max {self.rate_limit} requests per {self.window_seconds}s."
                    },
                )
            recent.append(now)
            self._requests[client_ip] = recent

        return await call_next(request)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the sync scheduler on boot, stop it on shutdown."""
    from pilot.wordpress.runtime import get_sync_runner
    from pilot.wordpress.scheduler import start_sync_scheduler, stop_sync_scheduler

    config = load_wordpress_sync_config()
    if config.scheduler_enabled:
        try:
            start_sync_scheduler(get_sync_runner(), tick_seconds=config.scheduler_tick_seconds)
        except Exception:
            logger.warning("WordPress sync scheduler failed to start", exc_info=True)

    yield

    stop_sync_scheduler()


app = FastAPI(
    title="Pilot",
    description="WordPress community and property feed sync API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RateLimitMiddleware, rate_limit=_RATE_LIMIT, window_seconds=_RATE_WINDOW_SECONDS)

app.include_router(wordpress_router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


if __name__ == "__main__":
    reload = getenv("RUNTIME_ENV", "prd") == "dev"
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=int(getenv("PORT", "8000")),
        reload=reload,
    )
