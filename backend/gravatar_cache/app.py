"""
Gravatar cache service.

Registers the eviction schedule once at startup, polls it in the
background, scopes a download time budget to every HTTP request, and
serves the cached files under base_url.

Run:
    uvicorn --factory gravatar_cache.app:create_app
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles

from .config import GravatarCacheConfig
from .resolver import GravatarCache, set_gravatar_cache
from .routes_fastapi import router
from .time_budget import request_budget

logger = logging.getLogger(__name__)

SCHEDULER_POLL_SECONDS = 60.0


def create_app(
    config: Optional[GravatarCacheConfig] = None,
    cache: Optional[GravatarCache] = None,
    poll_seconds: float = SCHEDULER_POLL_SECONDS,
) -> FastAPI:
    """Build the FastAPI app around one GravatarCache."""
    if cache is None:
        cache = GravatarCache(config or GravatarCacheConfig.from_env())
    set_gravatar_cache(cache)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        cache.schedule_cleanup()
        poller = asyncio.create_task(cache.scheduler.run_forever(poll_seconds))
        yield
        # Shutdown
        poller.cancel()
        with suppress(asyncio.CancelledError):
            await poller
        await cache.close()

    app = FastAPI(title="Gravatar Cache", version="1.0", lifespan=lifespan)
    app.state.gravatar_cache = cache

    @app.middleware("http")
    async def scope_time_budget(request: Request, call_next):
        # Every avatar resolved while handling this request shares one budget
        with request_budget(cache.new_budget()):
            return await call_next(request)

    app.include_router(router)

    base_url = cache.config.base_url.rstrip("/")
    if base_url.startswith("/"):
        app.mount(
            base_url,
            StaticFiles(directory=str(cache.store.base_path), check_dir=False),
            name="gravatars",
        )

    return app
