"""
Gravatar Cache API Routes

Provides endpoints for:
- Resolving remote gravatar URLs to local copies (single and batch)
- Rewriting avatar markup
- Manual cleanup and uninstall purge
- Health / schedule status

Each HTTP request gets its own download time budget; a batch shares it.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .html_rewriter import rewrite_avatar_html
from .resolver import GravatarCache, get_gravatar_cache

logger = logging.getLogger(__name__)

# ============================================
# Request/Response Models
# ============================================


class ResolveResponse(BaseModel):
    """Resolution result for one URL."""
    original_url: str
    url: str = Field(..., description="Local URL, or the fallback URL")
    cached: bool = Field(..., description="True if url points at the local cache")


class BatchResolveRequest(BaseModel):
    """Avatar URLs found on one page."""
    urls: List[str] = Field(..., max_length=500, description="Remote avatar URLs")


class BatchResolveResponse(BaseModel):
    success: bool
    total_requested: int
    total_cached: int
    budget_exhausted: bool
    results: List[ResolveResponse]


class RewriteRequest(BaseModel):
    html: str = Field(..., description="Avatar <img> markup")


class RewriteResponse(BaseModel):
    html: str


# ============================================
# Router
# ============================================

router = APIRouter(prefix="/api/gravatars", tags=["Gravatar Cache"])


def _is_local(cache: GravatarCache, url: str) -> bool:
    return bool(url) and url.startswith(cache.config.base_url.rstrip("/") + "/")


# ============================================
# Endpoints
# ============================================

@router.get("", response_model=ResolveResponse)
@router.get("/", response_model=ResolveResponse)
async def resolve_gravatar(
    url: str = Query(..., description="Remote gravatar URL"),
    cache: GravatarCache = Depends(get_gravatar_cache),
):
    """
    Resolve a remote gravatar URL to its local copy.

    Example:
        GET /api/gravatars?url=https://secure.gravatar.com/avatar/abcd1234
    """
    local_url = await cache.resolve(url)
    return ResolveResponse(original_url=url, url=local_url, cached=_is_local(cache, local_url))


@router.post("/resolve", response_model=BatchResolveResponse)
async def resolve_gravatars(
    request: BatchResolveRequest,
    cache: GravatarCache = Depends(get_gravatar_cache),
):
    """
    Resolve all avatar URLs of one page under a single time budget.

    Once the budget is spent the remaining URLs get the fallback.
    """
    budget = cache.current_budget()
    local_urls = await cache.resolve_many(request.urls, budget)

    results = [
        ResolveResponse(original_url=original, url=local, cached=_is_local(cache, local))
        for original, local in zip(request.urls, local_urls)
    ]
    total_cached = sum(1 for r in results if r.cached)

    logger.info(
        f"[GravatarRoutes] Batch resolved {total_cached}/{len(results)} "
        f"in {budget.elapsed():.2f}s"
    )

    return BatchResolveResponse(
        success=True,
        total_requested=len(results),
        total_cached=total_cached,
        budget_exhausted=budget.stopped,
        results=results,
    )


@router.post("/rewrite", response_model=RewriteResponse)
async def rewrite_gravatar_html(
    request: RewriteRequest,
    cache: GravatarCache = Depends(get_gravatar_cache),
):
    """Rewrite avatar markup to point at local copies."""
    html = await rewrite_avatar_html(request.html, cache)
    return RewriteResponse(html=html)


@router.post("/cleanup")
async def cleanup_gravatars(cache: GravatarCache = Depends(get_gravatar_cache)):
    """
    Delete all cached avatars now.

    This normally runs on the eviction schedule.
    """
    wiped = cache.wipe()
    return JSONResponse(content={
        "success": wiped,
        "message": "Cache wiped" if wiped else "Wipe failed, will retry on next scheduled run",
    })


@router.delete("/purge")
async def purge_gravatars(cache: GravatarCache = Depends(get_gravatar_cache)):
    """Delete the cache folder and remove the eviction schedule."""
    purged = cache.purge()
    return JSONResponse(content={"success": purged})


@router.get("/health")
async def health_check(cache: GravatarCache = Depends(get_gravatar_cache)):
    """Health check endpoint."""
    next_run: Optional[float] = cache.scheduler.next_run()
    return JSONResponse(content={
        "status": "healthy",
        "service": "gravatar-cache",
        "cache_dir": str(cache.store.base_path),
        "cleanup_scheduled": next_run is not None,
        "next_cleanup": next_run,
    })
