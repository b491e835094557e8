"""
Gravatar Cache

Turns a remote gravatar URL into the URL of a locally stored copy,
downloading the image the first time it is requested.

Flow for one URL:
1. Time budget spent?            -> fallback
2. Not a trusted gravatar URL?   -> fallback
3. Cached under any extension?   -> local URL (no download)
4. Download, sniff the extension, move into the cache -> local URL
Any failure along the way returns the fallback URL; resolve() never raises.
"""

import logging
import time
from pathlib import Path
from typing import Callable, Iterable, List, Optional
from urllib.parse import urlparse

from .cache_store import CacheStore, derive_stem
from .config import GravatarCacheConfig
from .downloader import AvatarDownloader, Downloader
from .errors import (
    BudgetExhausted,
    DownloadFailed,
    GravatarCacheError,
    InvalidSource,
    PersistFailed,
    SanitizationEmpty,
)
from .extension_detector import ExtensionDetector
from .scheduler import EvictionScheduler
from .time_budget import TimeBudget, current_budget as scoped_budget

logger = logging.getLogger(__name__)


class GravatarCache:
    """
    Local gravatar cache.

    Usage:
        cache = GravatarCache(GravatarCacheConfig(base_path="/srv/gravatars"))
        with request_budget(cache.new_budget()):   # one per incoming request
            url = await cache.resolve(remote_url)
    """

    def __init__(
        self,
        config: Optional[GravatarCacheConfig] = None,
        store: Optional[CacheStore] = None,
        downloader: Optional[Downloader] = None,
        detector: Optional[ExtensionDetector] = None,
        scheduler: Optional[EvictionScheduler] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or GravatarCacheConfig()
        self._clock = clock
        self._process_budget: Optional[TimeBudget] = None
        self.store = store or CacheStore(self.config.base_path)
        self.downloader = downloader or AvatarDownloader(
            timeout=self.config.download_timeout,
            max_size_bytes=self.config.max_image_size_bytes,
        )
        self.detector = detector or ExtensionDetector()
        self.scheduler = scheduler or EvictionScheduler(
            state_file=self.config.get_schedule_state_file(),
            callback=self.wipe,
            interval_seconds=self.config.cleanup_interval_seconds(),
            primary_node=self.config.primary_node,
        )

    # ============================================
    # URLs
    # ============================================

    def new_budget(self) -> TimeBudget:
        """Create a fresh download time budget for one request."""
        return TimeBudget(self.config.max_process_time, clock=self._clock)

    def current_budget(self) -> TimeBudget:
        """
        Budget of the current request scope.

        Outside of any request_budget() scope all calls share a single
        budget for the lifetime of this cache.
        """
        budget = scoped_budget()
        if budget is not None:
            return budget
        if self._process_budget is None:
            self._process_budget = self.new_budget()
        return self._process_budget

    def fallback_url(self, remote_url: str = "") -> str:
        """Configured fallback; a callable picks one per remote URL."""
        fallback = self.config.fallback_url
        if not callable(fallback):
            return fallback
        try:
            return str(fallback(remote_url))
        except Exception as e:
            logger.error(f"[GravatarCache] Fallback callable failed: {e}", exc_info=True)
            return ""

    def local_url(self, filename: str) -> str:
        return self.config.base_url.rstrip("/") + "/" + filename

    def is_trusted_host(self, host: str) -> bool:
        """Exact match or subdomain of the trusted domain."""
        domain = self.config.trusted_domain.lower().strip(".")
        return host == domain or host.endswith("." + domain)

    def is_valid_url(self, url: str) -> bool:
        """
        Check that url points at the trusted domain.

        Covers gravatar.com, www.gravatar.com, secure.gravatar.com,
        0.gravatar.com and so on. The configured url_validator gets the
        final say.
        """
        if not url or not isinstance(url, str):
            return False

        try:
            parsed = urlparse(url.strip())
            host = (parsed.hostname or "").lower()
        except ValueError:
            return False

        if not host or parsed.scheme not in ("", "http", "https"):
            is_valid = False
        else:
            is_valid = self.is_trusted_host(host)

        if self.config.url_validator is not None:
            return bool(self.config.url_validator(is_valid, url, host))
        return is_valid

    # ============================================
    # Resolution
    # ============================================

    async def resolve(self, remote_url: str, budget: Optional[TimeBudget] = None) -> str:
        """
        Get the local URL for a remote avatar.

        Args:
            remote_url: Remote gravatar URL
            budget: Download time budget to spend. Defaults to the budget
                of the current request scope.

        Returns:
            Local URL on success, otherwise the fallback URL.
        """
        if budget is None:
            budget = self.current_budget()

        try:
            return await self._resolve(remote_url, budget)
        except GravatarCacheError as e:
            logger.info(
                f"[GravatarCache] Fallback ({type(e).__name__}: {e}) for {str(remote_url)[:60]}"
            )
        except Exception as e:
            logger.error(
                f"[GravatarCache] Unexpected error for {str(remote_url)[:60]}: {e}",
                exc_info=True,
            )
        return self.fallback_url(remote_url)

    async def _resolve(self, remote_url: str, budget: TimeBudget) -> str:
        if not budget.should_process():
            raise BudgetExhausted("download time budget spent")

        if not self.is_valid_url(remote_url):
            raise InvalidSource("not a trusted gravatar URL")

        remote_url = remote_url.strip()
        if remote_url.startswith("//"):
            remote_url = "https:" + remote_url

        # A failure here surfaces as a persist failure below
        self.store.ensure_dir()

        stem = derive_stem(remote_url)
        if not stem:
            raise SanitizationEmpty("empty filename after sanitization")

        existing = self.store.exists(stem)
        if existing:
            logger.debug(f"[GravatarCache] Cache hit: {existing}")
            return self.local_url(existing)

        try:
            tmp_path = await self.downloader.download(remote_url)
        except DownloadFailed:
            raise
        except Exception as e:
            raise DownloadFailed(str(e)) from e

        extension = self.detector.detect(tmp_path)
        filename = f"{stem}.{extension}"

        if not self.store.persist(tmp_path, filename):
            Path(tmp_path).unlink(missing_ok=True)
            raise PersistFailed(f"could not store {filename}")

        logger.info(f"[GravatarCache] Cached {remote_url[:60]} as {filename}")
        return self.local_url(filename)

    async def resolve_many(
        self, urls: Iterable[str], budget: Optional[TimeBudget] = None
    ) -> List[str]:
        """Resolve URLs in order, sharing one time budget."""
        if budget is None:
            budget = self.current_budget()
        return [await self.resolve(url, budget) for url in urls]

    # ============================================
    # Eviction
    # ============================================

    def wipe(self) -> bool:
        """Delete the whole cache folder. Also the scheduled callback."""
        return self.store.wipe(True)

    def schedule_cleanup(self) -> bool:
        """Register the recurring wipe. Call once at startup."""
        return self.scheduler.register()

    def unschedule_cleanup(self) -> bool:
        return self.scheduler.unregister()

    def purge(self) -> bool:
        """
        Uninstall: delete the cache folder and drop the schedule.

        Safe to call when nothing was ever cached.
        """
        wiped = self.wipe()
        unscheduled = self.unschedule_cleanup()
        return wiped and unscheduled

    async def close(self) -> None:
        close = getattr(self.downloader, "close", None)
        if close is not None:
            await close()


# ============================================
# Module-level entry points
# ============================================

_default_cache: Optional[GravatarCache] = None


def get_gravatar_cache() -> GravatarCache:
    """Shared cache instance configured from the environment."""
    global _default_cache
    if _default_cache is None:
        _default_cache = GravatarCache(GravatarCacheConfig.from_env())
    return _default_cache


def set_gravatar_cache(cache: Optional[GravatarCache]) -> None:
    global _default_cache
    _default_cache = cache


async def resolve_avatar_url(remote_url: str, budget: Optional[TimeBudget] = None) -> str:
    """Resolve one avatar URL with the shared cache."""
    return await get_gravatar_cache().resolve(remote_url, budget)


def purge() -> bool:
    """Delete the shared cache folder and its schedule."""
    return get_gravatar_cache().purge()
