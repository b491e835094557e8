"""
Gravatar Cache Module

Hosts remote gravatar images locally: a remote avatar URL is turned into
the URL of a local copy, downloaded on first request.

Features:
- Trusted-domain URL validation
- Content-sniffed file extensions
- Per-request download time budget
- Scheduled full-cache eviction
"""

from .cache_store import CacheStore, derive_stem, sanitize_file_name
from .config import GravatarCacheConfig
from .downloader import AvatarDownloader
from .errors import (
    BudgetExhausted,
    DownloadFailed,
    GravatarCacheError,
    InvalidSource,
    PersistFailed,
    SanitizationEmpty,
)
from .extension_detector import ExtensionDetector
from .filesystem import LocalFilesystem
from .resolver import GravatarCache, purge, resolve_avatar_url
from .scheduler import EvictionScheduler
from .time_budget import TimeBudget, request_budget

__all__ = [
    "AvatarDownloader",
    "BudgetExhausted",
    "CacheStore",
    "DownloadFailed",
    "EvictionScheduler",
    "ExtensionDetector",
    "GravatarCache",
    "GravatarCacheConfig",
    "GravatarCacheError",
    "InvalidSource",
    "LocalFilesystem",
    "PersistFailed",
    "SanitizationEmpty",
    "TimeBudget",
    "derive_stem",
    "purge",
    "request_budget",
    "resolve_avatar_url",
    "sanitize_file_name",
]
