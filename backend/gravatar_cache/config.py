"""
Gravatar Cache Configuration

All settings have stable defaults and can be overridden either in code
(construct GravatarCacheConfig directly) or from environment variables
via GravatarCacheConfig.from_env().
"""

import os
from dataclasses import dataclass
from typing import Callable, Optional, Union

# Named cleanup frequencies (seconds)
CLEANUP_FREQUENCIES = {
    "hourly": 60 * 60,
    "twicedaily": 12 * 60 * 60,
    "daily": 24 * 60 * 60,
    "weekly": 7 * 24 * 60 * 60,
}

DEFAULT_CLEANUP_FREQUENCY = "weekly"
DEFAULT_MAX_PROCESS_TIME = 5.0

# (is_valid, url, host) -> final verdict
UrlValidator = Callable[[bool, str, str], bool]

# remote_url -> URL to return when no local copy can be used
FallbackResolver = Callable[[str], str]


@dataclass
class GravatarCacheConfig:
    """Configuration for the local gravatar cache."""
    # Storage
    base_path: str = "./gravatars"          # Cache folder on disk
    base_url: str = "/gravatars"            # Public URL of the cache folder

    # Source validation
    trusted_domain: str = "gravatar.com"
    url_validator: Optional[UrlValidator] = None

    # Time budget for cache-miss downloads, per request
    max_process_time: float = DEFAULT_MAX_PROCESS_TIME

    # Download settings
    download_timeout: float = 10.0
    max_image_size_mb: int = 10

    # Eviction
    cleanup_frequency: Union[str, int] = DEFAULT_CLEANUP_FREQUENCY
    schedule_state_file: Optional[str] = None
    primary_node: bool = True

    # Returned whenever a local copy can't be used. A callable receives
    # the remote URL, e.g. `lambda url: url` to keep serving the original.
    fallback_url: Union[str, FallbackResolver] = ""

    def cleanup_interval_seconds(self) -> int:
        """Resolve cleanup_frequency to a number of seconds."""
        frequency = self.cleanup_frequency
        if isinstance(frequency, str):
            key = frequency.strip().lower()
            if key in CLEANUP_FREQUENCIES:
                return CLEANUP_FREQUENCIES[key]
            if not key.isdigit():
                raise ValueError(f"Unknown cleanup frequency: {frequency!r}")
            frequency = int(key)

        seconds = int(frequency)
        if seconds <= 0:
            raise ValueError(f"Cleanup frequency must be positive, got {frequency!r}")
        return seconds

    def get_schedule_state_file(self) -> str:
        """Schedule state lives next to (not inside) the cache folder."""
        if self.schedule_state_file:
            return self.schedule_state_file
        return os.path.normpath(self.base_path) + ".schedule.json"

    @property
    def max_image_size_bytes(self) -> int:
        return self.max_image_size_mb * 1024 * 1024

    @classmethod
    def from_env(cls, **overrides) -> "GravatarCacheConfig":
        """
        Build a config from GRAVATAR_* environment variables.

        Keyword overrides win over the environment. Invalid numeric
        values raise ValueError.
        """
        values = dict(
            base_path=os.getenv("GRAVATAR_CACHE_DIR", cls.base_path),
            base_url=os.getenv("GRAVATAR_CACHE_BASE_URL", cls.base_url),
            trusted_domain=os.getenv("GRAVATAR_TRUSTED_DOMAIN", cls.trusted_domain),
            max_process_time=float(
                os.getenv("GRAVATAR_MAX_PROCESS_TIME", str(DEFAULT_MAX_PROCESS_TIME))
            ),
            download_timeout=float(os.getenv("GRAVATAR_DOWNLOAD_TIMEOUT", "10")),
            max_image_size_mb=int(os.getenv("GRAVATAR_MAX_IMAGE_SIZE_MB", "10")),
            cleanup_frequency=os.getenv(
                "GRAVATAR_CLEANUP_FREQUENCY", DEFAULT_CLEANUP_FREQUENCY
            ),
            schedule_state_file=os.getenv("GRAVATAR_SCHEDULE_STATE_FILE") or None,
            primary_node=os.getenv("GRAVATAR_PRIMARY_NODE", "true").lower()
            in ("true", "1", "yes"),
            fallback_url=os.getenv("GRAVATAR_FALLBACK_URL", ""),
        )
        values.update(overrides)
        config = cls(**values)

        # Fail fast on a bad frequency
        config.cleanup_interval_seconds()
        return config
