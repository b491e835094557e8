"""
Gravatar cache errors.

Every one of these is handled inside GravatarCache.resolve and turns into
the configured fallback URL. They never reach the caller.
"""


class GravatarCacheError(Exception):
    """Base class for gravatar cache failures."""


class InvalidSource(GravatarCacheError):
    """URL is missing, unparsable or not from the trusted domain."""


class BudgetExhausted(GravatarCacheError):
    """The per-request download time budget has been spent."""


class SanitizationEmpty(GravatarCacheError):
    """Nothing was left of the filename stem after sanitization."""


class DownloadFailed(GravatarCacheError):
    """The remote avatar could not be downloaded."""


class PersistFailed(GravatarCacheError):
    """The downloaded file could not be moved into the cache folder."""
