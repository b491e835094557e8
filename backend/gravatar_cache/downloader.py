"""
Avatar Downloader

Download capability for the gravatar cache: fetches a remote avatar with
a plain GET and streams it into a temporary file. Any failure raises
DownloadFailed and leaves no temporary file behind.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

import httpx

from .errors import DownloadFailed

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5


class Downloader(Protocol):
    """Fetches a URL into a local temporary file."""

    async def download(self, url: str) -> Path: ...


class AvatarDownloader:
    """
    httpx-backed downloader.

    Usage:
        downloader = AvatarDownloader(timeout=10)
        tmp_path = await downloader.download(url)
        ...
        await downloader.close()
    """

    def __init__(
        self,
        timeout: float = 10.0,
        max_size_bytes: int = 10 * 1024 * 1024,
        tmp_dir: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.max_size_bytes = max_size_bytes
        self.tmp_dir = tmp_dir
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
            headers={
                "User-Agent": "gravatar-cache/1.0",
                "Accept": "image/*,*/*;q=0.8",
            },
        )

    async def close(self) -> None:
        """Close HTTP client (only if we created it)."""
        if self._owns_client:
            await self.http_client.aclose()

    async def download(self, url: str) -> Path:
        """
        Download url into a temporary file.

        Returns:
            Path of the temporary file. The caller owns it from here on.

        Raises:
            DownloadFailed: on timeout, HTTP error status, transport
                error or oversized body.
        """
        fd, tmp_name = tempfile.mkstemp(prefix="gravatar-", suffix=".tmp", dir=self.tmp_dir)
        tmp_path = Path(tmp_name)
        downloaded = False

        try:
            logger.info(f"[AvatarDownloader] Downloading: {url[:60]}...")
            with os.fdopen(fd, "wb") as f:
                async with self.http_client.stream("GET", url) as response:
                    response.raise_for_status()
                    if response.status_code != 200:
                        raise DownloadFailed(f"HTTP {response.status_code}")

                    size = 0
                    async for chunk in response.aiter_bytes():
                        size += len(chunk)
                        if size > self.max_size_bytes:
                            raise DownloadFailed(
                                f"Avatar too large (> {self.max_size_bytes} bytes)"
                            )
                        f.write(chunk)

            logger.info(f"[AvatarDownloader] Downloaded: {url[:60]}... ({size} bytes)")
            downloaded = True
            return tmp_path

        except httpx.TimeoutException:
            logger.error(f"[AvatarDownloader] Timeout: {url[:60]}...")
            raise DownloadFailed("Download timeout")

        except httpx.HTTPStatusError as e:
            logger.error(f"[AvatarDownloader] HTTP error {e.response.status_code}: {url[:60]}...")
            raise DownloadFailed(f"HTTP {e.response.status_code}")

        except DownloadFailed as e:
            logger.error(f"[AvatarDownloader] {e}: {url[:60]}...")
            raise

        except (httpx.HTTPError, OSError) as e:
            logger.error(f"[AvatarDownloader] Error: {url[:60]}... - {e}")
            raise DownloadFailed(str(e)) from e

        finally:
            # Also covers cancellation, which is not an Exception
            if not downloaded:
                tmp_path.unlink(missing_ok=True)
