"""
Gravatar cache test configuration.

Fixtures build a GravatarCache rooted in a temporary directory with a
fake download capability, so no test touches the network.
"""

import io
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from PIL import Image

# Add the backend directory to the Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from gravatar_cache.config import GravatarCacheConfig
from gravatar_cache.errors import DownloadFailed
from gravatar_cache.resolver import GravatarCache


# ============================================
# Image bytes
# ============================================

def make_image_bytes(image_format: str) -> bytes:
    """Encode a tiny image with Pillow."""
    output = io.BytesIO()
    Image.new("RGB", (4, 4), (200, 30, 30)).save(output, format=image_format)
    return output.getvalue()


SVG_BYTES = (
    b'<?xml version="1.0" encoding="UTF-8"?>\n'
    b'<svg xmlns="http://www.w3.org/2000/svg" width="8" height="8"></svg>'
)


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes("JPEG")


# ============================================
# Fakes
# ============================================

class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDownloader:
    """
    Download capability that writes canned bytes to a temp file.

    Bytes are looked up by URL, falling back to `default`. A URL mapped
    to None fails with DownloadFailed.
    """

    def __init__(
        self,
        tmp_dir: Path,
        default: Optional[bytes] = None,
        responses: Optional[Dict[str, Optional[bytes]]] = None,
        clock: Optional[FakeClock] = None,
        seconds_per_download: float = 0.0,
    ):
        self.tmp_dir = tmp_dir
        self.tmp_dir.mkdir(parents=True, exist_ok=True)
        self.default = default
        self.responses = responses or {}
        self.clock = clock
        self.seconds_per_download = seconds_per_download
        self.calls: List[str] = []

    async def download(self, url: str) -> Path:
        self.calls.append(url)
        if self.clock is not None:
            self.clock.advance(self.seconds_per_download)

        data = self.responses.get(url, self.default)
        if data is None:
            raise DownloadFailed("HTTP 404")

        tmp_path = self.tmp_dir / f"download-{len(self.calls)}.tmp"
        tmp_path.write_bytes(data)
        return tmp_path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================
# Cache fixtures
# ============================================

@pytest.fixture
def config(tmp_path) -> GravatarCacheConfig:
    return GravatarCacheConfig(
        base_path=str(tmp_path / "gravatars"),
        base_url="https://example.org/wp-content/gravatars",
        schedule_state_file=str(tmp_path / "schedule.json"),
    )


@pytest.fixture
def downloader(tmp_path, png_bytes) -> FakeDownloader:
    return FakeDownloader(tmp_path / "downloads", default=png_bytes)


@pytest.fixture
def cache(config, downloader) -> GravatarCache:
    return GravatarCache(config, downloader=downloader)


@pytest.fixture
def cache_dir(config) -> Path:
    return Path(config.base_path)
