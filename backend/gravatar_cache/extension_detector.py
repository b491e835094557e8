"""
Extension Detector

Picks a file extension for a downloaded avatar by sniffing its content.
Bitmap formats are identified by Pillow from the file header; SVG is
recognised by its XML/SVG signature. The filename is never consulted.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "jpg"

MIME_TO_EXTENSION = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
}


class ExtensionDetector:
    """Maps downloaded content to a file extension, defaulting to jpg."""

    def __init__(self, default_extension: str = DEFAULT_EXTENSION):
        self.default_extension = default_extension

    @staticmethod
    def _is_svg(header: bytes) -> bool:
        """Check the leading bytes for an SVG document."""
        header = header.lstrip()
        if header.startswith(b"\xef\xbb\xbf"):
            header = header[3:].lstrip()
        if header.startswith(b"<svg"):
            return True
        if header.startswith(b"<?xml") or header.startswith(b"<!DOCTYPE svg"):
            return b"<svg" in header
        return False

    def detect_mime_type(self, file_path: Union[str, Path]) -> Optional[str]:
        """
        Sniff the MIME type of a file.

        Returns:
            The MIME type, or None if it can't be determined.
        """
        path = Path(file_path)

        try:
            with Image.open(path) as img:
                image_format = img.format
        except (UnidentifiedImageError, OSError, ValueError):
            image_format = None

        if image_format:
            return Image.MIME.get(image_format)

        try:
            with open(path, "rb") as f:
                header = f.read(500)
        except OSError:
            return None

        if self._is_svg(header):
            return "image/svg+xml"
        return None

    def detect(self, file_path: Union[str, Path]) -> str:
        """
        Detect the extension for a downloaded file.

        Never raises: a missing file, unreadable content or an
        unrecognised type all give the default extension.
        """
        try:
            if not Path(file_path).is_file():
                return self.default_extension

            mime_type = self.detect_mime_type(file_path)
        except Exception as e:
            logger.warning(f"[ExtensionDetector] Detection failed for {file_path}: {e}")
            return self.default_extension

        extension = MIME_TO_EXTENSION.get(mime_type or "", self.default_extension)
        logger.debug(f"[ExtensionDetector] {file_path}: {mime_type} -> {extension}")
        return extension
