"""Image normalizer service.

Turns a person or garment image reference into a transmittable
`EncodedImage`. References come in three shapes, resolved once here by
`ImageSource.parse`:

- a local file path (optionally prefixed with ``file://``)
- a remote ``http(s)`` URL, downloaded to a scratch file before reading
- an embedded ``data:`` URI carrying base64 image bytes

The image is resized so its longer edge equals the requested maximum
dimension and re-encoded as JPEG. Pillow work is blocking and runs in a
worker thread so the event loop stays responsive.

Example:
    normalizer = ImageNormalizer(http_client)
    encoded = await normalizer.normalize("https://cdn/example.jpg", 1024)
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging
import os
import re
import tempfile
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import aiofiles
import httpx
from PIL import Image, ImageOps, UnidentifiedImageError

from models.generation_models import EncodedImage

LOGGER = logging.getLogger(__name__)

OUTPUT_MIME_TYPE = "image/jpeg"
FULL_QUALITY = 80
THUMBNAIL_QUALITY = 70
THUMBNAIL_MAX_DIMENSION = 512

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]+)*);base64,(?P<data>.*)$", re.DOTALL)


class ImageReadError(OSError):
    """Raised when an image source cannot be read or downloaded."""


class ImageEncodeError(Exception):
    """Raised when image bytes cannot be decoded, resized, or re-encoded."""


class ImageSourceKind(str, Enum):
    LOCAL_PATH = "local_path"
    REMOTE_URL = "remote_url"
    DATA_URI = "data_uri"


class ImageVariant(str, Enum):
    """Output variant; selects the encode quality factor."""

    FULL = "full"
    THUMBNAIL = "thumbnail"

    @property
    def quality(self) -> int:
        return THUMBNAIL_QUALITY if self is ImageVariant.THUMBNAIL else FULL_QUALITY


@dataclass(frozen=True)
class ImageSource:
    """A classified image reference."""

    kind: ImageSourceKind
    ref: str
    location: str

    @classmethod
    def parse(cls, ref: str) -> "ImageSource":
        """Classify a raw reference string.

        Raises:
            ImageReadError: If the reference is empty.
        """
        cleaned = (ref or "").strip()
        if not cleaned:
            raise ImageReadError("Image reference is empty.")
        lowered = cleaned.lower()
        if lowered.startswith("data:"):
            return cls(ImageSourceKind.DATA_URI, ref, cleaned)
        if lowered.startswith(("http://", "https://")):
            return cls(ImageSourceKind.REMOTE_URL, ref, cleaned)
        if lowered.startswith("file://"):
            return cls(ImageSourceKind.LOCAL_PATH, ref, cleaned[len("file://"):])
        return cls(ImageSourceKind.LOCAL_PATH, ref, cleaned)


def decode_data_uri(uri: str) -> bytes:
    """Return the raw bytes embedded in a base64 ``data:`` URI."""
    match = _DATA_URI_RE.match(uri.strip())
    if not match:
        raise ImageReadError("Data URI is not base64-encoded.")
    try:
        return base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageReadError("Invalid base64 data in image reference.") from exc


def resize_and_encode(raw: bytes, max_dimension: int, quality: int) -> bytes:
    """Resize so the longer edge equals `max_dimension` and encode as JPEG.

    Aspect ratio is preserved. Images with alpha are flattened against white.

    Raises:
        ImageEncodeError: If the bytes are not a supported image or encoding fails.
    """
    if max_dimension <= 0:
        raise ImageEncodeError(f"max_dimension must be positive, got {max_dimension}.")
    try:
        with Image.open(io.BytesIO(raw)) as src:
            img = ImageOps.exif_transpose(src)
            img = img.convert("RGBA")

            width, height = img.size
            scale = max_dimension / float(max(width, height))
            target = (max(1, round(width * scale)), max(1, round(height * scale)))
            if target != img.size:
                img = img.resize(target, Image.LANCZOS)

            background = Image.new("RGB", img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[3])

            out_io = io.BytesIO()
            background.save(out_io, format="JPEG", quality=quality, optimize=True)
            return out_io.getvalue()
    except UnidentifiedImageError as exc:
        raise ImageEncodeError("Decoded bytes are not a supported image format.") from exc
    except (OSError, ValueError) as exc:
        raise ImageEncodeError(f"Image manipulation failed: {exc}") from exc


class ImageNormalizer:
    """Resolve, resize and encode image references.

    Args:
        http_client: Async HTTP client used for remote downloads. When omitted
            a short-lived client is opened per download.
        scratch_dir: Directory for downloaded files. Defaults to the
            `IMAGE_SCRATCH_DIR` environment variable or the system temp dir.
        download_timeout_s: Timeout applied to remote downloads.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        scratch_dir: Optional[str] = None,
        download_timeout_s: float = 30.0,
    ) -> None:
        self.http_client = http_client
        self.scratch_dir = scratch_dir or os.getenv("IMAGE_SCRATCH_DIR") or tempfile.gettempdir()
        self.download_timeout_s = download_timeout_s

    async def normalize(
        self,
        source_ref: str,
        max_dimension: int,
        variant: ImageVariant = ImageVariant.FULL,
    ) -> EncodedImage:
        """Read `source_ref` and return it as a resized, base64 JPEG payload.

        Args:
            source_ref: Local path, remote URL, or data URI.
            max_dimension: Target length of the longer edge in pixels.
            variant: Output variant controlling the JPEG quality factor.

        Raises:
            ImageReadError: If the source is unreadable or the download fails.
            ImageEncodeError: If resizing or encoding fails.
        """
        source = ImageSource.parse(source_ref)
        raw = await self._read_source(source)
        if not raw:
            raise ImageReadError(f"Image source is empty: {source.kind.value}")

        encoded = await asyncio.to_thread(resize_and_encode, raw, max_dimension, variant.quality)
        LOGGER.debug(
            "Normalized %s image to %d bytes (max_dimension=%d, variant=%s)",
            source.kind.value,
            len(encoded),
            max_dimension,
            variant.value,
        )
        return EncodedImage(
            source_ref=source.ref,
            mime_type=OUTPUT_MIME_TYPE,
            encoded_payload=base64.b64encode(encoded).decode("utf-8"),
        )

    async def compress_thumbnail(self, source_ref: str) -> EncodedImage:
        """Return the smaller wardrobe/thumbnail variant of an image."""
        return await self.normalize(source_ref, THUMBNAIL_MAX_DIMENSION, ImageVariant.THUMBNAIL)

    async def _read_source(self, source: ImageSource) -> bytes:
        if source.kind is ImageSourceKind.DATA_URI:
            return decode_data_uri(source.location)
        if source.kind is ImageSourceKind.REMOTE_URL:
            return await self._download_then_read(source.location)
        return await self._read_file(source.location)

    @staticmethod
    async def _read_file(path: str) -> bytes:
        try:
            async with aiofiles.open(path, "rb") as fh:
                return await fh.read()
        except OSError as exc:
            raise ImageReadError(f"Unable to read image file {path}: {exc}") from exc

    async def _download_then_read(self, url: str) -> bytes:
        """Download `url` into a scratch file, read it back, and remove the file."""
        scratch_path = os.path.join(self.scratch_dir, f"download_{uuid.uuid4().hex}.img")
        try:
            status, content = await self._fetch(url)
            if status != 200:
                raise ImageReadError(f"Failed to download image: HTTP {status}")
            try:
                async with aiofiles.open(scratch_path, "wb") as fh:
                    await fh.write(content)
            except OSError as exc:
                raise ImageReadError(f"Unable to write scratch file {scratch_path}: {exc}") from exc
            return await self._read_file(scratch_path)
        finally:
            if os.path.exists(scratch_path):
                try:
                    os.remove(scratch_path)
                except OSError:
                    LOGGER.warning("Could not remove scratch file %s", scratch_path)

    async def _fetch(self, url: str) -> Tuple[int, bytes]:
        try:
            if self.http_client is not None:
                response = await self.http_client.get(url, timeout=self.download_timeout_s)
            else:
                async with httpx.AsyncClient(follow_redirects=True) as client:
                    response = await client.get(url, timeout=self.download_timeout_s)
        except httpx.HTTPError as exc:
            raise ImageReadError(f"Image download failed: {exc}") from exc
        return response.status_code, response.content
