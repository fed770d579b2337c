"""
Image transport utilities.

Turns uploaded bytes, base64 payloads and fetched URLs into bounded ImageAssets:
decoded with Pillow, downscaled so the long edge is at most MAX_IMAGE_DIMENSION
and re-encoded as JPEG at a fixed quality.
"""

import io
import re
import base64
import binascii
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import requests
from PIL import Image, UnidentifiedImageError

from .constants import (
    MAX_IMAGE_DIMENSION,
    IMAGE_JPEG_QUALITY,
    MAX_UPLOAD_BYTES,
    ALLOWED_IMAGE_FORMATS,
    URL_FETCH_TIMEOUT_SECONDS,
    DEFAULT_OUTPUT_MIME_TYPE,
)
from .errors import AssetUnavailableError, InvalidRequestError

logger = logging.getLogger(__name__)

_DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(;[\w=-]+)*;base64,", re.IGNORECASE)


@dataclass(frozen=True)
class ImageAsset:
    """An encoded image ready for transport. Immutable, request-scoped."""

    data: bytes
    mime_type: str = "image/jpeg"
    width: Optional[int] = None
    height: Optional[int] = None

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("utf-8")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"

    @classmethod
    def from_base64(cls, payload: str, mime_type: str = DEFAULT_OUTPUT_MIME_TYPE) -> "ImageAsset":
        """Wrap a model-returned base64 payload without re-encoding it."""
        return cls(data=base64.b64decode(payload), mime_type=mime_type)


def strip_data_url_prefix(payload: str) -> str:
    """Remove a leading ``data:image/...;base64,`` prefix if present."""
    return _DATA_URL_PATTERN.sub("", payload.strip(), count=1)


def decode_base64_payload(payload: str, max_bytes: int = MAX_UPLOAD_BYTES) -> bytes:
    """
    Decode a base64 image payload as sent by the browser client.

    Raises:
        InvalidRequestError: payload is empty or larger than ``max_bytes``
        AssetUnavailableError: payload is not valid base64
    """
    if not payload or not isinstance(payload, str) or not payload.strip():
        raise InvalidRequestError("Missing input image")

    cleaned = re.sub(r"\s+", "", strip_data_url_prefix(payload))
    try:
        raw = base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AssetUnavailableError("Image payload is not valid base64", details=str(e))

    if len(raw) > max_bytes:
        raise InvalidRequestError(f"Image must be smaller than {max_bytes // (1024 * 1024)}MB")
    return raw


def encode_image(
    raw_image: bytes,
    max_dimension: int = MAX_IMAGE_DIMENSION,
    quality: int = IMAGE_JPEG_QUALITY,
) -> ImageAsset:
    """
    Decode raw image bytes, bound the long edge and re-encode as JPEG.

    Args:
        raw_image: Image file bytes in any format Pillow can read
        max_dimension: Maximum long-edge size in pixels
        quality: JPEG quality used for the re-encode

    Returns:
        ImageAsset holding the JPEG bytes and final dimensions

    Raises:
        AssetUnavailableError: bytes are not a readable ALLOWED_IMAGE_FORMATS image
            or exceed the Pillow pixel limit
    """
    if not raw_image:
        raise AssetUnavailableError("Image data is empty")

    try:
        with Image.open(io.BytesIO(raw_image), formats=ALLOWED_IMAGE_FORMATS) as img:
            img.load()
            image = img.convert("RGBA") if img.mode in ("P", "LA") else img.copy()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise AssetUnavailableError("Could not decode image data", details=str(e))

    # JPEG has no alpha; flatten transparent regions onto white
    if image.mode == "RGBA":
        background = Image.new("RGB", image.size, (255, 255, 255))
        background.paste(image, mask=image.split()[-1])
        image = background
    elif image.mode != "RGB":
        image = image.convert("RGB")

    original_size = image.size
    image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
    if image.size != original_size:
        logger.debug(f"Resized image from {original_size} to {image.size}")

    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality, optimize=True)
    width, height = image.size
    return ImageAsset(data=buffer.getvalue(), mime_type="image/jpeg", width=width, height=height)


def encode_base64_image(payload: str, max_dimension: int = MAX_IMAGE_DIMENSION) -> ImageAsset:
    """Decode a base64 upload and run it through encode_image."""
    return encode_image(decode_base64_payload(payload), max_dimension=max_dimension)


async def encode_upload(payload: str, max_dimension: int = MAX_IMAGE_DIMENSION) -> ImageAsset:
    """encode_base64_image on a worker thread, keeping Pillow work off the event loop."""
    return await asyncio.to_thread(encode_base64_image, payload, max_dimension)


def _download(url: str, timeout: int) -> bytes:
    response = requests.get(url, timeout=timeout, headers={"Accept": "image/*,*/*;q=0.8"})
    response.raise_for_status()
    content_type = response.headers.get("content-type", "")
    if content_type and not content_type.startswith("image/") and "octet-stream" not in content_type:
        raise AssetUnavailableError(f"URL is not a direct image link (content-type: {content_type})")
    return response.content


async def fetch_and_encode(
    url: str,
    max_dimension: int = MAX_IMAGE_DIMENSION,
    timeout: int = URL_FETCH_TIMEOUT_SECONDS,
) -> ImageAsset:
    """
    Fetch an image referenced by URL (library item or previous result) and encode it.

    ``data:`` URLs are decoded in place without a network round trip. The
    download and the re-encode both run on worker threads.
    """
    if not url:
        raise InvalidRequestError("Missing image URL")

    if url.startswith("data:"):
        return await encode_upload(url, max_dimension=max_dimension)

    if not url.startswith(("http://", "https://")):
        raise AssetUnavailableError(f"Unsupported image URL scheme: {url[:40]}")

    try:
        raw = await asyncio.to_thread(_download, url, timeout)
    except requests.RequestException as e:
        raise AssetUnavailableError(f"Failed to fetch image from {url}", details=str(e))

    return await asyncio.to_thread(encode_image, raw, max_dimension)
