"""Image preprocessing: decode, downsample and re-encode to a bounded JPEG payload."""

import asyncio
import base64
import binascii
import io
import logging
from pathlib import Path

import httpx
from PIL import Image, ImageOps, UnidentifiedImageError

from ..errors import DecodeError, RenderError
from .blob_store import BLOB_SCHEME, BlobStore

logger = logging.getLogger(__name__)

# Tuned against the request size ceiling of the image model endpoint; not configurable.
JPEG_QUALITY = 60
DEFAULT_MAX_DIMENSION = 800

# 200 MP phone sensors must still decode; sources above this are refused.
MAX_SOURCE_PIXELS = 250_000_000
Image.MAX_IMAGE_PIXELS = MAX_SOURCE_PIXELS

ImageSource = bytes | str | Path


def scaled_size(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Fit (width, height) inside max_dimension, keeping aspect ratio. Never upscales."""
    if max(width, height) <= max_dimension:
        return width, height
    if width > height:
        return max_dimension, max(1, round(height * max_dimension / width))
    return max(1, round(width * max_dimension / height)), max_dimension


class ImagePreprocessor:
    """Turns uploads and image references into transport-ready base64 JPEG payloads."""

    def __init__(
        self,
        blob_store: BlobStore | None = None,
        fetch_timeout: float = 30.0,
    ):
        self.blob_store = blob_store if blob_store is not None else BlobStore()
        self.fetch_timeout = fetch_timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client used for remote image URLs."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.fetch_timeout, follow_redirects=True)
        return self._client

    async def normalize(
        self,
        source: ImageSource,
        max_dimension: int = DEFAULT_MAX_DIMENSION,
    ) -> str:
        """Decode an image, bound its long edge and re-encode it as JPEG.

        Args:
            source: Raw image bytes, or a blob:/data:/http(s) reference or file path
            max_dimension: Maximum width/height in pixels of the output

        Returns:
            Base64 JPEG payload without any data: prefix

        Raises:
            DecodeError: The source could not be loaded or is not an image
            RenderError: Resizing or encoding failed
        """
        if max_dimension <= 0:
            raise ValueError("max_dimension must be positive")

        raw_bytes = await self._load_bytes(source)
        encoded = await asyncio.to_thread(self._resize_and_encode, raw_bytes, max_dimension)
        return base64.b64encode(encoded).decode("ascii")

    async def _load_bytes(self, source: ImageSource) -> bytes:
        """Resolve a source to raw image bytes."""
        if isinstance(source, bytes):
            return source

        if isinstance(source, Path):
            return await self._read_file(source)

        if source.startswith(BLOB_SCHEME):
            try:
                return self.blob_store.resolve(source)
            except KeyError:
                raise DecodeError(f"Blob handle is not registered: {source}") from None

        if source.startswith("data:"):
            _, _, encoded = source.partition(",")
            try:
                return base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError) as e:
                raise DecodeError("Data URL does not contain valid base64") from e

        if source.startswith(("http://", "https://")):
            try:
                response = await self.client.get(
                    source,
                    headers={"Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8"},
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise DecodeError(f"Failed to load image from {source}: {e}") from e
            return response.content

        return await self._read_file(Path(source))

    async def _read_file(self, path: Path) -> bytes:
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise DecodeError(f"Failed to read image file {path}: {e}") from e

    def _resize_and_encode(self, raw_bytes: bytes, max_dimension: int) -> bytes:
        try:
            img = Image.open(io.BytesIO(raw_bytes))
            if img.width * img.height > MAX_SOURCE_PIXELS:
                raise DecodeError(
                    f"Image size ({img.width}x{img.height}) exceeds {MAX_SOURCE_PIXELS} pixels"
                )
            # JPEG only: decode at the smallest DCT scale that still covers the bound
            img.draft("RGB", (max_dimension, max_dimension))
            img.load()
            img = ImageOps.exif_transpose(img)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
            raise DecodeError(f"Failed to decode image: {e}") from e

        try:
            # Palette and bilevel images only resize with NEAREST
            img = _flatten(img)

            size = scaled_size(img.width, img.height, max_dimension)
            if size != img.size:
                logger.debug("Resizing %sx%s -> %sx%s", img.width, img.height, *size)
                img = img.resize(size, Image.Resampling.LANCZOS)

            output = io.BytesIO()
            img.save(output, format="JPEG", quality=JPEG_QUALITY)
            return output.getvalue()
        except (OSError, ValueError, MemoryError) as e:
            raise RenderError(f"Failed to render image: {e}") from e

    async def close(self):
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


def _flatten(img: Image.Image) -> Image.Image:
    """Convert to RGB, compositing any transparency onto white."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img
