"""
Downloads external images and stores them under stable, content-addressed names.
"""
import asyncio
import hashlib
import io
import logging
import os
from enum import Enum
from typing import Optional, Tuple
from urllib.parse import urlparse

import httpx
from PIL import Image, ImageOps

from core.errors import StorageError
from services.object_storage import ObjectStorage

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; LocalNewsCurator/1.0; Newsletter/1.0)"
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")


class ImageNamespace(str, Enum):
    NEWS = "newsletter-images"
    WEATHER = "weather-images"
    LISTING = "listing-images"


class ImageRejected(Exception):
    """Image failed validation (status, type or size)."""


def url_filename(url: str) -> str:
    """md5 of the source URL plus the extension found in its path (.jpg by default)."""
    ext = os.path.splitext(urlparse(url).path)[1].lower()
    if ext not in IMAGE_EXTENSIONS:
        ext = ".jpg"
    return f"{hashlib.md5(url.encode('utf-8')).hexdigest()}{ext}"


def resize_listing_image(data: bytes, size: Tuple[int, int], quality: int = 85) -> bytes:
    """Crop-to-fill around the centre and re-encode as progressive JPEG."""
    with Image.open(io.BytesIO(data)) as img:
        img = ImageOps.exif_transpose(img).convert("RGB")
        fitted = ImageOps.fit(img, size, method=Image.LANCZOS, centering=(0.5, 0.5))
        out = io.BytesIO()
        fitted.save(out, format="JPEG", quality=quality, progressive=True, optimize=True)
        return out.getvalue()


class ImageRehoster:
    """
    Rehosts images on durable storage. ``rehost`` never raises: every
    failure is logged and reported as None so callers keep the original URL.
    """

    def __init__(
        self,
        storage: ObjectStorage,
        *,
        timeout: float = 15.0,
        listing_timeout: float = 20.0,
        max_bytes: int = 5 * 1024 * 1024,
        listing_size: Tuple[int, int] = (575, 325),
        jpeg_quality: int = 85,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.storage = storage
        self.timeout = timeout
        self.listing_timeout = listing_timeout
        self.max_bytes = max_bytes
        self.listing_size = listing_size
        self.jpeg_quality = jpeg_quality
        self.transport = transport

    async def rehost(
        self,
        url: Optional[str],
        label: str = "",
        namespace: ImageNamespace = ImageNamespace.NEWS,
    ) -> Optional[str]:
        if not url or not url.startswith(("http://", "https://")):
            return None
        try:
            if namespace is ImageNamespace.LISTING:
                return await self._rehost_listing(url, label)
            return await self._rehost_by_url(url, label, namespace)
        except ImageRejected as e:
            logger.warning(f"Image rejected: {e} (url={url})")
        except (httpx.HTTPError, StorageError) as e:
            logger.error(f"Image rehost failed: {e} (url={url})")
        except Exception as e:
            logger.exception(f"Unexpected image rehost error: {e} (url={url})")
        return None

    async def _rehost_by_url(self, url: str, label: str, namespace: ImageNamespace) -> str:
        path = f"{namespace.value}/{url_filename(url)}"

        existing = await self.storage.get_existing_url(path)
        if existing:
            logger.info(f"Image already hosted at {path}")
            return existing

        data = await self.download(url, timeout=self.timeout)
        return await self.storage.upload(
            data, path, f"Add newsletter image for article: {label or path}"
        )

    async def _rehost_listing(self, url: str, label: str) -> str:
        data = await self.download(url, timeout=self.listing_timeout)
        resized = await asyncio.to_thread(
            resize_listing_image, data, self.listing_size, self.jpeg_quality
        )
        digest = hashlib.sha1(resized).hexdigest()[:16]
        path = f"{ImageNamespace.LISTING.value}/listing-{digest}.jpg"

        existing = await self.storage.get_existing_url(path)
        if existing:
            logger.info(f"Listing image already hosted at {path}")
            return existing

        return await self.storage.upload(
            resized, path, f"Add listing image: {label or digest}"
        )

    async def download(self, url: str, *, timeout: float) -> bytes:
        """Fetch image bytes, enforcing status, content type and the size cap."""
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            transport=self.transport,
        ) as client:
            async with client.stream("GET", url) as resp:
                if resp.status_code != 200:
                    raise ImageRejected(f"HTTP {resp.status_code}")

                content_type = resp.headers.get("content-type", "").lower()
                if not content_type.startswith("image/"):
                    raise ImageRejected(f"content type {content_type or 'missing'}")

                declared = resp.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self.max_bytes:
                    raise ImageRejected(f"declared size {declared} exceeds {self.max_bytes}")

                buffer = bytearray()
                async for chunk in resp.aiter_bytes():
                    buffer.extend(chunk)
                    if len(buffer) > self.max_bytes:
                        raise ImageRejected(f"size exceeds {self.max_bytes}")

        if not buffer:
            raise ImageRejected("empty body")
        return bytes(buffer)
