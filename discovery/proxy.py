"""Fetch remote bottle images so clients only ever load images from our own origin."""

import logging
from typing import Optional, Tuple
from urllib.parse import urlparse

import requests

from shared.constants import IMAGE_PROXY_MAX_BYTES

logger = logging.getLogger(__name__)

PROXY_TIMEOUT = 5  # seconds
PROXY_USER_AGENT = "Mozilla/5.0 (compatible; BourbonBuddy/1.0)"

_session = requests.Session()


def validate_image_url(url: Optional[str]) -> str:
    """Raises ValueError unless url is an absolute http(s) URL."""
    if not url:
        raise ValueError("Image URL is required")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("Invalid URL")
    return url


def fetch_image(url: str, max_bytes: int = IMAGE_PROXY_MAX_BYTES) -> Optional[Tuple[bytes, str]]:
    """
    Download an image.

    Returns:
        (content, content_type), or None if the fetch failed, the response
        is not an image, or it is larger than max_bytes

    Raises:
        ValueError: url is not http(s)
    """
    validate_image_url(url)
    try:
        with _session.get(url, headers={"User-Agent": PROXY_USER_AGENT}, timeout=PROXY_TIMEOUT, stream=True) as response:
            if response.status_code != 200:
                logger.info(f"Image proxy: {url} returned {response.status_code}")
                return None
            content_type = response.headers.get("Content-Type", "image/jpeg").split(";")[0].strip()
            if not content_type.startswith("image/"):
                logger.info(f"Image proxy: {url} is {content_type}, not an image")
                return None

            chunks = []
            size = 0
            for chunk in response.iter_content(chunk_size=64 * 1024):
                size += len(chunk)
                if size > max_bytes:
                    logger.warning(f"Image proxy: {url} exceeds {max_bytes} bytes")
                    return None
                chunks.append(chunk)
            return b"".join(chunks), content_type
    except requests.RequestException as e:
        logger.warning(f"Image proxy fetch failed for {url}: {e}")
        return None
