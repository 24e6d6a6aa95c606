"""Abstract image search provider interface."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Callable, Dict, List, Optional

import requests

from shared.constants import BROWSER_USER_AGENT, DEFAULT_NETWORK_TIMEOUT

logger = logging.getLogger(__name__)

_session = requests.Session()
adapter = requests.adapters.HTTPAdapter(pool_connections=20, pool_maxsize=20, max_retries=2)
_session.mount("https://", adapter)
_session.mount("http://", adapter)

BROWSER_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

# Hosts whose images are never bottle shots
BLOCKED_HOSTS = ("reddit.com", "redd.it", "businesswire.com")


@dataclass
class ImageResult:
    """A candidate bottle image."""
    url: str
    alt: str
    source: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def fetch_html(url: str, params: Optional[Dict[str, str]] = None, headers: Optional[Dict[str, str]] = None) -> Optional[str]:
    """GET a page with browser headers. Returns None on any failure."""
    merged = dict(BROWSER_HEADERS)
    merged.update(headers or {})
    try:
        response = _session.get(url, params=params, headers=merged, timeout=DEFAULT_NETWORK_TIMEOUT)
    except requests.RequestException as e:
        logger.warning(f"Request to {url} failed: {e}")
        return None
    if response.status_code != 200:
        logger.warning(f"{url} returned {response.status_code}")
        return None
    return response.text


def is_blocked(url: str) -> bool:
    lower = url.lower()
    return any(host in lower for host in BLOCKED_HOSTS)


class ImageSearchProvider(ABC):
    """Interface for bottle image sources (retailers, search engines)."""

    name = "provider"

    def __init__(self, fetch: Optional[Callable[..., Optional[str]]] = None):
        self._fetch = fetch or fetch_html

    @abstractmethod
    def parse(self, html: str, query: str) -> List[ImageResult]:
        """Extract image results from a results page."""
        pass

    @abstractmethod
    def request(self, query: str) -> Dict:
        """Return kwargs for the fetch function (url, params, headers)."""
        pass

    def search(self, query: str) -> List[ImageResult]:
        """Fetch and parse. Never raises; failures give an empty list."""
        try:
            html = self._fetch(**self.request(query))
            if not html:
                return []
            return self.parse(html, query)
        except Exception as e:
            logger.error(f"{self.name} image search failed: {e}")
            return []
