"""Bing image search scraping."""

import json
import logging
import re
from typing import Dict, List

from bs4 import BeautifulSoup

from .base import ImageResult, ImageSearchProvider, is_blocked

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.bing.com/images/search"
MAX_RESULTS = 20

RETAILER_HOSTS = ("thewhiskyexchange.com", "totalwine.com", "whiskyshop.com", "reservebar.com", "drizly.com")
BOTTLE_HINTS = ("bottle", "spirit", "whiskey", "bourbon")
_MURL_RE = re.compile(r'"murl":"([^"]+)"')


def looks_like_bottle(url: str) -> bool:
    lower = url.lower()
    if not lower.startswith("http") or is_blocked(lower):
        return False
    if any(host in lower for host in RETAILER_HOSTS):
        return True
    return lower.endswith((".jpg", ".jpeg", ".png")) or any(h in lower for h in BOTTLE_HINTS)


class BingImageProvider(ImageSearchProvider):
    name = "Bing Images"

    def request(self, query: str) -> Dict:
        return {
            "url": SEARCH_URL,
            "params": {
                "q": f"{query} official product high resolution",
                "qft": "+filterui:photo-photo+filterui:aspect-square",
                "form": "IRFLTR",
            },
            "headers": {"Referer": "https://www.bing.com/", "Cache-Control": "no-cache"},
        }

    def parse(self, html: str, query: str) -> List[ImageResult]:
        soup = BeautifulSoup(html, "html.parser")
        found: Dict[str, str] = {}

        # Result tiles carry their metadata as JSON in the "m" attribute
        for anchor in soup.select("a.iusc"):
            try:
                meta = json.loads(anchor.get("m") or "{}")
            except ValueError:
                continue
            url = meta.get("murl")
            if url and url not in found:
                found[url] = meta.get("t") or query

        # Older layouts only embed murl inside inline scripts
        if not found:
            for script in soup.find_all("script"):
                content = script.string or ""
                for raw in _MURL_RE.findall(content):
                    url = raw.replace("\\u002f", "/").replace("\\/", "/")
                    found.setdefault(url, query)

        images = [
            ImageResult(url=url, alt=alt, source=self.name)
            for url, alt in found.items()
            if looks_like_bottle(url)
        ]
        logger.debug(f"Bing returned {len(images)} usable images for '{query}'")
        return images[:MAX_RESULTS]
