"""Google image search scraping. Last resort: the markup changes often."""

import re
from typing import Dict, List

from bs4 import BeautifulSoup

from .base import ImageResult, ImageSearchProvider, is_blocked

SEARCH_URL = "https://www.google.com/search"
MAX_RESULTS = 20

_IMAGE_URL_RE = re.compile(r'https?://[^"\'\s)]+\.(?:jpg|jpeg|png|webp|avif)[^"\'\s)]*')


def _usable(url: str) -> bool:
    lower = url.lower()
    return (
        lower.startswith("http")
        and "gstatic.com" not in lower
        and "google.com" not in lower
        and not is_blocked(lower)
    )


class GoogleImageProvider(ImageSearchProvider):
    name = "Google Images"

    def request(self, query: str) -> Dict:
        return {
            "url": SEARCH_URL,
            "params": {
                "q": f"{query} bottle high quality product",
                "tbm": "isch",
                "source": "lnms",
                "tbs": "isz:m,iar:s",
            },
            "headers": {"Upgrade-Insecure-Requests": "1"},
        }

    def parse(self, html: str, query: str) -> List[ImageResult]:
        urls: List[str] = []
        seen = set()

        def add(url: str):
            url = url.rstrip(',}]"\'')
            if url not in seen and _usable(url):
                seen.add(url)
                urls.append(url)

        soup = BeautifulSoup(html, "html.parser")
        for img in soup.find_all("img"):
            src = img.get("src") or img.get("data-src") or ""
            if src.startswith("http") and "logo" not in src.lower():
                add(src)

        # Full-size URLs live in inline JSON blobs
        for script in soup.find_all("script"):
            for match in _IMAGE_URL_RE.findall(script.string or ""):
                add(match)

        return [ImageResult(url=u, alt=query, source=self.name) for u in urls[:MAX_RESULTS]]
