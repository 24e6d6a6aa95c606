"""The Whisky Exchange product search: the most reliable source of clean bottle shots."""

from typing import Dict, List
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from .base import ImageResult, ImageSearchProvider

BASE_URL = "https://www.thewhiskyexchange.com"
# Marketing words added to the shared query that hurt retailer search
STOP_TERMS = {"bottle", "official", "product"}


class WhiskyExchangeProvider(ImageSearchProvider):
    name = "The Whisky Exchange"

    def request(self, query: str) -> Dict:
        terms = [t for t in query.split() if t.lower() not in STOP_TERMS]
        return {"url": f"{BASE_URL}/search", "params": {"q": " ".join(terms)}}

    def parse(self, html: str, query: str) -> List[ImageResult]:
        soup = BeautifulSoup(html, "html.parser")
        images = []
        for card in soup.select(".product-grid .product-card"):
            img = card.select_one(".product-card__image img")
            title_el = card.select_one(".product-card__name")
            if img is None or title_el is None:
                continue
            src = img.get("src") or img.get("data-src")
            title = title_el.get_text(strip=True)
            if not src or not title:
                continue
            url = src if src.startswith("http") else urljoin(BASE_URL, src)
            images.append(ImageResult(url=url, alt=title, source=self.name))
        return images
