"""Orchestrates image search providers for bottle artwork."""

import logging
from typing import Any, Dict, List, Optional

from shared.constants import MIN_IMAGE_RESULTS
from .cache import ProviderCache
from .providers.base import ImageResult, ImageSearchProvider
from .providers.whisky_exchange import WhiskyExchangeProvider
from .providers.bing import BingImageProvider
from .providers.google import GoogleImageProvider

logger = logging.getLogger(__name__)

# Search phrase appended for a spirit type; "Other" adds nothing
TYPE_PHRASES = {
    "Bourbon": "bourbon whiskey",
    "Rye": "rye whiskey",
    "Scotch": "scotch whisky",
    "Irish": "irish whiskey",
    "Japanese": "japanese whisky",
    "Other": "",
}

_TWE = "https://img.thewhiskyexchange.com/900"

FALLBACK_IMAGES = {
    "bourbon": [
        (f"{_TWE}/brbon_buf10.jpg", "Buffalo Trace Bourbon"),
        (f"{_TWE}/brbon_mak4.jpg", "Maker's Mark Bourbon"),
        (f"{_TWE}/brbon_woo8.jpg", "Woodford Reserve Bourbon"),
    ],
    "rye": [
        (f"{_TWE}/rye_bul1.jpg", "Bulleit Rye Whiskey"),
        (f"{_TWE}/rye_saz1.jpg", "Sazerac Rye Whiskey"),
        (f"{_TWE}/rye_whi4.jpg", "WhistlePig Rye Whiskey"),
    ],
    "scotch": [
        (f"{_TWE}/macob_12yo_14.jpg", "Macallan 12 Year Scotch Whisky"),
        (f"{_TWE}/laga_16y1.jpg", "Lagavulin 16 Year Scotch Whisky"),
        (f"{_TWE}/glenf_12y1.jpg", "Glenfiddich 12 Year Scotch Whisky"),
    ],
    "irish": [
        (f"{_TWE}/irish_jam1.jpg", "Jameson Irish Whiskey"),
        (f"{_TWE}/irish_red3.jpg", "Redbreast 12 Year Irish Whiskey"),
    ],
    "japanese": [
        (f"{_TWE}/japan_yam2.jpg", "Yamazaki 12 Year Japanese Whisky"),
        (f"{_TWE}/japan_nik20.jpg", "Nikka Coffey Grain Japanese Whisky"),
    ],
    "generic": [
        (f"{_TWE}/brbon_mak4.jpg", "Maker's Mark Bourbon"),
        (f"{_TWE}/brbon_buf15.jpg", "Buffalo Trace Bourbon"),
    ],
}


def build_image_query(
    name: Optional[str] = None,
    brand: Optional[str] = None,
    spirit_type: Optional[str] = None,
    year: Optional[str] = None,
) -> str:
    """'brand name' + type phrase + year + 'bottle official'."""
    parts = []
    label = " ".join(p for p in ((brand or "").strip(), (name or "").strip()) if p)
    if label:
        parts.append(label)
    if spirit_type:
        phrase = TYPE_PHRASES.get(spirit_type, spirit_type)
        if phrase:
            parts.append(phrase)
    if year:
        parts.append(str(year))
    parts.append("bottle official")
    return " ".join(parts)


def fallback_images(query: str, spirit_type: str = "") -> List[ImageResult]:
    """Stock bottle shots matching the type (or words in the query)."""
    lower_type = (spirit_type or "").lower()
    lower_query = (query or "").lower()

    def mentions(*words):
        return any(w in lower_type or w in lower_query for w in words)

    if mentions("bourbon"):
        key = "bourbon"
    elif mentions("rye"):
        key = "rye"
    elif mentions("scotch") or "whisky" in lower_query:
        key = "scotch"
    elif mentions("irish"):
        key = "irish"
    elif mentions("japanese"):
        key = "japanese"
    else:
        key = "generic"
    return [ImageResult(url=url, alt=alt, source="Fallback") for url, alt in FALLBACK_IMAGES[key]]


class ImageSearchService:
    """Tries providers in order until enough distinct images are found."""

    def __init__(
        self,
        providers: Optional[List[ImageSearchProvider]] = None,
        cache: Optional[ProviderCache] = None,
        min_results: int = MIN_IMAGE_RESULTS,
    ):
        if providers is None:
            providers = [WhiskyExchangeProvider(), BingImageProvider(), GoogleImageProvider()]
        self._providers = providers
        self._cache = cache
        self._min_results = min_results

    def search(
        self,
        name: Optional[str] = None,
        brand: Optional[str] = None,
        spirit_type: Optional[str] = None,
        year: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Returns {"images": [...], "query": str}.

        Raises:
            ValueError: neither name nor brand given
        """
        if not (name or "").strip() and not (brand or "").strip():
            raise ValueError("Missing search parameters. Include at least name or brand.")

        query = build_image_query(name, brand, spirit_type, year)
        if self._cache:
            cached = self._cache.get_images(query)
            if cached:
                logger.debug(f"Image search cache hit for '{query}'")
                return {"images": cached, "query": query}

        images: List[ImageResult] = []
        seen = set()
        for provider in self._providers:
            if len(images) >= self._min_results:
                break
            for img in provider.search(query):
                if img.url not in seen:
                    seen.add(img.url)
                    images.append(img)

        results = [img.to_dict() for img in images]
        if results and self._cache:
            self._cache.set_images(query, results)
        if not results:
            logger.info(f"No images found for '{query}', using fallbacks")
            results = [img.to_dict() for img in fallback_images(query, spirit_type or "")]
        return {"images": results, "query": query}
