"""
SerpApi backed lookup of distillery and product details for a bottle.

Without an API key, or when SerpApi fails, a result is generated from
the spirit type so the form can still be prefilled.
"""

import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests

from shared.constants import DEFAULT_NETWORK_TIMEOUT

logger = logging.getLogger(__name__)

SERPAPI_URL = "https://serpapi.com/search"
MAX_ORGANIC_RESULTS = 4
BOTTLE_ASPECT_RATIO = 1.2

BRAND_IMAGES = {
    "buffalo trace": "https://www.buffalotracedistillery.com/content/dam/buffalotrace/products/buffalo-trace-bourbon-product.png",
    "wild turkey": "https://www.wildturkeybourbon.com/wp-content/uploads/2023/09/wt-101-750.png",
    "makers mark": "https://www.makersmark.com/sites/default/files/bottle/makers-mark-bottle_0.png",
    "jack daniels": "https://www.jackdaniels.com/sites/default/files/jd-outline-bottle-white.png",
    "woodford reserve": "https://www.woodfordreserve.com/wp-content/uploads/2022/01/Woodford_BTL_Straight_Bourbon.png",
    "elijah craig": "https://www.heavenhill.com/uploads/general/_small/Elijah_Craig_Small_Batch_Bottle_LG.png",
    "knob creek": "https://www.knobcreek.com/-/media/knobcreek/products/9-year/9-year-bottle.png",
    "four roses": "https://www.fourrosesbourbon.com/wp-content/uploads/2022/03/FR-Bottle-Single-Barrel.png",
    "eagle rare": "https://www.buffalotracedistillery.com/content/dam/buffalotrace/products/eagle-rare-bourbon-product.png",
}

TYPE_IMAGES = {
    "bourbon": BRAND_IMAGES["buffalo trace"],
    "rye": BRAND_IMAGES["knob creek"],
    "scotch": BRAND_IMAGES["jack daniels"],
    "irish whiskey": BRAND_IMAGES["jack daniels"],
    "japanese whisky": BRAND_IMAGES["four roses"],
}
DEFAULT_IMAGE = BRAND_IMAGES["woodford reserve"]

# Checked in order; first keyword hit wins
SPIRIT_TYPE_KEYWORDS = [
    (("bourbon",), "bourbon"),
    (("scotch", "single malt"), "scotch"),
    (("rye",), "rye"),
    (("irish",), "irish whiskey"),
    (("japanese",), "japanese whisky"),
    (("tennessee",), "tennessee whiskey"),
    (("tequila", "mezcal"), "tequila"),
    (("rum",), "rum"),
    (("gin",), "gin"),
    (("vodka",), "vodka"),
]

LOCATIONS = {
    "bourbon": "Kentucky, USA",
    "rye": "Kentucky, USA",
    "scotch": "Scotland",
    "irish whiskey": "Ireland",
    "japanese whisky": "Japan",
    "tequila": "Jalisco, Mexico",
    "tennessee whiskey": "Tennessee, USA",
}

PRICE_RANGES = {
    "bourbon": {"low": 35, "avg": 55, "high": 90},
    "scotch": {"low": 50, "avg": 85, "high": 150},
    "japanese whisky": {"low": 65, "avg": 110, "high": 180},
}
DEFAULT_PRICE_RANGE = {"low": 30, "avg": 45, "high": 65}

TASTING_NOTES = {
    "bourbon": {
        "aroma": "Caramel, vanilla, toasted oak, cinnamon and nutmeg",
        "taste": "Rich caramel and oak with baking spice and dried fruit",
        "finish": "Medium to long with lingering sweetness and warm spice",
    },
    "scotch": {
        "aroma": "Heather honey, apple and pear with vanilla and oak",
        "taste": "Malty sweetness, dried fruit and gentle oak",
        "finish": "Medium length with warmth and lingering fruit",
    },
    "rye": {
        "aroma": "Bold spice, pepper and citrus over vanilla",
        "taste": "Spicy rye, black pepper and cinnamon with underlying sweetness",
        "finish": "Long and warming with lingering rye spice",
    },
    "tequila": {
        "aroma": "Agave, citrus, herbs and subtle pepper",
        "taste": "Sweet agave, citrus zest and white pepper",
        "finish": "Clean with lingering sweetness",
    },
}
DEFAULT_TASTING_NOTES = {
    "aroma": "Vanilla, caramel, oak and light spice",
    "taste": "Balanced sweetness, vanilla and oak with subtle fruit",
    "finish": "Medium with pleasant warmth",
}

_PRICE_RE = re.compile(r"[0-9]+(?:\.[0-9]+)?")
_AGE_RE = re.compile(r"(\d+)\s*(?:year|yr)s?", re.IGNORECASE)
_IMAGE_EXT_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp)($|\?)", re.IGNORECASE)


def detect_spirit_type(query: str) -> str:
    lower = query.lower()
    for keywords, spirit_type in SPIRIT_TYPE_KEYWORDS:
        if any(k in lower for k in keywords):
            return spirit_type
    return "bourbon"


def title_case(text: str) -> str:
    return " ".join(w[:1].upper() + w[1:].lower() for w in text.split())


def is_valid_image_url(url: Optional[str]) -> bool:
    if not url or url in ("null", "undefined"):
        return False
    if url.startswith("data:image/"):
        return True
    return url.startswith("http") and (bool(_IMAGE_EXT_RE.search(url)) or "image" in url)


def brand_image(query: str, distillery: str = "") -> Optional[str]:
    q = query.lower()
    d = distillery.lower()
    for brand, url in BRAND_IMAGES.items():
        if brand in q or (d and brand in d):
            return url
    return None


def fallback_image_url(spirit_type: str) -> str:
    return TYPE_IMAGES.get(spirit_type.lower(), DEFAULT_IMAGE)


class WebSearchClient:
    def __init__(self, api_key: Optional[str] = None, session: Optional[requests.Session] = None):
        self.api_key = (api_key or "").strip()
        self._session = session or requests.Session()

    @property
    def is_available(self) -> bool:
        return bool(self.api_key)

    def search(self, query: str, distillery: str = "", release_year: str = "") -> Dict[str, Any]:
        """
        Returns {"query", "results", "relatedInfo"}. relatedInfo.product
        always carries a webImageUrl.

        Raises:
            ValueError: empty query
        """
        query = (query or "").strip()
        if not query:
            raise ValueError("Missing search query")

        result = None
        if self.is_available:
            try:
                result = self._search_serpapi(query, distillery, release_year)
            except (requests.RequestException, ValueError) as e:
                logger.warning(f"SerpApi search failed for '{query}': {e}")
        if result is None:
            result = self.fallback(query, distillery, release_year)

        product = result["relatedInfo"]["product"]
        if not product.get("webImageUrl"):
            product["webImageUrl"] = fallback_image_url(detect_spirit_type(query))
        return result

    def _get(self, params: Dict[str, str]) -> Dict[str, Any]:
        params = dict(params, api_key=self.api_key)
        response = self._session.get(SERPAPI_URL, params=params, timeout=DEFAULT_NETWORK_TIMEOUT)
        response.raise_for_status()
        return response.json()

    def _search_serpapi(self, query: str, distillery: str, release_year: str) -> Dict[str, Any]:
        search_query = " ".join(f"{query} {distillery} {release_year} whiskey bourbon information".split())
        data = self._get({"q": search_query, "engine": "google"})

        results = []
        for item in (data.get("organic_results") or [])[:MAX_ORGANIC_RESULTS]:
            link = item.get("link") or ""
            results.append({
                "title": item.get("title") or "No title available",
                "description": item.get("snippet") or item.get("description") or "No description available",
                "source": urlparse(link).hostname or "",
                "url": link,
            })

        related = self._extract_related(data, query, distillery, release_year)
        image = self.find_bottle_image(query, distillery)
        if image:
            related["product"]["webImageUrl"] = image
        return {"query": query, "results": results, "relatedInfo": related}

    def find_bottle_image(self, query: str, distillery: str = "") -> Optional[str]:
        """Tall images first (bottles are taller than wide), then any valid one."""
        try:
            data = self._get({
                "q": f"{query} {distillery} bottle whiskey bourbon".strip(),
                "engine": "google_images",
                "num": "10",
            })
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"SerpApi image search failed: {e}")
            return None

        images = data.get("images_results") or []
        if not images:
            return None
        for img in images:
            height, width = img.get("original_height") or img.get("height"), img.get("original_width") or img.get("width")
            if height and width and height / width > BOTTLE_ASPECT_RATIO and is_valid_image_url(img.get("original")):
                return img["original"]
        for img in images[:5]:
            if is_valid_image_url(img.get("original")):
                return img["original"]
        return brand_image(query, distillery)

    def _extract_related(self, data: Dict[str, Any], query: str, distillery: str, release_year: str) -> Dict[str, Any]:
        kg = data.get("knowledge_graph") or {}
        name = distillery or kg.get("title") or " ".join(query.split()[:2])
        spirit_type = detect_spirit_type(query)

        price = dict(DEFAULT_PRICE_RANGE)
        prices = []
        for item in data.get("shopping_results") or []:
            match = _PRICE_RE.search(str(item.get("price") or ""))
            if match:
                prices.append(float(match.group(0)))
        if prices:
            price = {"low": min(prices), "avg": round(sum(prices) / len(prices)), "high": max(prices)}

        return {
            "distillery": {
                "name": title_case(name),
                "location": kg.get("location") or LOCATIONS.get(spirit_type, "USA"),
                "founded": kg.get("founded") or kg.get("established") or "",
                "description": kg.get("description") or "",
            },
            "product": {
                "price": price,
                "releaseYear": release_year or None,
                "imageUrl": brand_image(query, distillery) or kg.get("image_url"),
            },
            "tastingNotes": {"expert": TASTING_NOTES.get(spirit_type, DEFAULT_TASTING_NOTES)},
        }

    def fallback(self, query: str, distillery: str = "", release_year: str = "") -> Dict[str, Any]:
        """Type-based details used when SerpApi is unavailable."""
        name = title_case(distillery or " ".join(query.split()[:2]))
        spirit_type = detect_spirit_type(query)
        location = LOCATIONS.get(spirit_type, "USA")

        price = dict(PRICE_RANGES.get(spirit_type, DEFAULT_PRICE_RANGE))
        age = _AGE_RE.search(query)
        if age and int(age.group(1)) > 10:
            multiplier = 1 + (int(age.group(1)) - 10) * 0.1
            price["avg"] = round(price["avg"] * multiplier)
            price["high"] = round(price["high"] * multiplier)

        slug = re.sub(r"\s+", "", name).lower()
        results: List[Dict[str, str]] = [
            {
                "title": f"{name} Official Site - Product Information",
                "description": f"Official product page for {query}.",
                "source": f"{slug}.com",
                "url": f"https://www.{slug}.com/products",
            },
            {
                "title": f"{query} Review - Whisky Advocate",
                "description": f"Tasting notes and rating for {query}.",
                "source": "whiskyadvocate.com",
                "url": "https://www.whiskyadvocate.com/reviews/",
            },
            {
                "title": f"Where to Buy {query}",
                "description": f"Compare prices for {query} across retailers.",
                "source": "wine-searcher.com",
                "url": "https://www.wine-searcher.com/",
            },
        ]

        return {
            "query": query,
            "results": results,
            "relatedInfo": {
                "distillery": {
                    "name": name,
                    "location": location,
                    "founded": "",
                    "description": f"{name} produces {spirit_type} in {location}.",
                },
                "product": {
                    "price": price,
                    "releaseYear": release_year or None,
                    "webImageUrl": brand_image(query, distillery),
                },
                "tastingNotes": {"expert": TASTING_NOTES.get(spirit_type, DEFAULT_TASTING_NOTES)},
            },
        }
