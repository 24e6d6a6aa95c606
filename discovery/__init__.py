"""Spirit discovery: bottle image search across retailers and search engines, SerpApi lookups, image proxy."""

from .service import ImageSearchService, build_image_query
from .web_search import WebSearchClient
from .providers.base import ImageResult

__all__ = ["ImageSearchService", "build_image_query", "WebSearchClient", "ImageResult"]
