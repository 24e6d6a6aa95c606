from .base import ImageResult, ImageSearchProvider
from .whisky_exchange import WhiskyExchangeProvider
from .bing import BingImageProvider
from .google import GoogleImageProvider

__all__ = [
    "ImageResult",
    "ImageSearchProvider",
    "WhiskyExchangeProvider",
    "BingImageProvider",
    "GoogleImageProvider",
]
