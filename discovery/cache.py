"""Local cache for image search results to avoid repeat scraping."""

import json
import logging
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class ProviderCache:
    """Stores query -> image result lists in a JSON file."""

    def __init__(self, cache_file: Path):
        self._cache_file = Path(cache_file)
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = {"images": {}}
        self._load()

    def _load(self):
        if not self._cache_file.exists():
            return
        try:
            content = self._cache_file.read_text(encoding="utf-8").strip()
            if content:
                self._data = json.loads(content)
                self._data.setdefault("images", {})
        except (OSError, ValueError) as e:
            logger.warning(f"Could not load image search cache: {e}")

    def _save(self):
        try:
            self._cache_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self._cache_file, "w", encoding="utf-8") as f:
                json.dump(self._data, f, ensure_ascii=False)
        except OSError as e:
            logger.warning(f"Could not save image search cache: {e}")

    @staticmethod
    def _key(query: str) -> str:
        return re.sub(r"\s+", " ", (query or "").strip().lower())

    def get_images(self, query: str) -> Optional[List[Dict[str, str]]]:
        with self._lock:
            return self._data["images"].get(self._key(query))

    def set_images(self, query: str, images: List[Dict[str, str]]):
        with self._lock:
            self._data["images"][self._key(query)] = images
            self._save()

    def clear(self):
        with self._lock:
            self._data = {"images": {}}
            self._save()
