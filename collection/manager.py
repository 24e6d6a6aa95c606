"""Collection CRUD on top of DatabaseManager."""

import logging
from typing import Any, Dict, List, Optional

from shared.constants import MAX_FEATURED_SPIRITS
from shared.database import DatabaseManager
from shared.errors import NotFoundError, ValidationError
from shared.models import Spirit, generate_id, utc_now_iso
from .validation import validate_spirit

logger = logging.getLogger(__name__)


class CollectionManager:
    """A user's bottles: add, edit, remove, filter and summarise."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def add(self, owner_id: str, data: Dict[str, Any]) -> Spirit:
        cleaned = validate_spirit(data)
        now = utc_now_iso()
        spirit = Spirit(id=generate_id(), owner_id=owner_id, created_at=now, updated_at=now, **cleaned)
        self.db.insert_spirit(spirit)
        logger.info(f"Added spirit '{spirit.name}' ({spirit.id}) for {owner_id}")
        return spirit

    def update(self, owner_id: str, spirit_id: str, data: Dict[str, Any]) -> Spirit:
        cleaned = validate_spirit(data, partial=True)
        if not cleaned:
            raise ValidationError("Nothing to update", {"body": "No editable fields supplied"})
        spirit = self.db.update_spirit(spirit_id, owner_id, cleaned)
        if spirit is None:
            raise NotFoundError("Spirit not found")
        logger.info(f"Updated spirit {spirit_id}: {', '.join(sorted(cleaned))}")
        return spirit

    def remove(self, owner_id: str, spirit_id: str) -> None:
        if not self.db.soft_delete_spirit(spirit_id, owner_id):
            raise NotFoundError("Spirit not found")
        logger.info(f"Removed spirit {spirit_id}")

    def get(self, owner_id: str, spirit_id: str) -> Spirit:
        spirit = self.db.get_spirit(spirit_id, owner_id)
        if spirit is None:
            raise NotFoundError("Spirit not found")
        return spirit

    def list(
        self,
        owner_id: str,
        category: Optional[str] = None,
        spirit_type: Optional[str] = None,
        favorites_only: bool = False,
        query: Optional[str] = None,
        sort: str = "updated",
    ) -> List[Spirit]:
        return self.db.list_spirits(
            owner_id,
            category=category,
            spirit_type=spirit_type,
            favorites_only=favorites_only,
            query=query.strip() if query else None,
            sort=sort,
        )

    def search(self, owner_id: str, query: str) -> List[Spirit]:
        return self.db.search_spirits(owner_id, query.strip())

    def toggle_favorite(self, owner_id: str, spirit_id: str) -> Spirit:
        spirit = self.get(owner_id, spirit_id)
        return self.db.update_spirit(spirit_id, owner_id, {"is_favorite": not spirit.is_favorite})

    def stats(self, owner_id: str) -> Dict[str, Any]:
        return self.db.spirit_stats(owner_id)

    def featured(self, limit: int = 10) -> List[Spirit]:
        limit = max(1, min(int(limit), MAX_FEATURED_SPIRITS))
        return self.db.featured_spirits(limit)
