"""Spirit collection: categories, validation, reference catalog and CRUD."""

from .manager import CollectionManager
from .validation import validate_spirit
from .catalog import search_catalog

__all__ = ["CollectionManager", "validate_spirit", "search_catalog"]
