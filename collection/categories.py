"""Spirit categories and their subcategories."""

from typing import Dict, List, Optional

SPIRIT_CATEGORIES: List[Dict] = [
    {
        "id": "whiskey",
        "name": "Whiskey",
        "subcategories": ["Bourbon", "Rye", "Scotch", "Irish", "Japanese", "Tennessee", "Canadian", "Other"],
    },
    {"id": "rum", "name": "Rum", "subcategories": ["White", "Gold", "Dark", "Spiced", "Agricole", "Other"]},
    {"id": "gin", "name": "Gin", "subcategories": ["London Dry", "Plymouth", "Old Tom", "Genever", "Other"]},
    {"id": "vodka", "name": "Vodka", "subcategories": ["Plain", "Flavored", "Other"]},
    {"id": "tequila", "name": "Tequila", "subcategories": ["Blanco", "Reposado", "Anejo", "Extra Anejo", "Mezcal", "Other"]},
    {"id": "brandy", "name": "Brandy", "subcategories": ["Cognac", "Armagnac", "Calvados", "Pisco", "Other"]},
    {"id": "liqueur", "name": "Liqueur", "subcategories": ["Cream", "Herbal", "Fruit", "Nut", "Other"]},
    {"id": "other", "name": "Other", "subcategories": ["Other"]},
]

CATEGORY_IDS = [c["id"] for c in SPIRIT_CATEGORIES]

# Lower-cased subcategories across every category
ALL_SUBCATEGORIES = {sub.lower() for c in SPIRIT_CATEGORIES for sub in c["subcategories"]}


def is_known_category(category_id: str) -> bool:
    return category_id in CATEGORY_IDS


def is_known_type(spirit_type: str) -> bool:
    """Empty types are allowed; otherwise match any subcategory ignoring case."""
    return spirit_type == "" or spirit_type.lower() in ALL_SUBCATEGORIES


def get_category(category_id: str) -> Optional[Dict]:
    for category in SPIRIT_CATEGORIES:
        if category["id"] == category_id:
            return category
    return None
