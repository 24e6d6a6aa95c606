"""
Validation for spirit payloads coming from the API.

`validate_spirit` returns a cleaned dict with snake_case keys ready for
`Spirit` or a partial update, or raises `ValidationError` with a
field -> message mapping.
"""

import json
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from shared.constants import (
    MAX_NAME_LENGTH,
    MAX_DESCRIPTION_LENGTH,
    MAX_NOTES_LENGTH,
    MAX_TASTING_NOTE_LENGTH,
    MIN_RELEASE_YEAR,
    MAX_PROOF,
    DEFAULT_CATEGORY,
)
from shared.errors import ValidationError
from .categories import is_known_category, is_known_type

# Web clients send camelCase
FIELD_ALIASES = {
    "releaseYear": "release_year",
    "isFavorite": "is_favorite",
    "dateAcquired": "date_acquired",
    "bottleSize": "bottle_size",
    "bottleLevel": "bottle_level",
    "imageUrl": "image_url",
    "webImageUrl": "web_image_url",
}

TEXT_FIELDS = {
    "description": MAX_DESCRIPTION_LENGTH,
    "notes": MAX_NOTES_LENGTH,
    "date_acquired": None,
    "bottle_size": None,
    "distillery": None,
}

TASTING_FIELDS = ("nose", "palate", "finish")


def js_round(value: float) -> int:
    """Round half up, the way browsers round ratings."""
    return int(math.floor(value + 0.5))


def _normalise_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    return {FIELD_ALIASES.get(k, k): v for k, v in data.items()}


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def to_number(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    number = float(value)
    if math.isnan(number) or math.isinf(number):
        raise ValueError("not a finite number")
    return number


def parse_tasting_notes(value: Any) -> List[str]:
    """Accept a list, a JSON-encoded list, or a comma separated string."""
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    text = str(value).strip()
    if text.startswith("["):
        try:
            parsed = json.loads(text)
            if isinstance(parsed, list):
                return [str(v).strip() for v in parsed if str(v).strip()]
        except ValueError:
            pass
    return [part.strip() for part in text.split(",") if part.strip()]


def validate_spirit(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Validate and coerce a spirit payload.

    Args:
        data: Raw request body
        partial: When True only the fields present are validated (updates)

    Returns:
        Cleaned field dict

    Raises:
        ValidationError: details maps field name to a message
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid spirit data", {"body": "Expected a JSON object"})

    data = _normalise_keys(data)
    errors: Dict[str, str] = {}
    cleaned: Dict[str, Any] = {}

    for key, label in (("name", "Name"), ("brand", "Brand")):
        if key not in data and partial:
            continue
        value = data.get(key)
        if _blank(value):
            errors[key] = f"{label} is required"
        elif len(str(value).strip()) > MAX_NAME_LENGTH:
            errors[key] = f"{label} must be less than {MAX_NAME_LENGTH} characters"
        else:
            cleaned[key] = str(value).strip()

    if "category" in data or not partial:
        category = data.get("category")
        if _blank(category):
            category = DEFAULT_CATEGORY
        if not is_known_category(str(category)):
            errors["category"] = "Invalid category selected"
        else:
            cleaned["category"] = str(category)

    if "type" in data or not partial:
        spirit_type = data.get("type")
        spirit_type = "" if spirit_type is None else str(spirit_type).strip()
        if not is_known_type(spirit_type):
            errors["type"] = "Invalid type selected"
        else:
            cleaned["type"] = spirit_type

    for key, limit in TEXT_FIELDS.items():
        if key not in data:
            continue
        value = data[key]
        if _blank(value):
            cleaned[key] = None
        elif limit and len(str(value)) > limit:
            errors[key] = f"{key.replace('_', ' ').capitalize()} must be less than {limit} characters"
        else:
            cleaned[key] = str(value).strip()

    _validate_numbers(data, cleaned, errors)

    if "is_favorite" in data:
        value = data["is_favorite"]
        if isinstance(value, str):
            value = value.strip().lower() in ("1", "true", "yes", "on")
        cleaned["is_favorite"] = bool(value)
    elif not partial:
        cleaned["is_favorite"] = False

    if "image_url" in data:
        value = data["image_url"]
        if _blank(value):
            cleaned["image_url"] = None
        elif not (str(value).startswith("/") or str(value).startswith("http")):
            errors["image_url"] = "Image URL must start with '/' or 'http'"
        else:
            cleaned["image_url"] = str(value)

    if "web_image_url" in data:
        value = data["web_image_url"]
        if _blank(value):
            cleaned["web_image_url"] = None
        elif not str(value).startswith("http"):
            errors["web_image_url"] = "Web image URL must start with 'http'"
        else:
            cleaned["web_image_url"] = str(value)

    for key in TASTING_FIELDS:
        if key not in data:
            continue
        value = data[key]
        if _blank(value) or value == []:
            cleaned[key] = []
        elif isinstance(value, str) and len(value) > MAX_TASTING_NOTE_LENGTH:
            errors[key] = f"{key.capitalize()} description must be less than {MAX_TASTING_NOTE_LENGTH} characters"
        elif not isinstance(value, (str, list)):
            errors[key] = f"{key.capitalize()} must be text or a list"
        else:
            cleaned[key] = parse_tasting_notes(value)

    if errors:
        raise ValidationError("Validation error", errors)
    return cleaned


def _validate_numbers(data: Dict[str, Any], cleaned: Dict[str, Any], errors: Dict[str, str]) -> None:
    max_year = datetime.now().year + 5

    def number(key: str) -> Optional[float]:
        value = data[key]
        if _blank(value):
            cleaned[key] = None
            return None
        try:
            return to_number(value)
        except (TypeError, ValueError):
            errors[key] = f"{key.replace('_', ' ').capitalize()} must be a number"
            return None

    if "release_year" in data:
        year = number("release_year")
        if year is not None:
            if year < MIN_RELEASE_YEAR:
                errors["release_year"] = "Release year seems too old"
            elif year > max_year:
                errors["release_year"] = "Release year seems too far in the future"
            else:
                cleaned["release_year"] = int(year)

    if "proof" in data:
        proof = number("proof")
        if proof is not None:
            if proof <= 0:
                errors["proof"] = "Proof must be positive"
            elif proof > MAX_PROOF:
                errors["proof"] = f"Proof must be at most {MAX_PROOF}"
            else:
                cleaned["proof"] = proof

    if "price" in data:
        price = number("price")
        if price is not None:
            if price < 0:
                errors["price"] = "Price must be nonnegative"
            else:
                cleaned["price"] = price

    if "rating" in data:
        rating = number("rating")
        if rating is not None:
            if rating < 1:
                errors["rating"] = "Rating must be at least 1"
            elif rating > 100:
                errors["rating"] = "Rating must be at most 100"
            else:
                # 1..10 ratings (7.8) are stored on the 10..100 scale
                cleaned["rating"] = js_round(rating * 10) if rating <= 10 else js_round(rating)

    if "bottle_level" in data:
        level = number("bottle_level")
        if level is not None:
            if level < 0:
                errors["bottle_level"] = "Bottle level must be at least 0"
            elif level > 100:
                errors["bottle_level"] = "Bottle level must be at most 100"
            else:
                cleaned["bottle_level"] = js_round(level)
