import pytest

from collection.validation import js_round, parse_tasting_notes, validate_spirit
from shared.errors import ValidationError


def _errors(data, partial=False):
    with pytest.raises(ValidationError) as exc:
        validate_spirit(data, partial=partial)
    return exc.value.details


def test_minimal_spirit_gets_defaults():
    cleaned = validate_spirit({"name": " Eagle Rare ", "brand": "Buffalo Trace"})
    assert cleaned["name"] == "Eagle Rare"
    assert cleaned["category"] == "whiskey"
    assert cleaned["type"] == ""
    assert cleaned["is_favorite"] is False


def test_name_and_brand_required():
    details = _errors({"name": "", "brand": None})
    assert details["name"] == "Name is required"
    assert details["brand"] == "Brand is required"


def test_name_too_long():
    details = _errors({"name": "x" * 101, "brand": "B"})
    assert "name" in details


def test_camel_case_fields_are_accepted():
    cleaned = validate_spirit({
        "name": "Blanton's", "brand": "Buffalo Trace",
        "releaseYear": "2020", "isFavorite": "true", "bottleLevel": 42.4,
        "webImageUrl": "https://example.com/b.png",
    })
    assert cleaned["release_year"] == 2020
    assert cleaned["is_favorite"] is True
    assert cleaned["bottle_level"] == 42
    assert cleaned["web_image_url"] == "https://example.com/b.png"


def test_unknown_category_and_type_rejected():
    details = _errors({"name": "A", "brand": "B", "category": "wine", "type": "Merlot"})
    assert details["category"] == "Invalid category selected"
    assert details["type"] == "Invalid type selected"


def test_type_matches_any_category_case_insensitively():
    cleaned = validate_spirit({"name": "A", "brand": "B", "category": "whiskey", "type": "reposado"})
    assert cleaned["type"] == "reposado"


def test_release_year_bounds():
    assert _errors({"name": "A", "brand": "B", "release_year": 1700})["release_year"] == "Release year seems too old"
    assert "release_year" in _errors({"name": "A", "brand": "B", "release_year": 3000})


def test_proof_must_be_positive_and_capped():
    assert _errors({"name": "A", "brand": "B", "proof": 0})["proof"] == "Proof must be positive"
    assert "proof" in _errors({"name": "A", "brand": "B", "proof": 250})


def test_price_cannot_be_negative():
    assert "price" in _errors({"name": "A", "brand": "B", "price": -1})


@pytest.mark.parametrize("raw,stored", [(7.8, 78), (10, 100), (8.25, 83), (85, 85), (1, 10)])
def test_rating_scaled_to_hundred(raw, stored):
    assert validate_spirit({"name": "A", "brand": "B", "rating": raw})["rating"] == stored


def test_rating_out_of_range():
    assert _errors({"name": "A", "brand": "B", "rating": 0.5})["rating"] == "Rating must be at least 1"
    assert "rating" in _errors({"name": "A", "brand": "B", "rating": 101})


def test_numbers_reject_garbage_and_booleans():
    details = _errors({"name": "A", "brand": "B", "price": "cheap", "proof": True})
    assert details["price"] == "Price must be a number"
    assert details["proof"] == "Proof must be a number"


def test_blank_numbers_become_none():
    cleaned = validate_spirit({"name": "A", "brand": "B", "price": "", "proof": None})
    assert cleaned["price"] is None
    assert cleaned["proof"] is None


def test_image_url_prefixes():
    assert "image_url" in _errors({"name": "A", "brand": "B", "image_url": "ftp://x"})
    assert "web_image_url" in _errors({"name": "A", "brand": "B", "web_image_url": "/local.png"})
    cleaned = validate_spirit({"name": "A", "brand": "B", "image_url": "/uploads/a.png"})
    assert cleaned["image_url"] == "/uploads/a.png"


def test_tasting_notes_formats():
    cleaned = validate_spirit({
        "name": "A", "brand": "B",
        "nose": "vanilla, caramel ,",
        "palate": '["oak", "spice"]',
        "finish": ["long", " "],
    })
    assert cleaned["nose"] == ["vanilla", "caramel"]
    assert cleaned["palate"] == ["oak", "spice"]
    assert cleaned["finish"] == ["long"]


def test_tasting_note_string_too_long():
    assert "nose" in _errors({"name": "A", "brand": "B", "nose": "x" * 501})


def test_partial_only_checks_present_fields():
    assert validate_spirit({"rating": 9}, partial=True) == {"rating": 90}
    assert validate_spirit({}, partial=True) == {}


def test_partial_still_rejects_blank_name():
    assert _errors({"name": "  "}, partial=True)["name"] == "Name is required"


def test_non_dict_payload():
    with pytest.raises(ValidationError):
        validate_spirit(["not", "a", "dict"])


def test_js_round_half_up():
    assert js_round(82.5) == 83
    assert js_round(82.4) == 82


def test_parse_tasting_notes_invalid_json_falls_back_to_commas():
    assert parse_tasting_notes("[oak, honey") == ["[oak", "honey"]
