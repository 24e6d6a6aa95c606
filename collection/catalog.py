"""
Reference catalog of well known bottles and the tiered lookup used by
the "add a spirit" form to prefill details.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
SUGGESTION_LIMIT = 5

_TWE = "https://img.thewhiskyexchange.com/900"


@dataclass(frozen=True)
class CatalogEntry:
    name: str
    distillery: str
    type: str
    proof: Optional[float]
    price: Optional[float]
    release_year: Optional[int]
    description: str
    image_url: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _entry(name, distillery, type_, proof, price, description, image=None, year=None):
    return CatalogEntry(name, distillery, type_, proof, price, year, description, image)


CATALOG: List[CatalogEntry] = [
    # Bourbon
    _entry("Buffalo Trace", "Buffalo Trace", "Bourbon", 90, 29.99,
           "Vanilla, mint and molasses on the nose; brown sugar and spice, then oak and toffee.",
           f"{_TWE}/brbon_buf15.jpg"),
    _entry("Eagle Rare 10 Year", "Buffalo Trace", "Bourbon", 90, 44.99,
           "Candied almonds and cocoa with a dry, delicate finish.", f"{_TWE}/brbon_eag10.jpg"),
    _entry("Maker's Mark", "Maker's Mark", "Bourbon", 90, 29.99,
           "Caramel and vanilla with a soft wheated finish.", f"{_TWE}/brbon_mak1.jpg"),
    _entry("Woodford Reserve", "Woodford Reserve", "Bourbon", 90.4, 34.99,
           "Dried fruit, mint and cocoa. Creamy vanilla and toffee finish.", f"{_TWE}/brbon_woo8.jpg"),
    _entry("Blanton's Original Single Barrel", "Buffalo Trace", "Bourbon", 93, 59.99,
           "Dry vanilla spice with honeyed oak and caramel.", f"{_TWE}/brbon_bla1.jpg"),
    _entry("Knob Creek 9 Year", "Jim Beam", "Bourbon", 100, 34.99,
           "Maple and vanilla, full bodied, with a strong oak finish.", f"{_TWE}/brbon_kno1.jpg"),
    _entry("Four Roses Single Barrel", "Four Roses", "Bourbon", 100, 44.99,
           "Plum and cherry with a robust, spicy character.", f"{_TWE}/brbon_fou13.jpg"),
    _entry("Wild Turkey 101", "Wild Turkey", "Bourbon", 101, 24.99,
           "Caramel, vanilla, honey and orange. Bold spicy finish.", f"{_TWE}/brbon_wil16.jpg"),
    _entry("Elijah Craig Small Batch", "Heaven Hill", "Bourbon", 94, 29.99,
           "Vanilla, caramel and nutmeg with a warm, smoky finish.", f"{_TWE}/brbon_eli4.jpg"),
    _entry("1792 Small Batch", "Barton 1792", "Bourbon", 93.7, 32.99,
           "Sweet and spicy, caramel and vanilla, elegant finish.", f"{_TWE}/brbon_179.jpg"),
    _entry("Jefferson's Ocean Aged at Sea", "Jefferson's", "Bourbon", 90, 79.99,
           "Caramelised sugar and vanilla with a briny edge.", f"{_TWE}/brbon_jef7.jpg"),
    _entry("Russell's Reserve Single Barrel", "Wild Turkey", "Bourbon", 110, 64.99,
           "Bold vanilla, caramel and oak with a long finish.", f"{_TWE}/brbon_rus4.jpg"),
    _entry("Still Austin Bottled in Bond", "Still Austin", "Bourbon", 100, 49.99,
           "Grain-forward Texas bourbon with baking spice and stone fruit."),
    # Tennessee
    _entry("Jack Daniel's Old No. 7", "Jack Daniel's", "Tennessee Whiskey", 80, 25.99,
           "Charcoal mellowed; sweet vanilla, caramel and oak.", f"{_TWE}/ameri_jac8.jpg"),
    _entry("Jack Daniel's Bonded", "Jack Daniel's", "Tennessee Whiskey", 100, 36.99,
           "Caramel, oak and spice, rich with a lingering finish.", year=2022),
    # Rye
    _entry("Bulleit Rye", "Bulleit", "Rye", 90, 29.99,
           "Oaky aromas, vanilla, honey and spice.", f"{_TWE}/rye_bul1.jpg"),
    _entry("Sazerac Rye", "Buffalo Trace", "Rye", 90, 32.99,
           "Candied spice and citrus with a hint of chocolate.", f"{_TWE}/rye_saz1.jpg"),
    _entry("Pikesville Straight Rye", "Heaven Hill", "Rye", 110, 49.99,
           "Dry cocoa, rye spice and honey."),
    _entry("WhistlePig 10 Year", "WhistlePig", "Rye", 100, 79.99,
           "Allspice, orange peel and caramel."),
    _entry("Rittenhouse Rye", "Heaven Hill", "Rye", 100, 27.99,
           "Cocoa, citrus and cinnamon; bottled in bond."),
    # Scotch
    _entry("Lagavulin 16 Year", "Lagavulin", "Scotch", 86, 99.99,
           "Intense peat smoke, iodine and rich dried fruit."),
    _entry("Glenfiddich 12 Year", "Glenfiddich", "Scotch", 80, 49.99,
           "Fresh pear, cream and subtle oak."),
    _entry("Macallan 12 Year Double Cask", "Macallan", "Scotch", 86, 74.99,
           "Honey, sherry-soaked fruit and ginger."),
    _entry("Ardbeg 10 Year", "Ardbeg", "Scotch", 92, 59.99,
           "Smoky, citrus and espresso with a long peaty finish."),
    _entry("Balvenie DoubleWood 12 Year", "Balvenie", "Scotch", 80, 64.99,
           "Sweet fruit, honey and vanilla with sherry depth."),
    # Irish
    _entry("Jameson", "Jameson", "Irish Whiskey", 80, 27.99,
           "Light floral fragrance, spice and vanilla."),
    _entry("Redbreast 12 Year", "Redbreast", "Irish Whiskey", 80, 69.99,
           "Single pot still; spice, sherry and toasted wood."),
    _entry("Green Spot", "Mitchell & Son", "Irish Whiskey", 80, 59.99,
           "Green apple, barley and a touch of oak."),
    # Japanese
    _entry("Suntory Toki", "Suntory", "Japanese Whisky", 86, 39.99,
           "Green apple, basil and grapefruit; light and crisp."),
    _entry("Nikka Coffey Grain", "Nikka", "Japanese Whisky", 90, 64.99,
           "Tropical fruit and vanilla custard."),
    _entry("Yamazaki 12 Year", "Suntory", "Japanese Whisky", 86, 149.99,
           "Peach, pineapple and Mizunara oak."),
    # Tequila
    _entry("Fortaleza Blanco", "Fortaleza", "Tequila", 80, 49.99,
           "Cooked agave, citrus and black pepper."),
    _entry("Del Maguey Vida", "Del Maguey", "Tequila", 84, 39.99,
           "Smoky mezcal with tropical fruit and cinnamon."),
]

# Keywords in a failed query that map to a type suggestion, checked in order
TYPE_SUGGESTIONS = [
    (("bourbon",), "Bourbon"),
    (("rye",), "Rye"),
    (("scotch",), "Scotch"),
    (("irish",), "Irish Whiskey"),
    (("japanese",), "Japanese Whisky"),
    (("tequila", "mezcal"), "Tequila"),
]


def _words(text: str) -> List[str]:
    return text.lower().split()


def _word_score(entry: CatalogEntry, query_words: List[str]) -> int:
    name_words = _words(entry.name)
    distillery_words = _words(entry.distillery)
    name_hits = sum(1 for w in query_words if w in name_words)
    distillery_hits = sum(1 for w in query_words if w in distillery_words)
    return name_hits * 2 + distillery_hits


def _substring_score(entry: CatalogEntry, q: str) -> int:
    name = entry.name.lower()
    distillery = entry.distillery.lower()
    score = 0
    if q in name:
        score += 10
        if name.startswith(q):
            score += 5
    if q in distillery:
        score += 5
        if distillery.startswith(q):
            score += 3
    if q in entry.type.lower():
        score += 3
    return score


def search_catalog(query: str, catalog: Optional[List[CatalogEntry]] = None) -> Dict[str, Any]:
    """
    Tiered lookup against the reference catalog.

    Tiers, first non-empty wins:
        1. exact name or "distillery name"
        2. whole-word matches (query words longer than 2 chars)
        3. substring matches scored on name, distillery and type
        4. up to 5 bottles of a type the query mentions
        5. nothing, with a hint

    Returns:
        {"spirits": [...]} plus "message" for tiers 4 and 5

    Raises:
        ValueError: query shorter than 2 characters
    """
    catalog = CATALOG if catalog is None else catalog
    if not query or len(query.strip()) < MIN_QUERY_LENGTH:
        raise ValueError("Search query is too short")

    q = query.strip().lower()
    logger.debug(f"Catalog lookup for '{q}'")

    exact = [
        e for e in catalog
        if e.name.lower() == q or f"{e.distillery.lower()} {e.name.lower()}" == q
    ]
    if exact:
        return {"spirits": [e.to_dict() for e in exact]}

    query_words = [w for w in q.split() if len(w) > 2]
    if query_words:
        word_matches = [e for e in catalog if _word_score(e, query_words) > 0]
        if word_matches:
            # sorted() is stable, so ties keep catalog order
            word_matches = sorted(word_matches, key=lambda e: _word_score(e, query_words), reverse=True)
            return {"spirits": [e.to_dict() for e in word_matches]}

    partial = [(e, _substring_score(e, q)) for e in catalog]
    partial = [(e, s) for e, s in partial if s > 0]
    if partial:
        partial.sort(key=lambda item: item[1], reverse=True)
        return {"spirits": [e.to_dict() for e, _ in partial]}

    for keywords, suggested in TYPE_SUGGESTIONS:
        if any(k in q for k in keywords):
            similar = [e for e in catalog if e.type == suggested][:SUGGESTION_LIMIT]
            if similar:
                return {
                    "spirits": [e.to_dict() for e in similar],
                    "message": f'No exact matches found for "{query}". Showing popular {suggested} options instead.',
                }
            break

    return {
        "spirits": [],
        "message": (
            f'No matches found for "{query}". Try searching for a specific brand name, '
            "distillery, or type (like Bourbon, Rye, Scotch)."
        ),
    }
