"""
Fuzzy product search shared by the shop search box and Gift Buddy.

Queries are expanded through a small Hinglish/English synonym table, then
every expanded pattern is matched approximately against the weighted product
fields. Scores run from 0 (exact) upward; lower is better.
"""
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from schemas import Product

THRESHOLD = 0.4
MIN_MATCH_CHARS = 2
EXACT_SCORE = 0.001
MAX_SUGGESTIONS = 5

FIELD_WEIGHTS: Sequence[Tuple[str, float]] = (
    ("name", 0.4),
    ("description", 0.3),
    ("category", 0.2),
    ("badge", 0.1),
)

SYNONYMS: Dict[str, List[str]] = {
    "paisa": ["money", "cash", "wallet", "purse", "gift card"],
    "pyaar": ["love", "heart", "romantic", "anniversary", "couple"],
    "birthday": ["janamdin", "bday", "birth day"],
    "gift": ["tohfa", "present", "surprise"],
    "teddy": ["soft toy", "plush", "stuffed"],
    "bottle": ["sipper", "flask", "water bottle"],
}


def expand_query(query: str) -> List[str]:
    """Return the normalized query followed by every synonym it pulls in."""
    normalized = query.lower().strip()
    expanded = [normalized]
    for term, synonyms in SYNONYMS.items():
        if term in normalized:
            expanded.extend(synonyms)
        if any(s in normalized for s in synonyms):
            expanded.append(term)
    return expanded


def substring_distance(pattern: str, text: str) -> int:
    """Fewest edits turning `pattern` into some substring of `text` (Sellers)."""
    if pattern in text:
        return 0
    m = len(pattern)
    column = list(range(m + 1))
    best = m
    for ch in text:
        current = [0] * (m + 1)
        for i in range(1, m + 1):
            cost = 0 if pattern[i - 1] == ch else 1
            current[i] = min(column[i] + 1, current[i - 1] + 1, column[i - 1] + cost)
        column = current
        if column[m] < best:
            best = column[m]
            if best == 0:
                break
    return best


def _field_text(product: Product, field: str) -> str:
    return (getattr(product, field, None) or "").lower()


def score_product(product: Product, pattern: str) -> Optional[float]:
    """Weighted score of one pattern against one product, or None on no match."""
    if len(pattern) < MIN_MATCH_CHARS:
        return None
    total = 1.0
    matched = False
    for field, weight in FIELD_WEIGHTS:
        value = _field_text(product, field)
        if not value:
            continue
        score = substring_distance(pattern, value) / len(pattern)
        if score <= THRESHOLD:
            matched = True
            total *= max(score, EXACT_SCORE) ** weight
    return total if matched else None


def search_products(products: Iterable[Product], query: str) -> List[Product]:
    products = list(products)
    if not query.strip():
        return products

    best: Dict[str, Tuple[float, int, Product]] = {}
    for pattern in expand_query(query):
        for position, product in enumerate(products):
            score = score_product(product, pattern)
            if score is None:
                continue
            seen = best.get(product.id)
            if seen is None or score < seen[0]:
                best[product.id] = (score, position, product)

    ranked = sorted(best.values(), key=lambda hit: (hit[0], hit[1]))
    return [product for _, _, product in ranked]


def get_suggestions(products: Iterable[Product], query: str) -> List[str]:
    if len(query.strip()) < MIN_MATCH_CHARS:
        return []
    needle = query.lower()
    products = list(products)
    suggestions: List[str] = []

    for product in products:
        if needle in product.name.lower() and product.name not in suggestions:
            suggestions.append(product.name)

    for category in dict.fromkeys(p.category for p in products if p.category):
        if needle in category.lower():
            label = category[:1].upper() + category[1:].replace("-", " ", 1)
            if label not in suggestions:
                suggestions.append(label)

    return suggestions[:MAX_SUGGESTIONS]
