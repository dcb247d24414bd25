"""
Candidate discovery for component substitutes.

Four sources are unioned, then de-duplicated by id in discovery order:

    1. Same category.
    2. Same manufacturer.
    3. Fuzzy name match: fraction of the original's key terms found in the
       candidate name must exceed ``name_similarity_threshold`` (default 0.3).
    4. Declared relationships on the original component.

The original component is never its own candidate.
"""

from __future__ import annotations

import re
from typing import Optional

from inventory_oracle.models.component import Component
from inventory_oracle.stores import InventoryStore

STOP_WORDS: frozenset[str] = frozenset(
    {"the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by"}
)

_PUNCTUATION = re.compile(r"[^\w\s]")


def extract_key_terms(name: str) -> list[str]:
    """Lower-cased significant terms of a component name.

    Punctuation becomes whitespace; stop words and terms of two characters
    or fewer are dropped.

    >>> extract_key_terms("ESP32 Dev-Kit (V1)")
    ['esp32', 'dev', 'kit']
    """
    cleaned = _PUNCTUATION.sub(" ", name.lower())
    return [t for t in cleaned.split() if len(t) > 2 and t not in STOP_WORDS]


def name_similarity(terms: list[str], candidate_name: str) -> float:
    """Fraction of ``terms`` contained in ``candidate_name`` (case-insensitive)."""
    if not terms:
        return 0.0
    haystack = candidate_name.lower()
    return sum(1 for t in terms if t in haystack) / len(terms)


async def discover_candidates(
    component: Component,
    inventory: InventoryStore,
    name_similarity_threshold: float = 0.3,
) -> list[Component]:
    """Return de-duplicated substitute candidates for ``component``."""
    found: dict[str, Component] = {}

    def _add(candidates: list[Component]) -> None:
        for c in candidates:
            if c.id != component.id and c.id not in found:
                found[c.id] = c

    if component.category:
        _add(await inventory.get_by_category(component.category))

    all_items = await inventory.get_all_items()

    if component.manufacturer:
        _add([c for c in all_items if c.manufacturer == component.manufacturer])

    terms = extract_key_terms(component.name)
    _add([c for c in all_items if name_similarity(terms, c.name) > name_similarity_threshold])

    related: list[Component] = []
    for rel in component.relationships:
        item: Optional[Component] = await inventory.get_by_id(rel.related_component_id)
        if item is not None:
            related.append(item)
    _add(related)

    return list(found.values())
