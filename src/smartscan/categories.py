"""
Category registry
=================
The single authoritative table of document categories. Both the structured
data extractor (keyword patterns) and the classifier (strong / medium
keyword lists, ML label phrases) read from here, keyed by category id.

Categories are loaded from config/categories.yaml (or SMARTSCAN_CATEGORIES);
a missing file is a configuration error.

YAML layout
-----------
    fallback: other
    categories:
      - id: invoice
        label: Rechnung
        folder: Rechnungen
        document_name: Rechnung
        amount_bonus: true
        strong: [rechnung, rechnungsnummer, ...]
        medium: [betrag, mwst, ...]
        pattern: 'rechnung|invoice|faktura'
        ml_label: Rechnung oder Zahlungsaufforderung
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Pattern, Tuple, Union

from loguru import logger

from smartscan.config import categories_path, read_yaml
from smartscan.exceptions import ConfigError


@dataclass(frozen=True)
class Category:
    """One document category and the signals that identify it."""
    id: str
    label: str
    folder: str
    document_name: str = ""
    strong_keywords: Tuple[str, ...] = ()
    medium_keywords: Tuple[str, ...] = ()
    pattern: Optional[Pattern] = field(default=None, compare=False)
    ml_label: Optional[str] = None
    amount_bonus: bool = False

    @property
    def display_name(self) -> str:
        return self.document_name or self.label


_DEFAULT_FALLBACK = "other"


def _build_category(entry: Dict) -> Category:
    if "id" not in entry:
        raise ConfigError(f"Category entry without id: {entry}")
    cid = str(entry["id"])

    pattern = None
    raw_pattern = entry.get("pattern")
    if raw_pattern:
        try:
            pattern = re.compile(raw_pattern, re.IGNORECASE)
        except re.error as e:
            raise ConfigError(f"Bad keyword pattern for category '{cid}': {e}") from e

    return Category(
        id=cid,
        label=str(entry.get("label", cid)),
        folder=str(entry.get("folder", entry.get("label", cid))),
        document_name=str(entry.get("document_name", "")),
        strong_keywords=tuple(k.lower() for k in entry.get("strong", []) or []),
        medium_keywords=tuple(k.lower() for k in entry.get("medium", []) or []),
        pattern=pattern,
        ml_label=entry.get("ml_label"),
        amount_bonus=bool(entry.get("amount_bonus", False)),
    )


class CategoryRegistry:
    """
    Ordered, read-only set of categories.

    Iteration order is the configuration order; the classifier relies on it
    for tie-breaking. The fallback ("catch-all") category is always present.
    """

    def __init__(self, categories: List[Category], fallback_id: str = _DEFAULT_FALLBACK):
        seen = set()
        for cat in categories:
            if cat.id in seen:
                raise ConfigError(f"Duplicate category id: {cat.id}")
            seen.add(cat.id)

        if fallback_id not in seen:
            logger.warning(f"[Categories] Fallback '{fallback_id}' missing from config, adding it")
            categories = list(categories) + [
                Category(id=fallback_id, label=fallback_id, folder=fallback_id)
            ]

        self._categories: Dict[str, Category] = {c.id: c for c in categories}
        self.fallback_id = fallback_id

        labels: Dict[str, str] = {}
        for cat in categories:
            if not cat.ml_label:
                continue
            if cat.ml_label in labels:
                raise ConfigError(f"ML label '{cat.ml_label}' used by more than one category")
            labels[cat.ml_label] = cat.id
        self._ml_labels = labels

    # ── Construction ─────────────────────────────────────────────────────────

    @classmethod
    def from_entries(cls, entries: List[Dict], fallback_id: str = _DEFAULT_FALLBACK) -> "CategoryRegistry":
        return cls([_build_category(e) for e in entries], fallback_id)

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "CategoryRegistry":
        """Load from YAML; the file is the only source of categories."""
        resolved = categories_path(path)
        if not resolved.exists():
            raise ConfigError(f"Categories file not found: {resolved}")

        data = read_yaml(resolved)
        entries = data.get("categories")
        if not entries:
            raise ConfigError(f"No categories defined in {resolved}")
        registry = cls.from_entries(entries, str(data.get("fallback", _DEFAULT_FALLBACK)))
        logger.info(f"[Categories] Loaded {len(registry)} categories from {resolved}")
        return registry

    # ── Access ───────────────────────────────────────────────────────────────

    def __iter__(self) -> Iterator[Category]:
        return iter(self._categories.values())

    def __len__(self) -> int:
        return len(self._categories)

    def __contains__(self, category_id: str) -> bool:
        return category_id in self._categories

    def get(self, category_id: str) -> Optional[Category]:
        return self._categories.get(category_id)

    @property
    def ids(self) -> List[str]:
        return list(self._categories)

    @property
    def fallback(self) -> Category:
        return self._categories[self.fallback_id]

    @property
    def ml_labels(self) -> Dict[str, str]:
        """Label phrase → category id, for zero-shot classification."""
        return dict(self._ml_labels)
