"""Loader for the packaged item-category keyword rules."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import yaml  # type: ignore[import-untyped]


@dataclass(frozen=True)
class CategoryRules:
    """One keyword rule from categories.yaml."""

    name: str
    keywords: tuple[str, ...]
    on_add: str
    on_remove: str

    def matches(self, item_name: str) -> bool:
        lowered = item_name.lower()
        return any(keyword in lowered for keyword in self.keywords)

    def category_for(self, removal: bool) -> str:
        return self.on_remove if removal else self.on_add


def _parse_rule(idx: int, item: object) -> CategoryRules:
    if not isinstance(item, dict):
        raise ValueError(f"rules[{idx}] must be a mapping")

    name = item.get("name")
    if not name:
        raise ValueError(f"rules[{idx}] missing name")

    keywords = item.get("keywords")
    if not isinstance(keywords, list) or not keywords:
        raise ValueError(f"rules[{idx}] keywords must be a non-empty list")

    always = item.get("always")
    if always:
        on_add = on_remove = str(always)
    else:
        on_add = item.get("in")
        on_remove = item.get("out")
        if not on_add or not on_remove:
            raise ValueError(f"rules[{idx}] needs 'always' or both 'in' and 'out'")

    return CategoryRules(
        name=str(name),
        keywords=tuple(str(k).lower() for k in keywords),
        on_add=str(on_add),
        on_remove=str(on_remove),
    )


@lru_cache
def load_category_rules() -> tuple[CategoryRules, ...]:
    """Load categorization rules from YAML, in priority order."""
    rules_path = Path(__file__).resolve().parent / "categories.yaml"
    if not rules_path.exists():
        return ()

    data = yaml.safe_load(rules_path.read_text(encoding="utf-8"))
    if data is None:
        return ()

    if isinstance(data, list):
        items = data
    elif isinstance(data, dict):
        items = data.get("rules") or []
    else:
        raise ValueError("categories.yaml must be a list or mapping with 'rules'")

    if not isinstance(items, list):
        raise ValueError("rules must be a list")

    return tuple(_parse_rule(idx, item) for idx, item in enumerate(items))
