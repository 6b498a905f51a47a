"""
procurement_engines.catalog -- Baseline Catalog lookups.

Responsibility:
    Index baseline items by id and description, derive the merge key that
    groups items representing the same logical requirement, and run the
    short incremental searches the drafting screens use for suggestions.

Architecture position:
    Engines -- pure, zero I/O.

Invariants enforced:
    - ``merge_key`` ignores case, accents, punctuation and spacing in the
      description, and case in the unit.
    - Searches need at least two characters and never return excluded ids.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from uuid import UUID

from procurement_kernel.domain.documents import BaselineItem
from procurement_kernel.domain.identifiers import (
    normalize_description,
    normalize_item_code,
    normalize_unit_label,
)

MIN_SEARCH_LENGTH = 2
DEFAULT_SUGGESTION_LIMIT = 6


def merge_key_for(description: str | None, unit: str | None) -> str:
    return f"{normalize_description(description)}::{normalize_unit_label(unit)}"


def merge_key(item: BaselineItem) -> str:
    """Key under which baseline items of the same requirement are merged."""
    return merge_key_for(item.description, item.unit)


class BaselineIndex:
    """
    Read-only lookup over the baseline items of one process.

    Contract:
        Built once per refresh; items keep their catalog order.

    Guarantees:
        - ``get`` returns None for unknown ids.
        - ``find_by_description`` matches the trimmed, case-insensitive
          description and returns the first catalog item that matches.
    """

    def __init__(self, items: Iterable[BaselineItem]):
        self._items: tuple[BaselineItem, ...] = tuple(items)
        self._by_id: dict[UUID, BaselineItem] = {item.id: item for item in self._items}
        self._by_description: dict[str, BaselineItem] = {}
        for item in self._items:
            key = item.description.strip().upper()
            if key:
                self._by_description.setdefault(key, item)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def __contains__(self, baseline_id: object) -> bool:
        return baseline_id in self._by_id

    @property
    def items(self) -> tuple[BaselineItem, ...]:
        return self._items

    def get(self, baseline_id: UUID | None) -> BaselineItem | None:
        if baseline_id is None:
            return None
        return self._by_id.get(baseline_id)

    def find_by_description(self, description: str | None) -> BaselineItem | None:
        if not description:
            return None
        return self._by_description.get(description.strip().upper())

    def sheet_names(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for item in self._items:
            if item.sheet_name:
                seen.setdefault(item.sheet_name, None)
        return tuple(seen)

    def search(
        self,
        term: str | None,
        exclude_ids: Iterable[UUID] = (),
        limit: int = DEFAULT_SUGGESTION_LIMIT,
    ) -> tuple[BaselineItem, ...]:
        return search_baseline(self._items, term, exclude_ids, limit)


def search_baseline(
    items: Sequence[BaselineItem],
    term: str | None,
    exclude_ids: Iterable[UUID] = (),
    limit: int = DEFAULT_SUGGESTION_LIMIT,
) -> tuple[BaselineItem, ...]:
    """Items whose description or normalized code contains ``term``."""
    needle = normalize_description(term)
    if len(needle) < MIN_SEARCH_LENGTH:
        return ()
    raw_needle = (term or "").strip()
    excluded = set(exclude_ids)
    matches: list[BaselineItem] = []
    for item in items:
        if item.id in excluded:
            continue
        code = normalize_item_code(item.item_code) or ""
        if needle in normalize_description(item.description) or (
            code and raw_needle and raw_needle in code
        ):
            matches.append(item)
            if len(matches) >= limit:
                break
    return tuple(matches)
