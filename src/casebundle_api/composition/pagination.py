"""Pure page-range calculations for a composition.

Section breaks occupy exactly one page. Every other entry keeps its own page
count; only its position moves when the list is recalculated.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Sequence, TypeVar

from casebundle_api.composition.entries import (
    DocumentEntry,
    Entry,
    entry_page_count,
)
from casebundle_api.errors import InvalidReorderIndexError, InvariantViolationError


T = TypeVar("T")


def recalculate_page_ranges(entries: Sequence[Entry]) -> tuple[Entry, ...]:
    """Fold the entries left to right into contiguous page ranges.

    Returns new entry objects; the input sequence and its entries are left
    untouched so earlier snapshots stay valid.
    """
    result: list[Entry] = []
    last_page_end = 0
    for entry in entries:
        page_count = entry_page_count(entry)
        page_start = 1 if last_page_end == 0 else last_page_end + 1
        page_end = page_start + page_count - 1
        if entry.page_start == page_start and entry.page_end == page_end:
            result.append(entry)
        else:
            result.append(replace(entry, page_start=page_start, page_end=page_end))
        last_page_end = page_end
    return tuple(result)


def reorder_array(items: Sequence[T], from_index: int, to_index: int) -> tuple[T, ...]:
    """Move one item from ``from_index`` to ``to_index`` without mutating ``items``."""
    size = len(items)
    if not 0 <= from_index < size:
        raise InvalidReorderIndexError(
            f"from_index must be within 0..{size - 1}, got {from_index}"
        )
    if not 0 <= to_index < size:
        raise InvalidReorderIndexError(
            f"to_index must be within 0..{size - 1}, got {to_index}"
        )
    result = list(items)
    moved = result.pop(from_index)
    result.insert(to_index, moved)
    return tuple(result)


def total_pages(entries: Sequence[Entry]) -> int:
    if not entries:
        return 0
    return entries[-1].page_end


def document_count(entries: Sequence[Entry]) -> int:
    return sum(1 for entry in entries if isinstance(entry, DocumentEntry))


def find_invariant_violations(entries: Sequence[Entry]) -> tuple[str, ...]:
    violations: list[str] = []
    seen_ids: set[str] = set()
    expected_start = 1
    for position, entry in enumerate(entries):
        if entry.id in seen_ids:
            violations.append(f"duplicate entry id '{entry.id}' at position {position}")
        seen_ids.add(entry.id)
        if entry.page_start != expected_start:
            violations.append(
                f"entry '{entry.id}' starts at page {entry.page_start}, expected {expected_start}"
            )
        if entry.page_end < entry.page_start:
            violations.append(
                f"entry '{entry.id}' has a non-positive range {entry.page_start}-{entry.page_end}"
            )
        elif entry.page_end - entry.page_start + 1 != entry_page_count(entry):
            violations.append(f"entry '{entry.id}' spans the wrong number of pages")
        expected_start = entry.page_end + 1
    return tuple(violations)


def assert_contiguous(entries: Sequence[Entry]) -> None:
    violations = find_invariant_violations(entries)
    if violations:
        raise InvariantViolationError("; ".join(violations))


__all__ = [
    "assert_contiguous",
    "document_count",
    "find_invariant_violations",
    "recalculate_page_ranges",
    "reorder_array",
    "total_pages",
]
