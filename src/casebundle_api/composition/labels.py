from __future__ import annotations

from dataclasses import replace
from typing import Sequence

from casebundle_api.composition.entries import (
    DocumentEntry,
    Entry,
    SectionBreakEntry,
    is_ordinal_bearing,
)
from casebundle_api.schemas import ExhibitLabelStyle


def section_label(ordinal: int) -> str:
    """Spreadsheet-column style label for a zero-based ordinal: A..Z, AA, AB, ..."""
    if ordinal < 0:
        raise ValueError(f"section ordinal must be >= 0, got {ordinal}")
    letters: list[str] = []
    n = ordinal
    while n >= 0:
        letters.append(chr(65 + n % 26))
        n = n // 26 - 1
    return "".join(reversed(letters))


def default_section_break_label(entries: Sequence[Entry]) -> str:
    section_count = sum(1 for entry in entries if isinstance(entry, SectionBreakEntry))
    return f"TAB {section_label(section_count)}"


def display_number(entry: Entry, index: int, entries: Sequence[Entry]) -> str:
    """Visible ordinal for the row at ``index``.

    Section breaks are lettered from their own running count; every other
    row shares one numeric counter that skips section breaks.
    """
    if isinstance(entry, SectionBreakEntry):
        section_count = sum(
            1 for item in entries[: index + 1] if isinstance(item, SectionBreakEntry)
        )
        return f"{section_label(section_count - 1)}."
    ordinal_count = sum(1 for item in entries[: index + 1] if is_ordinal_bearing(item))
    return f"{ordinal_count}."


def display_numbers(entries: Sequence[Entry]) -> tuple[str, ...]:
    numbers: list[str] = []
    section_count = 0
    ordinal_count = 0
    for entry in entries:
        if isinstance(entry, SectionBreakEntry):
            numbers.append(f"{section_label(section_count)}.")
            section_count += 1
        else:
            ordinal_count += 1
            numbers.append(f"{ordinal_count}.")
    return tuple(numbers)


def exhibit_label(ordinal: int, *, style: ExhibitLabelStyle = "alphabetical", prefix: str = "") -> str:
    if style == "alphabetical":
        return f"Exhibit {section_label(ordinal)}"
    if style == "tab":
        return f"Tab {ordinal + 1}"
    if style == "initials":
        normalized_prefix = prefix.strip()
        if not normalized_prefix:
            raise ValueError("initials exhibit style requires a prefix")
        return f"{normalized_prefix}-{ordinal + 1}"
    raise ValueError(f"Unsupported exhibit label style: {style!r}")


def assign_exhibit_labels(
    entries: Sequence[Entry],
    *,
    style: ExhibitLabelStyle = "alphabetical",
    prefix: str = "",
) -> tuple[Entry, ...]:
    """Label documents in order for affidavit mode; other rows pass through."""
    result: list[Entry] = []
    exhibit_ordinal = 0
    for entry in entries:
        if isinstance(entry, DocumentEntry):
            label = exhibit_label(exhibit_ordinal, style=style, prefix=prefix)
            exhibit_ordinal += 1
            if entry.exhibit_label != label:
                entry = replace(entry, exhibit_label=label)
        result.append(entry)
    return tuple(result)


__all__ = [
    "assign_exhibit_labels",
    "default_section_break_label",
    "display_number",
    "display_numbers",
    "exhibit_label",
    "section_label",
]
