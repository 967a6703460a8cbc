"""
Label detection against the field table.

A fragment is a label candidate for field F when its lower-cased text
contains any alias of F and F is not yet resolved. When several fields
match, table order decides (not alphabetical, not longest alias).
"""

import re
from dataclasses import dataclass
from typing import Container, Optional, Tuple

from receiptfill.pipelines.fields.schema import FieldDefinition, FieldTable
from receiptfill.schemas.receipt import NormalizedFragment

_TRAILING_SEPARATOR_RE = re.compile(r"[\s:\-]+$")


@dataclass(frozen=True)
class LabelMatch:
    """A fragment recognized as the label of `field`."""
    field: FieldDefinition
    alias: str
    alias_end: int      # offset just past the rightmost alias occurrence


class FieldMatcher:
    """Matches fragment text against the field aliases (read-only, shareable)."""

    def __init__(self, table: FieldTable):
        self.table = table
        # Longest alias first so "total amount" is preferred over "total"
        self._fields: Tuple[Tuple[FieldDefinition, Tuple[str, ...]], ...] = tuple(
            (f, tuple(sorted(f.aliases, key=len, reverse=True)))
            for f in table.fields
        )

    def match(self, fragment: NormalizedFragment, resolved: Container[str]) -> Optional[LabelMatch]:
        """
        Find the field this fragment labels, if any.

        Args:
            fragment: Normalized fragment
            resolved: Keys of fields that already have a value

        Returns:
            LabelMatch for the first unresolved field (table order) with an
            alias inside the text, or None
        """
        text = fragment.lower
        for field_def, aliases in self._fields:
            if field_def.key in resolved:
                continue

            best: Optional[Tuple[str, int]] = None
            for alias in aliases:
                pos = text.rfind(alias)
                if pos < 0:
                    continue
                end = pos + len(alias)
                if best is None or end > best[1]:
                    best = (alias, end)

            if best is not None:
                return LabelMatch(field=field_def, alias=best[0], alias_end=best[1])

        return None

    def is_bare_label(self, fragment: NormalizedFragment, resolved: Container[str]) -> bool:
        """
        True when the whole text is an alias of an unresolved field.

        Only a trailing ":" or "-" may follow the alias ("Brand", "Rate:").
        Values that merely contain an alias ("UltraTech", "Special Cement")
        are not labels.
        """
        text = _TRAILING_SEPARATOR_RE.sub("", fragment.lower)
        for field_def, aliases in self._fields:
            if field_def.key in resolved:
                continue
            if text in aliases:
                return True
        return False
