"""
Value resolution for label candidates.

For every label the resolver tries, in order:
1. Inline extraction: the value sits in the label's own fragment
   ("Quantity - 5", "Rate: ₹20,000", "Bill Date 23/12/2025")
2. Spatial extraction: the nearest unconsumed fragment to the right of the
   label on the same (or an adjacent) row

After the matching pass an amount sniffer adopts the first bare monetary
token when no labelled amount was found, since totals are often printed
without an adjacent "Total:" label.

All mutable state lives in ExtractionState, which the engine creates for
one analyze() call and passes through explicitly.
"""

import re
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Pattern, Sequence, Set, Tuple

from receiptfill.config.extraction_config import ExtractionConfig
from receiptfill.pipelines.cleaners import (
    CURRENCY_PATTERN,
    DATE_TOKEN_PATTERN,
    NUMBER_PATTERN,
    NumericCleaner,
)
from receiptfill.pipelines.field_matcher import FieldMatcher, LabelMatch
from receiptfill.pipelines.spatial_index import SpatialIndex
from receiptfill.schemas.receipt import FieldEvidence, NormalizedFragment

logger = logging.getLogger(__name__)

AMOUNT_KEY = "amount"

# Fields whose spatial value must carry at least one digit
_DIGIT_KINDS = {"numeric", "money", "date"}
_HAS_DIGIT_RE = re.compile(r"\d")


@dataclass
class ExtractionState:
    """
    Per-call mutable state.

    - consumed: normalized-fragment indices already used as label or value
    - resolved: field key -> raw value string
    - evidence: field key -> where the value came from
    """
    consumed: Set[int] = field(default_factory=set)
    resolved: Dict[str, str] = field(default_factory=dict)
    evidence: Dict[str, FieldEvidence] = field(default_factory=dict)

    def consume(self, index: int) -> None:
        if index in self.consumed:
            raise ValueError(f"Fragment {index} is already consumed")
        self.consumed.add(index)

    def record(self, key: str, value: str, evidence: FieldEvidence) -> None:
        self.resolved[key] = value
        self.evidence[key] = evidence


@dataclass(frozen=True)
class ValuePatterns:
    """Regexes compiled once per engine and shared across calls."""
    inline_numeric: Pattern
    inline_quantity: Pattern
    inline_currency: Pattern
    inline_date: Pattern
    inline_text: Pattern
    bare_amount: Pattern

    @classmethod
    def compile(cls) -> "ValuePatterns":
        return cls(
            inline_numeric=re.compile(
                r"[-:]\s*" + CURRENCY_PATTERN + r"?\s*(" + NUMBER_PATTERN + r")",
                re.IGNORECASE,
            ),
            inline_quantity=re.compile(
                r"[-:]\s*(" + NUMBER_PATTERN + r"(?:\s*[A-Za-z]+\.?)?)",
                re.IGNORECASE,
            ),
            inline_currency=re.compile(
                CURRENCY_PATTERN + r"\s*(" + NUMBER_PATTERN + r")",
                re.IGNORECASE,
            ),
            inline_date=re.compile(r"(" + DATE_TOKEN_PATTERN + r")", re.IGNORECASE),
            inline_text=re.compile(r"[-:]\s*(\S.*)$"),
            bare_amount=re.compile(
                r"^" + CURRENCY_PATTERN + r"?\s*(" + NUMBER_PATTERN + r")\s*(?:/-)?\s*" + CURRENCY_PATTERN + r"?$",
                re.IGNORECASE,
            ),
        )


class ValueResolver:
    """Finds values for label candidates. Holds no per-call state."""

    def __init__(self, matcher: FieldMatcher, config: ExtractionConfig, patterns: ValuePatterns = None):
        self.matcher = matcher
        self.config = config
        self.patterns = patterns or ValuePatterns.compile()
        self.cleaner = NumericCleaner()

    # ------------------------------------------------------------------
    # Inline extraction
    # ------------------------------------------------------------------

    def inline_value(self, fragment: NormalizedFragment, match: LabelMatch) -> Optional[str]:
        """
        Search the label's own text (after the alias) for its value.

        Args:
            fragment: The label fragment
            match: Label match carrying the field kind and alias offset

        Returns:
            Raw value string, or None when the fragment holds only the label
        """
        text = fragment.text
        # lower() can change length for a few non-ASCII characters
        tail = text[match.alias_end:] if len(text) == len(fragment.lower) else text

        kind = match.field.kind
        if kind == "numeric":
            # "Qty - 50 bags": keep the unit for the uom fallback
            m = (self.patterns.inline_quantity.search(tail)
                 or self.patterns.inline_numeric.search(tail)
                 or self.patterns.inline_currency.search(tail))
        elif kind == "money":
            m = self.patterns.inline_numeric.search(tail) or self.patterns.inline_currency.search(tail)
        elif kind == "date":
            m = self.patterns.inline_date.search(tail)
        else:
            m = self.patterns.inline_text.search(tail)

        if not m:
            return None
        value = m.group(1).strip()
        return value or None

    # ------------------------------------------------------------------
    # Spatial extraction
    # ------------------------------------------------------------------

    def spatial_value(
        self,
        fragments: Sequence[NormalizedFragment],
        index: SpatialIndex,
        label_idx: int,
        match: LabelMatch,
        state: ExtractionState,
    ) -> Optional[int]:
        """
        Pick the nearest unconsumed fragment to the right of the label.

        A candidate must start right of the label's right edge (minus a
        small tolerance) and within max_gap of it. Smallest gap wins; ties
        go to the nearer row, then reading order.

        Returns:
            Normalized index of the winning fragment, or None
        """
        label_box = fragments[label_idx].box
        eps = self.config.right_tolerance
        max_gap = self.config.max_gap
        label_bucket = index.bucket_of(label_idx)
        needs_digit = match.field.kind in _DIGIT_KINDS

        best: Optional[Tuple[float, int, int]] = None
        for idx in index.neighbors(label_idx):
            if idx in state.consumed:
                continue
            cand = fragments[idx]
            if not cand.box.min_x > label_box.max_x - eps:
                continue
            gap = cand.box.min_x - label_box.max_x
            if gap >= max_gap:
                continue
            if needs_digit and not _HAS_DIGIT_RE.search(cand.text):
                continue
            if self.matcher.is_bare_label(cand, state.resolved):
                continue

            key = (max(gap, 0.0), abs(index.bucket_of(idx) - label_bucket), idx)
            if best is None or key < best:
                best = key

        return best[2] if best is not None else None

    # ------------------------------------------------------------------
    # Label resolution
    # ------------------------------------------------------------------

    def resolve_label(
        self,
        fragments: Sequence[NormalizedFragment],
        index: SpatialIndex,
        label_idx: int,
        match: LabelMatch,
        state: ExtractionState,
    ) -> bool:
        """
        Resolve one label candidate; returns True when the field got a value.

        Inline success consumes only the label fragment and skips the
        spatial search entirely. Spatial success consumes label and value.
        """
        label = fragments[label_idx]
        key = match.field.key

        value = self.inline_value(label, match)
        if value is not None:
            state.consume(label_idx)
            state.record(key, value, FieldEvidence(
                method="inline",
                value_index=label.source_index,
                label_index=label.source_index,
                alias=match.alias,
            ))
            logger.debug(f"{key}: inline {value!r} from {label.text!r}")
            return True

        value_idx = self.spatial_value(fragments, index, label_idx, match, state)
        if value_idx is not None:
            winner = fragments[value_idx]
            state.consume(label_idx)
            state.consume(value_idx)
            state.record(key, winner.text.strip(), FieldEvidence(
                method="spatial",
                value_index=winner.source_index,
                label_index=label.source_index,
                alias=match.alias,
            ))
            logger.debug(f"{key}: spatial {winner.text!r} right of {label.text!r}")
            return True

        logger.debug(f"{key}: label {label.text!r} has no value")
        return False

    # ------------------------------------------------------------------
    # Amount sniffer
    # ------------------------------------------------------------------

    def looks_monetary(self, fragment: NormalizedFragment) -> Optional[str]:
        """
        Return the numeric token when the fragment is a bare monetary value.

        "₹ 12,450.00", "12,450.00 INR" and "500/-" qualify; "3" (too small, no decimals),
        "12/03/2024" and "Cement 50kg" do not.
        """
        m = self.patterns.bare_amount.match(fragment.text)
        if not m:
            return None
        token = m.group(1)
        if "." in token:
            return token
        value = self.cleaner.to_decimal(token)
        if value is not None and value > Decimal(10):
            return token
        return None

    def sniff_amount(self, fragments: Sequence[NormalizedFragment], state: ExtractionState) -> bool:
        """Adopt the first bare monetary token as amount when it is unresolved."""
        if AMOUNT_KEY in state.resolved:
            return False

        for idx, frag in enumerate(fragments):
            if idx in state.consumed:
                continue
            if self.looks_monetary(frag) is None:
                continue
            state.consume(idx)
            state.record(AMOUNT_KEY, frag.text, FieldEvidence(
                method="sniffer",
                value_index=frag.source_index,
            ))
            logger.debug(f"amount: sniffed {frag.text!r}")
            return True

        return False

    def run(self, fragments: Sequence[NormalizedFragment], index: SpatialIndex) -> ExtractionState:
        """
        Single matching pass over the reading-ordered fragments.

        Each fragment is consumed at most once; a label whose field is
        already resolved is ignored.
        """
        state = ExtractionState()

        for idx, frag in enumerate(fragments):
            if idx in state.consumed:
                continue
            match = self.matcher.match(frag, state.resolved)
            if match is None:
                continue
            self.resolve_label(fragments, index, idx, match, state)

        self.sniff_amount(fragments, state)
        return state


def consumed_sources(fragments: Sequence[NormalizedFragment], state: ExtractionState) -> List[int]:
    """Source indices of consumed fragments (handy for debugging output)."""
    return sorted(fragments[i].source_index for i in state.consumed)
