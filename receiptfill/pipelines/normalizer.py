"""
Fragment normalization for receipt field extraction.

Turns raw OCR fragments into the reading-ordered list every later
heuristic relies on:
1. Drop fragments below the confidence floor
2. Unicode-normalize (NFKC) and trim text, dropping empties
3. Sort top-to-bottom (then left-to-right)
"""

import re
import unicodedata
import logging
from typing import List, Sequence

from receiptfill.config.extraction_config import ExtractionConfig
from receiptfill.schemas.receipt import DetectedFragment, NormalizedFragment

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


class TextNormalizer:
    """Filters, cleans and orders OCR fragments."""

    def __init__(self, config: ExtractionConfig = None):
        self.config = config or ExtractionConfig()

    def normalize_text(self, text: str) -> str:
        """
        Normalize one fragment text.

        NFKC folds fullwidth digits/punctuation (common on thermal receipts)
        into their ASCII forms; internal whitespace runs become one space.
        """
        if not text:
            return ""
        text = unicodedata.normalize("NFKC", text)
        return _WHITESPACE_RE.sub(" ", text).strip()

    def normalize(self, fragments: Sequence[DetectedFragment]) -> List[NormalizedFragment]:
        """
        Normalize a receipt's fragments.

        Args:
            fragments: Fragments in whatever order the OCR engine returned them

        Returns:
            Usable fragments sorted by vertical center, then left edge,
            then original position
        """
        floor = self.config.confidence_floor
        usable: List[NormalizedFragment] = []
        dropped_low_conf = 0

        for idx, frag in enumerate(fragments):
            if frag.confidence is None or frag.confidence < floor:
                dropped_low_conf += 1
                continue

            text = self.normalize_text(frag.text)
            if not text:
                continue

            box = frag.bounding_box.flipped() if self.config.y_axis_up else frag.bounding_box
            usable.append(NormalizedFragment(
                text=text,
                lower=text.lower(),
                box=box,
                confidence=float(frag.confidence),
                source_index=idx,
            ))

        usable.sort(key=lambda f: (f.box.mid_y, f.box.min_x, f.source_index))

        if dropped_low_conf:
            logger.debug(f"Dropped {dropped_low_conf} fragment(s) below confidence floor {floor}")

        return usable
