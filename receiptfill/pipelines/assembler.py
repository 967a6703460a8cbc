"""
Builds the typed ReceiptAnalysisResult from the raw field map.

Assembly never fails: absent or unparsable values become None / "".
"""

import re
from typing import Dict, List, Mapping, Optional, Sequence

from receiptfill.pipelines.cleaners import DateParser, NumericCleaner
from receiptfill.pipelines.fields.schema import PaymentModeKeywords
from receiptfill.schemas.receipt import (
    FieldEvidence,
    NormalizedFragment,
    PaymentMode,
    ReceiptAnalysisResult,
)

_LEADING_SEPARATOR_RE = re.compile(r"^[\s:\-=]+")

_PAYMENT_GROUP_MODES = {
    "upi": PaymentMode.UPI,
    "cheque": PaymentMode.CHEQUE,
    "card": PaymentMode.CARD,
}


def split_categories(raw: Optional[str]) -> List[str]:
    """ "Labour, Raw Materials,, " -> ["Labour", "Raw Materials"] """
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def clean_text(raw: Optional[str]) -> str:
    """Trim a text value and drop separators left over from split labels."""
    if not raw:
        return ""
    return _LEADING_SEPARATOR_RE.sub("", raw).strip()


class ResultAssembler:
    """Turns raw strings into the typed, immutable result."""

    def __init__(
        self,
        payment_modes: PaymentModeKeywords,
        cleaner: Optional[NumericCleaner] = None,
        date_parser: Optional[DateParser] = None,
    ):
        self.payment_modes = payment_modes
        self.cleaner = cleaner or NumericCleaner()
        self.date_parser = date_parser or DateParser()

    def classify_payment_mode(self, text: Optional[str]) -> Optional[PaymentMode]:
        """
        Ordered substring match against the upi, cheque and card groups.

        Returns None when nothing matches; the caller defaults to cash.
        """
        if not text:
            return None
        lowered = text.lower()
        for group, keywords in self.payment_modes.ordered_groups():
            if any(kw in lowered for kw in keywords):
                return _PAYMENT_GROUP_MODES[group]
        return None

    def _payment_mode(self, raw: Mapping[str, str], fragments: Sequence[NormalizedFragment]) -> PaymentMode:
        labelled = raw.get("modeOfPayment")
        if labelled:
            return self.classify_payment_mode(labelled) or PaymentMode.CASH

        # No "Mode of payment" label: look for payment hints anywhere
        receipt_text = "\n".join(f.lower for f in fragments)
        return self.classify_payment_mode(receipt_text) or PaymentMode.CASH

    def assemble(
        self,
        raw: Mapping[str, str],
        fragments: Sequence[NormalizedFragment] = (),
        evidence: Optional[Mapping[str, FieldEvidence]] = None,
    ) -> ReceiptAnalysisResult:
        """
        Build the result.

        Args:
            raw: field key -> raw value string (from the matching pass)
            fragments: usable fragments, for payment-mode hints
            evidence: field key -> provenance

        Returns:
            ReceiptAnalysisResult
        """
        quantity, quantity_unit = self.cleaner.split_quantity(raw.get("quantity"))
        uom = clean_text(raw.get("uom")) or quantity_unit

        raw_fields: Dict[str, str] = dict(raw)

        return ReceiptAnalysisResult(
            date=self.date_parser.parse(raw.get("date")),
            amount=self.cleaner.to_decimal(raw.get("amount")),
            description=clean_text(raw.get("description")),
            categories=split_categories(clean_text(raw.get("categories"))),
            payment_mode=self._payment_mode(raw, fragments),
            item_type=clean_text(raw.get("itemType")),
            item=clean_text(raw.get("item")),
            brand=clean_text(raw.get("brand")),
            spec=clean_text(raw.get("spec")),
            quantity=quantity,
            unit_of_measure=uom,
            unit_price=self.cleaner.clean_number(raw.get("unitPrice")),
            raw_fields=raw_fields,
            evidence=dict(evidence or {}),
        )
