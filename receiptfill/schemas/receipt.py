# receiptfill/schemas/receipt.py

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Dict, Any, Optional


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned box in the unit square (origin top-left, y grows downwards).
    """
    min_x: float
    min_y: float
    width: float
    height: float

    @property
    def max_x(self) -> float:
        return self.min_x + self.width

    @property
    def max_y(self) -> float:
        return self.min_y + self.height

    @property
    def mid_x(self) -> float:
        return self.min_x + self.width / 2

    @property
    def mid_y(self) -> float:
        return self.min_y + self.height / 2

    def flipped(self) -> "BoundingBox":
        """Return the same box expressed with the y axis pointing the other way."""
        return BoundingBox(
            min_x=self.min_x,
            min_y=1.0 - (self.min_y + self.height),
            width=self.width,
            height=self.height,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoundingBox":
        """Accept both camelCase (minX) and snake_case (min_x) keys."""
        def _get(snake: str, camel: str) -> float:
            if snake in data:
                return float(data[snake])
            return float(data[camel])

        return cls(
            min_x=_get("min_x", "minX"),
            min_y=_get("min_y", "minY"),
            width=_get("width", "width"),
            height=_get("height", "height"),
        )


@dataclass(frozen=True)
class DetectedFragment:
    """
    One OCR-recognized text span.

    Produced by the OCR collaborator (see receiptfill.pipelines.ocr) and
    treated as read-only input by the extraction engine.
    """
    text: str
    bounding_box: BoundingBox
    confidence: float = 1.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DetectedFragment":
        box = data.get("bounding_box")
        if box is None:
            box = data.get("boundingBox")
        if box is None:
            raise ValueError("fragment is missing a bounding box")
        if not isinstance(box, BoundingBox):
            box = BoundingBox.from_dict(box)
        return cls(
            text=str(data.get("text") or ""),
            bounding_box=box,
            confidence=float(data.get("confidence", 1.0)),
        )


@dataclass(frozen=True)
class NormalizedFragment:
    """
    A usable fragment after normalization.

    - text: cleaned text (NFKC, whitespace collapsed, trimmed)
    - lower: lower-cased text used for alias matching
    - source_index: position of the fragment in the caller's input list
    """
    text: str
    lower: str
    box: BoundingBox
    confidence: float
    source_index: int


class PaymentMode(str, Enum):
    CASH = "cash"
    UPI = "upi"
    CHEQUE = "cheque"
    CARD = "card"

    @property
    def display_name(self) -> str:
        return _PAYMENT_MODE_LABELS[self]


_PAYMENT_MODE_LABELS = {
    PaymentMode.CASH: "By cash",
    PaymentMode.UPI: "By UPI",
    PaymentMode.CHEQUE: "By cheque",
    PaymentMode.CARD: "By Card",
}


@dataclass(frozen=True)
class FieldEvidence:
    """
    Where a resolved field came from.

    Indices are source indices (positions in the caller's fragment list).
    `label_index` is None for values adopted by the amount sniffer.
    """
    method: str                       # inline / spatial / sniffer
    value_index: int
    label_index: Optional[int] = None
    alias: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "label_index": self.label_index,
            "value_index": self.value_index,
            "alias": self.alias,
        }


@dataclass(frozen=True)
class ReceiptAnalysisResult:
    """
    Structured expense record used to pre-fill an expense-entry form.

    Every field is optional in practice: a gap is an empty string / None,
    never an error, because the caller treats every field as editable.
    """
    date: Optional[datetime] = None
    amount: Optional[Decimal] = None
    description: str = ""
    categories: List[str] = field(default_factory=list)
    payment_mode: PaymentMode = PaymentMode.CASH
    item_type: str = ""
    item: str = ""
    brand: str = ""
    spec: str = ""
    quantity: str = ""
    unit_of_measure: str = ""
    unit_price: str = ""

    # --- Debugging / audit payloads ------------------------------------------
    raw_fields: Dict[str, str] = field(default_factory=dict)
    evidence: Dict[str, FieldEvidence] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serializable dict for the API / logging."""
        return {
            "date": self.date.date().isoformat() if self.date else None,
            "amount": float(self.amount) if self.amount is not None else None,
            "description": self.description,
            "categories": list(self.categories),
            "payment_mode": self.payment_mode.value,
            "item_type": self.item_type,
            "item": self.item,
            "brand": self.brand,
            "spec": self.spec,
            "quantity": self.quantity,
            "unit_of_measure": self.unit_of_measure,
            "unit_price": self.unit_price,
            "raw_fields": dict(self.raw_fields),
            "evidence": {k: v.to_dict() for k, v in self.evidence.items()},
        }
