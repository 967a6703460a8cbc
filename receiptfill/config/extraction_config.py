"""
Extraction engine configuration.

All geometry is expressed in the unit square the OCR adapter produces:
- row_buckets: number of horizontal bands the image height is divided into
- neighbor_band: how many bands above/below still count as "the same row"
- max_gap: largest horizontal gap (fraction of width) between label and value
- right_tolerance: how far a value may start left of the label's right edge
"""

import os
from typing import Optional
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ExtractionConfig:
    """Tunable constants for the extraction engine."""

    confidence_floor: float = 0.3
    row_buckets: int = 100
    neighbor_band: int = 2
    max_gap: float = 0.6
    right_tolerance: float = 0.02

    # Set when boxes come with a bottom-left origin (y grows upwards)
    y_axis_up: bool = False

    # Field table YAML (None = bundled expense_fields.yaml)
    fields_file: Optional[str] = None

    def __post_init__(self):
        if not 0.0 <= self.confidence_floor <= 1.0:
            raise ValueError(f"confidence_floor must be in [0, 1], got {self.confidence_floor}")
        if self.row_buckets < 1:
            raise ValueError(f"row_buckets must be >= 1, got {self.row_buckets}")
        if self.neighbor_band < 0:
            raise ValueError(f"neighbor_band must be >= 0, got {self.neighbor_band}")
        if self.max_gap <= 0:
            raise ValueError(f"max_gap must be positive, got {self.max_gap}")

    @classmethod
    def from_env(cls) -> "ExtractionConfig":
        """Load config from environment variables."""
        return cls(
            confidence_floor=float(os.getenv("RECEIPTFILL_CONFIDENCE_FLOOR", "0.3")),
            row_buckets=int(os.getenv("RECEIPTFILL_ROW_BUCKETS", "100")),
            neighbor_band=int(os.getenv("RECEIPTFILL_NEIGHBOR_BAND", "2")),
            max_gap=float(os.getenv("RECEIPTFILL_MAX_GAP", "0.6")),
            right_tolerance=float(os.getenv("RECEIPTFILL_RIGHT_TOLERANCE", "0.02")),
            y_axis_up=_env_bool("RECEIPTFILL_Y_AXIS_UP", False),
            fields_file=os.getenv("RECEIPTFILL_FIELDS_FILE") or None,
        )
