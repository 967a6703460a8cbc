"""
receiptfill: pre-fills expense forms from photographed receipts.

The core is ReceiptExtractionEngine.analyze(), which turns OCR fragments
(text + unit-square box + confidence) into a ReceiptAnalysisResult.
"""

from receiptfill.config.extraction_config import ExtractionConfig
from receiptfill.pipelines.engine import ReceiptExtractionEngine
from receiptfill.pipelines.errors import (
    AnalysisError,
    ImageProcessingFailure,
    ParsingFailure,
    RecognitionFailure,
)
from receiptfill.schemas.receipt import (
    BoundingBox,
    DetectedFragment,
    PaymentMode,
    ReceiptAnalysisResult,
)

__version__ = "0.1.0"

__all__ = [
    "ExtractionConfig",
    "ReceiptExtractionEngine",
    "AnalysisError",
    "ImageProcessingFailure",
    "ParsingFailure",
    "RecognitionFailure",
    "BoundingBox",
    "DetectedFragment",
    "PaymentMode",
    "ReceiptAnalysisResult",
]
