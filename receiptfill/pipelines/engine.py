"""
Receipt field-extraction engine.

Pipeline:
    fragments
      -> TextNormalizer      (confidence floor, trim, reading order)
      -> SpatialIndex        (row buckets)
      -> FieldMatcher +
         ValueResolver       (single pass, each fragment consumed at most once)
      -> amount sniffer
      -> ResultAssembler     (NumericCleaner / DateParser, categories, payment mode)
      -> ReceiptAnalysisResult

The engine is built once (field table + compiled patterns) and is safe to
share between threads: every analyze() call keeps its mutable state local.
"""

import logging
import time
from typing import Optional, Sequence

from receiptfill.config.extraction_config import ExtractionConfig
from receiptfill.pipelines.assembler import ResultAssembler
from receiptfill.pipelines.errors import ParsingFailure
from receiptfill.pipelines.field_matcher import FieldMatcher
from receiptfill.pipelines.fields import FieldTable, load_field_table
from receiptfill.pipelines.normalizer import TextNormalizer
from receiptfill.pipelines.ocr import ImageInput, recognize_text
from receiptfill.pipelines.spatial_index import SpatialIndex
from receiptfill.pipelines.value_resolver import ValuePatterns, ValueResolver, consumed_sources
from receiptfill.schemas.receipt import DetectedFragment, ReceiptAnalysisResult

logger = logging.getLogger(__name__)


class ReceiptExtractionEngine:
    """
    Stateless extraction component.

    Construct once and hold by reference; analyze() may be called
    concurrently for different receipts.
    """

    def __init__(self, field_table: Optional[FieldTable] = None, config: Optional[ExtractionConfig] = None):
        self.config = config or ExtractionConfig()
        self.field_table = field_table or load_field_table(self.config.fields_file)

        self.normalizer = TextNormalizer(self.config)
        self.matcher = FieldMatcher(self.field_table)
        self.resolver = ValueResolver(self.matcher, self.config, ValuePatterns.compile())
        self.assembler = ResultAssembler(self.field_table.payment_modes)

    @property
    def table_version(self) -> str:
        return f"{self.field_table.id}@{self.field_table.version}"

    def analyze(self, fragments: Sequence[DetectedFragment]) -> ReceiptAnalysisResult:
        """
        Reconstruct an expense record from OCR fragments.

        Args:
            fragments: OCR fragments in any order

        Returns:
            ReceiptAnalysisResult (missing fields are None / empty)

        Raises:
            ParsingFailure: no usable fragment after normalization
        """
        start = time.time()

        usable = self.normalizer.normalize(fragments)
        if not usable:
            raise ParsingFailure(
                f"No usable text in receipt ({len(fragments)} fragment(s), "
                f"confidence floor {self.config.confidence_floor})"
            )

        index = SpatialIndex(usable, resolution=self.config.row_buckets, band=self.config.neighbor_band)
        state = self.resolver.run(usable, index)
        result = self.assembler.assemble(state.resolved, usable, state.evidence)

        elapsed_ms = (time.time() - start) * 1000
        logger.debug(
            f"Analyzed {len(usable)}/{len(fragments)} fragment(s) in {elapsed_ms:.1f}ms: "
            f"resolved={sorted(state.resolved)} consumed={consumed_sources(usable, state)}"
        )
        return result

    def analyze_image(self, image: ImageInput) -> ReceiptAnalysisResult:
        """
        OCR an image, then analyze its fragments.

        Raises:
            ImageProcessingFailure, RecognitionFailure, ParsingFailure
        """
        fragments = recognize_text(image)
        return self.analyze(fragments)
