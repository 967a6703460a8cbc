# receiptfill/pipelines/ocr.py
"""
OCR adapter for receiptfill.

Implements the recognize-text collaborator: image in, fragments out, with
boxes normalized to the unit square (origin top-left).

Supports two OCR engines:
1. EasyOCR (phrase-level results, better on photographed receipts)
2. Tesseract (word boxes, regrouped into phrases per line)

Failures are reported with the two collaborator-level error kinds:
- ImageProcessingFailure: the image could not be decoded
- RecognitionFailure: no engine available, or the engine raised
"""

import io
import os
import logging
import statistics
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple, Union

from PIL import Image, UnidentifiedImageError
import numpy as np

from receiptfill.pipelines.errors import ImageProcessingFailure, RecognitionFailure
from receiptfill.schemas.receipt import BoundingBox, DetectedFragment

logger = logging.getLogger(__name__)

# Try to import EasyOCR
try:
    import easyocr
    HAS_EASYOCR = True
except ImportError:
    easyocr = None
    HAS_EASYOCR = False
_easyocr_reader = None  # Lazy load

# Try to import Tesseract
try:
    import pytesseract
    HAS_TESSERACT = True
except ImportError:
    pytesseract = None  # type: ignore
    HAS_TESSERACT = False

# Words on one Tesseract line further apart than this many line heights
# start a new fragment (label / value columns)
PHRASE_GAP_FACTOR = 1.5

ImageInput = Union[str, Path, bytes, bytearray, Image.Image]


def load_image(image: ImageInput) -> Image.Image:
    """
    Decode an image from a path, raw bytes or a PIL image.

    Raises:
        ImageProcessingFailure: unreadable or undecodable image
    """
    try:
        if isinstance(image, Image.Image):
            img = image
        elif isinstance(image, (bytes, bytearray)):
            img = Image.open(io.BytesIO(bytes(image)))
        elif isinstance(image, (str, Path)):
            img = Image.open(str(image))
        else:
            raise ImageProcessingFailure(f"Unsupported image input: {type(image).__name__}")
        img.load()
    except ImageProcessingFailure:
        raise
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageProcessingFailure(f"Failed to process receipt image: {e}") from e

    if img.width == 0 or img.height == 0:
        raise ImageProcessingFailure("Receipt image is empty")

    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    return img


def _unit_box(x0: float, y0: float, x1: float, y1: float, width: int, height: int) -> BoundingBox:
    """Pixel box -> unit-square box, clamped to the image."""
    nx0 = min(max(x0 / width, 0.0), 1.0)
    nx1 = min(max(x1 / width, 0.0), 1.0)
    ny0 = min(max(y0 / height, 0.0), 1.0)
    ny1 = min(max(y1 / height, 0.0), 1.0)
    return BoundingBox(min_x=nx0, min_y=ny0, width=max(nx1 - nx0, 0.0), height=max(ny1 - ny0, 0.0))


def _get_easyocr_reader():
    """Lazy load EasyOCR reader (downloads models on first use)"""
    global _easyocr_reader
    if _easyocr_reader is None:
        languages = [l.strip() for l in os.getenv("OCR_LANGUAGES", "en").split(",") if l.strip()]
        logger.info("Loading EasyOCR reader (first time may download ~500MB models)...")
        _easyocr_reader = easyocr.Reader(languages or ["en"], gpu=False)
        logger.info("✅ EasyOCR reader loaded")
    return _easyocr_reader


def _run_easyocr(img: Image.Image) -> List[DetectedFragment]:
    """Run EasyOCR and convert its quads to unit-square boxes."""
    reader = _get_easyocr_reader()
    width, height = img.size
    results = reader.readtext(np.array(img), detail=1)

    fragments: List[DetectedFragment] = []
    for bbox, text, conf in results:
        # EasyOCR bbox format: [[x0,y0], [x1,y0], [x1,y1], [x0,y1]]
        x_coords = [p[0] for p in bbox]
        y_coords = [p[1] for p in bbox]
        fragments.append(DetectedFragment(
            text=text,
            bounding_box=_unit_box(min(x_coords), min(y_coords), max(x_coords), max(y_coords), width, height),
            confidence=float(conf),
        ))
    return fragments


def _group_tesseract_words(data: Dict[str, List[Any]]) -> List[List[Tuple[str, float, int, int, int, int]]]:
    """
    Group Tesseract TSV words into phrases.

    Words are grouped per (block, paragraph, line), ordered left to right,
    and split wherever the horizontal gap exceeds PHRASE_GAP_FACTOR line heights.
    """
    lines: Dict[Tuple[int, int, int], List[Tuple[str, float, int, int, int, int]]] = defaultdict(list)

    for i in range(len(data["text"])):
        text = str(data["text"][i]).strip()
        try:
            conf = float(data["conf"][i])
        except (TypeError, ValueError):
            conf = -1.0
        if not text or conf < 0:  # Tesseract uses -1 for non-text
            continue
        key = (int(data["block_num"][i]), int(data["par_num"][i]), int(data["line_num"][i]))
        lines[key].append((
            text,
            conf,
            int(data["left"][i]),
            int(data["top"][i]),
            int(data["width"][i]),
            int(data["height"][i]),
        ))

    phrases = []
    for key in sorted(lines):
        words = sorted(lines[key], key=lambda w: w[2])
        line_height = max(w[5] for w in words) or 1
        current = [words[0]]
        for word in words[1:]:
            prev = current[-1]
            gap = word[2] - (prev[2] + prev[4])
            if gap > PHRASE_GAP_FACTOR * line_height:
                phrases.append(current)
                current = [word]
            else:
                current.append(word)
        phrases.append(current)
    return phrases


def _run_tesseract(img: Image.Image) -> List[DetectedFragment]:
    """Run Tesseract with TSV output and regroup words into phrases."""
    width, height = img.size
    data = pytesseract.image_to_data(img, output_type=pytesseract.Output.DICT)

    fragments: List[DetectedFragment] = []
    for words in _group_tesseract_words(data):
        x0 = min(w[2] for w in words)
        y0 = min(w[3] for w in words)
        x1 = max(w[2] + w[4] for w in words)
        y1 = max(w[3] + w[5] for w in words)
        fragments.append(DetectedFragment(
            text=" ".join(w[0] for w in words),
            bounding_box=_unit_box(x0, y0, x1, y1, width, height),
            confidence=statistics.mean(w[1] for w in words) / 100.0,
        ))
    return fragments


def _select_engine() -> str:
    """
    Pick the OCR engine.

    Environment Variables:
    - OCR_ENGINE: 'auto' (default), 'easyocr', 'tesseract'
    """
    preference = os.getenv("OCR_ENGINE", "auto").lower()

    if preference == "easyocr" and HAS_EASYOCR:
        return "easyocr"
    if preference == "tesseract" and HAS_TESSERACT:
        return "tesseract"
    if preference == "auto":
        if HAS_EASYOCR:
            return "easyocr"
        if HAS_TESSERACT:
            return "tesseract"

    raise RecognitionFailure(
        f"No OCR engine available (OCR_ENGINE={preference}). "
        "Install easyocr (pip install easyocr) or tesseract."
    )


def recognize_text(image: ImageInput) -> List[DetectedFragment]:
    """
    Run OCR on a receipt image.

    Args:
        image: File path, encoded image bytes, or a PIL image

    Returns:
        Fragments with unit-square boxes and confidences in [0, 1]

    Raises:
        ImageProcessingFailure: the image could not be decoded
        RecognitionFailure: no engine available or the engine failed
    """
    img = load_image(image)
    engine = _select_engine()

    try:
        if engine == "easyocr":
            fragments = _run_easyocr(img)
        else:
            fragments = _run_tesseract(img)
    except Exception as e:
        logger.warning(f"{engine} failed: {e}")
        raise RecognitionFailure(f"{engine} failed: {e}") from e

    logger.info(f"OCR ({engine}) returned {len(fragments)} fragment(s)")
    return fragments


def fragments_to_dicts(fragments: Sequence[DetectedFragment]) -> List[Dict[str, Any]]:
    """Serialize fragments (e.g. to save OCR output for later re-analysis)."""
    return [
        {
            "text": f.text,
            "bounding_box": {
                "min_x": f.bounding_box.min_x,
                "min_y": f.bounding_box.min_y,
                "width": f.bounding_box.width,
                "height": f.bounding_box.height,
            },
            "confidence": f.confidence,
        }
        for f in fragments
    ]
