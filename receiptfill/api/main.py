# receiptfill/api/main.py

from typing import List, Optional, Dict, Any
import os
import time
import logging
from datetime import datetime, timezone

from fastapi import FastAPI, UploadFile, File, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from receiptfill import __version__
from receiptfill.config.extraction_config import ExtractionConfig
from receiptfill.pipelines.engine import ReceiptExtractionEngine
from receiptfill.pipelines.errors import (
    AnalysisError,
    ImageProcessingFailure,
    ParsingFailure,
    RecognitionFailure,
)
from receiptfill.schemas.receipt import BoundingBox, DetectedFragment, ReceiptAnalysisResult
from receiptfill.utils.logger import log_analysis

logger = logging.getLogger(__name__)

app = FastAPI(
    title="receiptfill API",
    description="Pre-fills expense forms from receipt photos. Runs OCR and reconstructs date, amount, payment mode and material fields from the recognized text.",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Enable CORS for the expense form client
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Built once; analyze() keeps its state per call
engine = ReceiptExtractionEngine(config=ExtractionConfig.from_env())

LOG_ANALYSES = os.getenv("RECEIPTFILL_LOG_ANALYSES", "0").lower() in ("1", "true", "yes")

ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".webp"}


# ---------- Pydantic models ----------

class BoundingBoxModel(BaseModel):
    min_x: float = Field(..., alias="minX", ge=0.0, le=1.0)
    min_y: float = Field(..., alias="minY", ge=0.0, le=1.0)
    width: float = Field(..., ge=0.0, le=1.0)
    height: float = Field(..., ge=0.0, le=1.0)

    model_config = {"populate_by_name": True}


class FragmentModel(BaseModel):
    text: str
    bounding_box: BoundingBoxModel = Field(..., alias="boundingBox")
    confidence: float = Field(1.0, ge=0.0, le=1.0)

    model_config = {"populate_by_name": True}

    def to_fragment(self) -> DetectedFragment:
        box = self.bounding_box
        return DetectedFragment(
            text=self.text,
            bounding_box=BoundingBox(min_x=box.min_x, min_y=box.min_y, width=box.width, height=box.height),
            confidence=self.confidence,
        )


class AnalyzeFragmentsRequest(BaseModel):
    fragments: List[FragmentModel] = Field(..., description="OCR fragments (unit-square boxes)")


class AnalyzeResponse(BaseModel):
    date: Optional[str] = Field(None, description="Expense date (YYYY-MM-DD)")
    amount: Optional[float] = Field(None, description="Total amount, no currency")
    description: str = ""
    categories: List[str] = Field(default_factory=list)
    payment_mode: str = Field(..., description="cash, upi, cheque or card")
    payment_mode_label: str = Field(..., description="Form label, e.g. 'By UPI'")
    item_type: str = ""
    item: str = ""
    brand: str = ""
    spec: str = ""
    quantity: str = ""
    unit_of_measure: str = ""
    unit_price: str = ""
    raw_fields: Dict[str, str] = Field(default_factory=dict, description="All resolved fields, raw text")
    evidence: Dict[str, Dict[str, Any]] = Field(default_factory=dict, description="How each field was found")
    processing_time_ms: Optional[float] = Field(None, description="Analysis time in milliseconds")
    field_table_version: str


class FieldInfo(BaseModel):
    key: str
    kind: str
    aliases: List[str]


class FieldsResponse(BaseModel):
    id: str
    version: str
    fields: List[FieldInfo]


# ---------- Helpers ----------

def _to_response(result: ReceiptAnalysisResult, processing_time_ms: float) -> AnalyzeResponse:
    record = result.to_dict()
    return AnalyzeResponse(
        **record,
        payment_mode_label=result.payment_mode.display_name,
        processing_time_ms=round(processing_time_ms, 2),
        field_table_version=engine.table_version,
    )


def _http_error(e: AnalysisError) -> HTTPException:
    """Map the analysis failure kinds onto HTTP status codes."""
    if isinstance(e, ImageProcessingFailure):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(e, RecognitionFailure):
        code = status.HTTP_502_BAD_GATEWAY
    elif isinstance(e, ParsingFailure):
        code = 422
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=f"{type(e).__name__}: {e}")


def _maybe_log(source: str, result: ReceiptAnalysisResult, processing_time_ms: float) -> None:
    if not LOG_ANALYSES:
        return
    try:
        log_analysis(source, result, processing_time_ms)
    except OSError as e:
        logger.warning(f"Failed to write analysis log: {e}")


# ---------- API endpoints ----------

@app.get("/health", tags=["meta"])
def health_check():
    """Health check endpoint for monitoring and load balancers."""
    return {
        "status": "ok",
        "service": "receiptfill",
        "version": __version__,
        "field_table": engine.table_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/fields", response_model=FieldsResponse, tags=["meta"])
def list_fields():
    """Field table in tie-break order, with the receipt labels of each field."""
    table = engine.field_table
    return FieldsResponse(
        id=table.id,
        version=table.version,
        fields=[FieldInfo(key=f.key, kind=f.kind, aliases=list(f.aliases)) for f in table.fields],
    )


@app.post("/analyze/fragments", response_model=AnalyzeResponse, tags=["analysis"])
def analyze_fragments_endpoint(request: AnalyzeFragmentsRequest):
    """
    Analyze fragments that were already recognized (e.g. on-device OCR).

    Returns 422 when no fragment survives the confidence floor.
    """
    start_time = time.time()
    try:
        result = engine.analyze([f.to_fragment() for f in request.fragments])
    except AnalysisError as e:
        raise _http_error(e)

    processing_time_ms = (time.time() - start_time) * 1000
    _maybe_log("fragments", result, processing_time_ms)
    return _to_response(result, processing_time_ms)


@app.post("/analyze", response_model=AnalyzeResponse, tags=["analysis"])
def analyze_endpoint(file: UploadFile = File(..., description="Receipt photo (JPG, PNG, ...)")):
    """
    OCR an uploaded receipt photo and return the pre-filled expense fields.

    - **400**: the image could not be decoded
    - **502**: the OCR engine is unavailable or failed
    - **422**: no usable text was recognized
    """
    filename = file.filename or ""
    file_ext = os.path.splitext(filename)[1].lower()
    if file_ext and file_ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported file type: {file_ext}. Allowed: {', '.join(sorted(ALLOWED_IMAGE_EXTENSIONS))}"
        )

    data = file.file.read()
    start_time = time.time()
    try:
        result = engine.analyze_image(data)
    except AnalysisError as e:
        raise _http_error(e)

    processing_time_ms = (time.time() - start_time) * 1000
    _maybe_log(filename, result, processing_time_ms)
    return _to_response(result, processing_time_ms)
