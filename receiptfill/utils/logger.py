# receiptfill/utils/logger.py
"""
Analysis log for receiptfill.

Goal:
- Every time we analyze a receipt, we log a single row into a CSV file.
- The CSV lets us measure how many form fields we pre-fill over time.

We log:
- source (filename or "fragments"), timestamp
- which form fields were resolved, and how (inline / spatial / sniffer)
- the typed amount, date and payment mode
"""

import csv
import os
from datetime import datetime, timezone
from typing import Dict, Any

from receiptfill.schemas.receipt import ReceiptAnalysisResult

# Default log location (relative to project root)
LOG_DIR = os.getenv("RECEIPTFILL_LOG_DIR", "data/logs")
LOG_FILE = os.path.join(LOG_DIR, "analyses.csv")

# Fixed column order so rows from different receipts line up
RESULT_COLUMNS = [
    "date", "amount", "payment_mode", "categories", "description",
    "item_type", "item", "brand", "spec", "quantity", "unit_of_measure", "unit_price",
]


def _analysis_to_row(source: str, result: ReceiptAnalysisResult, processing_time_ms: float = None) -> Dict[str, Any]:
    """
    Convert a ReceiptAnalysisResult into a flat dict suitable for CSV logging.
    """
    record = result.to_dict()

    row: Dict[str, Any] = {
        "source": os.path.basename(source) if source else "",
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
        "processing_time_ms": round(processing_time_ms, 2) if processing_time_ms is not None else "",
    }

    for col in RESULT_COLUMNS:
        value = record.get(col)
        if isinstance(value, list):
            value = "|".join(value)
        row[col] = "" if value is None else value

    row["resolved_fields"] = "|".join(sorted(result.raw_fields))
    row["methods"] = "|".join(
        f"{key}:{ev.method}" for key, ev in sorted(result.evidence.items())
    )
    return row


def log_analysis(
    source: str,
    result: ReceiptAnalysisResult,
    processing_time_ms: float = None,
    log_file: str = LOG_FILE,
) -> None:
    """
    Append a single analysis result as a row to the CSV log.

    - Creates the log directory and file if they don't exist.
    - Writes header on first write.
    """
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    row = _analysis_to_row(source, result, processing_time_ms)
    file_exists = os.path.isfile(log_file)

    with open(log_file, mode="a", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=list(row.keys()))

        # If the file is new, write the header first.
        if not file_exists:
            writer.writeheader()

        writer.writerow(row)
