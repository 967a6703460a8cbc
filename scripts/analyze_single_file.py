#!/usr/bin/env python3
"""
Analyze a single receipt and display the pre-filled expense fields.

Shows:
- The typed result (date, amount, payment mode, material fields)
- Every resolved raw field and how it was found (inline / spatial / sniffer)

Usage:
    python scripts/analyze_single_file.py <image>
    python scripts/analyze_single_file.py --fragments <fragments.json>
    python scripts/analyze_single_file.py <image> --save-fragments out.json
"""

import sys
import json
import argparse
import logging
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from receiptfill.config.extraction_config import ExtractionConfig
from receiptfill.pipelines.engine import ReceiptExtractionEngine
from receiptfill.pipelines.errors import AnalysisError
from receiptfill.pipelines.ocr import fragments_to_dicts, recognize_text
from receiptfill.schemas.receipt import DetectedFragment


def load_fragments(path: Path):
    """Read fragments from JSON: a list, or {"fragments": [...]}."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("fragments", [])
    return [DetectedFragment.from_dict(item) for item in data]


def print_result(result, as_json: bool) -> None:
    record = result.to_dict()
    if as_json:
        print(json.dumps(record, indent=2, ensure_ascii=False))
        return

    print("=" * 80)
    print("🧾 EXPENSE FIELDS")
    print("=" * 80)
    for key in ("date", "amount", "payment_mode", "categories", "description",
                "item_type", "item", "brand", "spec", "quantity", "unit_of_measure", "unit_price"):
        value = record[key]
        if value in (None, "", []):
            value = "-"
        print(f"   {key:<16} {value}")

    print(f"\n🔍 RESOLVED FIELDS ({len(result.raw_fields)})")
    for key, raw in result.raw_fields.items():
        ev = result.evidence.get(key)
        how = ev.method if ev else "?"
        print(f"   {key:<20} {raw!r:<30} [{how}]")


def main() -> int:
    parser = argparse.ArgumentParser(description="Pre-fill expense fields from a receipt")
    parser.add_argument("image", nargs="?", help="Receipt image to OCR")
    parser.add_argument("--fragments", type=Path, help="Analyze saved OCR fragments (JSON) instead of an image")
    parser.add_argument("--save-fragments", type=Path, help="Write the OCR fragments to this JSON file")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if not args.image and not args.fragments:
        parser.error("give an image or --fragments")

    engine = ReceiptExtractionEngine(config=ExtractionConfig.from_env())

    try:
        if args.fragments:
            fragments = load_fragments(args.fragments)
        else:
            fragments = recognize_text(args.image)
            if args.save_fragments:
                with open(args.save_fragments, "w", encoding="utf-8") as f:
                    json.dump(fragments_to_dicts(fragments), f, indent=2, ensure_ascii=False)
                print(f"💾 Saved {len(fragments)} fragments to {args.save_fragments}")

        result = engine.analyze(fragments)
    except AnalysisError as e:
        print(f"❌ {type(e).__name__}: {e}")
        return 1
    except (OSError, ValueError) as e:
        print(f"❌ Could not read input: {e}")
        return 1

    print_result(result, args.json)
    return 0


if __name__ == "__main__":
    sys.exit(main())
