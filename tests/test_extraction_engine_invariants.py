"""
Invariant tests for the receipt extraction engine.

These tests protect the behavioural guarantees the expense form relies on:
- identical input gives identical output
- no fragment feeds more than one field
- inline values win over spatial neighbours
- low-confidence text never takes part
- gaps become empty values, never exceptions
"""

import random
from decimal import Decimal
from datetime import datetime

import pytest

from receiptfill import (
    BoundingBox,
    DetectedFragment,
    ExtractionConfig,
    ParsingFailure,
    PaymentMode,
    ReceiptExtractionEngine,
)


def frag(text: str, x0: float, x1: float, y: float, h: float = 0.02, conf: float = 0.95) -> DetectedFragment:
    """Fragment spanning [x0, x1] horizontally, top edge at y."""
    return DetectedFragment(
        text=text,
        bounding_box=BoundingBox(min_x=x0, min_y=y, width=x1 - x0, height=h),
        confidence=conf,
    )


@pytest.fixture(scope="module")
def engine():
    return ReceiptExtractionEngine()


def material_receipt():
    """A hardware-store bill with labels, inline values and a spatial total."""
    return [
        frag("SRI BALAJI HARDWARE", 0.20, 0.80, 0.05),
        frag("Bill Date: 23/12/2025", 0.05, 0.40, 0.12),
        frag("Item", 0.05, 0.15, 0.20),
        frag("Cement", 0.30, 0.45, 0.20),
        frag("Brand", 0.05, 0.15, 0.24),
        frag("Birla", 0.30, 0.50, 0.24),
        frag("Qty - 50 bags", 0.05, 0.30, 0.28),
        frag("Rate", 0.05, 0.12, 0.32),
        frag("₹ 420.00", 0.30, 0.45, 0.32),
        frag("Paid via", 0.05, 0.20, 0.36),
        frag("GPay UPI", 0.30, 0.50, 0.36),
        frag("Grand Total", 0.05, 0.25, 0.45),
        frag("₹ 21,000.00", 0.60, 0.80, 0.45),
        frag("Thank you, visit again", 0.20, 0.80, 0.60),
    ]


def used_indices_per_field(result):
    used = {}
    for key, ev in result.evidence.items():
        indices = {ev.value_index}
        if ev.label_index is not None:
            indices.add(ev.label_index)
        used[key] = indices
    return used


def assert_at_most_once(result):
    seen = {}
    for key, indices in used_indices_per_field(result).items():
        for idx in indices:
            assert idx not in seen, f"fragment {idx} used by both {seen[idx]} and {key}"
            seen[idx] = key


# -----------------------------------------------------------------------------
# End-to-end
# -----------------------------------------------------------------------------

def test_material_receipt_fields(engine):
    result = engine.analyze(material_receipt())

    assert result.date == datetime(2025, 12, 23)
    assert result.amount == Decimal("21000.00")
    assert result.item == "Cement"
    assert result.brand == "Birla"
    assert result.quantity == "50"
    assert result.unit_of_measure == "bags"
    assert result.unit_price == "420.00"
    assert result.payment_mode == PaymentMode.UPI

    assert result.evidence["date"].method == "inline"
    assert result.evidence["amount"].method == "spatial"
    assert result.evidence["amount"].value_index == 12


def test_fragment_input_order_does_not_matter(engine):
    fragments = material_receipt()
    shuffled = list(fragments)
    random.Random(7).shuffle(shuffled)

    a = engine.analyze(fragments).to_dict()
    b = engine.analyze(shuffled).to_dict()

    # Evidence refers to input positions, everything else must match
    a.pop("evidence")
    b.pop("evidence")
    assert a == b


# -----------------------------------------------------------------------------
# Idempotence / at-most-once
# -----------------------------------------------------------------------------

def test_analyze_is_idempotent(engine):
    """
    INVARIANT: analyze(fragments) twice on the same input yields identical output.
    """
    fragments = material_receipt()
    first = engine.analyze(fragments)
    second = engine.analyze(fragments)

    assert first == second
    assert first.to_dict() == second.to_dict()


def test_no_fragment_feeds_two_fields(engine):
    """
    INVARIANT: no fragment index resolves more than one field.
    """
    assert_at_most_once(engine.analyze(material_receipt()))


def test_no_fragment_feeds_two_fields_on_generated_receipts(engine):
    """
    Same invariant over generated label/value soups, including crowded rows
    where several labels compete for the same neighbours.
    """
    labels = ["Qty", "Rate", "Amount", "Item", "Brand", "Date", "Total", "Unit", "Grade", "Qty - 3"]
    values = ["12", "₹ 450.00", "Cement", "23/12/2025", "7", "1,200", "Birla", "bags", "99.50"]
    rng = random.Random(1234)

    for _ in range(50):
        fragments = []
        for _ in range(rng.randint(1, 25)):
            text = rng.choice(labels + values)
            x0 = round(rng.uniform(0.0, 0.8), 3)
            y = round(rng.uniform(0.0, 0.95), 3)
            fragments.append(frag(text, x0, x0 + 0.15, y))

        result = engine.analyze(fragments)
        assert_at_most_once(result)

        # Values adopted by different fields never share a source fragment
        value_indices = [ev.value_index for ev in result.evidence.values() if ev.method != "inline"]
        assert len(value_indices) == len(set(value_indices))


def test_spatially_consumed_value_is_not_sniffed_again(engine):
    """A value already taken by 'Rate' must not become the amount."""
    result = engine.analyze([
        frag("Rate", 0.05, 0.12, 0.30),
        frag("₹ 420.00", 0.30, 0.45, 0.30),
    ])

    assert result.unit_price == "420.00"
    assert result.amount is None


# -----------------------------------------------------------------------------
# Inline precedence
# -----------------------------------------------------------------------------

def test_inline_value_wins_over_spatial_neighbour(engine):
    """
    INVARIANT: "Quantity - 7" resolves inline; the spatial path never runs.
    """
    result = engine.analyze([
        frag("Quantity - 7", 0.05, 0.30, 0.50),
        frag("7", 0.35, 0.40, 0.50),
    ])

    assert result.quantity == "7"
    ev = result.evidence["quantity"]
    assert ev.method == "inline"
    assert ev.value_index == 0
    assert ev.label_index == 0


def test_split_label_qty_resolves_inline(engine):
    result = engine.analyze([
        frag("Qty - 5", 0.05, 0.25, 0.40),
        frag("9", 0.30, 0.35, 0.40),
    ])

    assert result.quantity == "5"
    assert result.evidence["quantity"].method == "inline"


def test_inline_quantity_keeps_its_unit(engine):
    """Inline and spatial quantities both fill the unit of measure."""
    inline = engine.analyze([frag("Qty - 50 bags", 0.05, 0.30, 0.40)])
    spatial = engine.analyze([
        frag("Qty", 0.05, 0.12, 0.40),
        frag("50 bags", 0.30, 0.45, 0.40),
    ])

    assert inline.evidence["quantity"].method == "inline"
    assert (inline.quantity, inline.unit_of_measure) == ("50", "bags")
    assert (spatial.quantity, spatial.unit_of_measure) == ("50", "bags")


def test_unit_price_inline_with_thousands_separator(engine):
    result = engine.analyze([frag("UnitPrice - 20,000", 0.05, 0.40, 0.30)])
    assert result.unit_price == "20000"


# -----------------------------------------------------------------------------
# Confidence floor
# -----------------------------------------------------------------------------

def test_low_confidence_label_is_never_a_candidate(engine):
    """
    INVARIANT: a 0.1-confidence "Amount" never becomes a label candidate.
    """
    result = engine.analyze([
        frag("Amount", 0.05, 0.20, 0.50, conf=0.1),
        frag("500.00", 0.30, 0.45, 0.50),
    ])

    ev = result.evidence["amount"]
    assert ev.method == "sniffer"
    assert ev.label_index is None
    assert result.amount == Decimal("500.00")


def test_only_low_confidence_fragments_is_a_parsing_failure(engine):
    with pytest.raises(ParsingFailure):
        engine.analyze([frag("Total 500.00", 0.1, 0.5, 0.5, conf=0.2)])


def test_empty_input_is_a_parsing_failure(engine):
    with pytest.raises(ParsingFailure):
        engine.analyze([])


def test_whitespace_only_fragments_are_a_parsing_failure(engine):
    with pytest.raises(ParsingFailure):
        engine.analyze([frag("   ", 0.1, 0.5, 0.5), frag("\n\t", 0.1, 0.5, 0.6)])


def test_confidence_floor_is_configurable():
    strict = ReceiptExtractionEngine(config=ExtractionConfig(confidence_floor=0.9))
    with pytest.raises(ParsingFailure):
        strict.analyze([frag("Total: 500.00", 0.1, 0.5, 0.5, conf=0.8)])


# -----------------------------------------------------------------------------
# Spatial resolution
# -----------------------------------------------------------------------------

def test_nearest_candidate_wins(engine):
    """
    INVARIANT: with two candidates on the label's row, the smaller gap wins.
    """
    result = engine.analyze([
        frag("Rate", 0.10, 0.20, 0.30),
        frag("250", 0.40, 0.45, 0.30),
        frag("120", 0.22, 0.26, 0.30),
    ])

    assert result.unit_price == "120"
    assert result.evidence["unitPrice"].value_index == 2


def test_value_on_slightly_jittered_row(engine):
    """OCR rarely returns one printed line at exactly one height."""
    result = engine.analyze([
        frag("Item", 0.05, 0.15, 0.300),
        frag("Cement", 0.30, 0.45, 0.312),
    ])
    assert result.item == "Cement"


def test_value_too_far_right_is_ignored(engine):
    result = engine.analyze([
        frag("Brand", 0.02, 0.10, 0.30),
        frag("Birla", 0.75, 0.90, 0.30),
    ])
    assert result.brand == ""


def test_value_left_of_label_is_ignored(engine):
    result = engine.analyze([
        frag("Birla", 0.02, 0.20, 0.30),
        frag("Brand", 0.40, 0.50, 0.30),
    ])
    assert result.brand == ""


def test_label_is_not_taken_as_value_of_another_label(engine):
    """A header row "Item  Brand" must not give item="Brand"."""
    result = engine.analyze([
        frag("Item", 0.05, 0.15, 0.30),
        frag("Brand", 0.30, 0.40, 0.30),
    ])
    assert result.item == ""
    assert result.brand == ""


def test_label_followed_by_separator_is_not_a_value(engine):
    result = engine.analyze([
        frag("Item", 0.05, 0.15, 0.30),
        frag("Brand:", 0.30, 0.40, 0.30),
    ])
    assert result.item == ""


@pytest.mark.parametrize("label,value,attr", [
    ("Brand", "UltraTech", "brand"),          # contains "rate"
    ("Item", "Special Cement", "item"),       # contains "spec"
    ("Item", "Make-up Tiles", "item"),        # contains "make"
])
def test_value_containing_an_alias_is_still_a_value(engine, label, value, attr):
    result = engine.analyze([
        frag(label, 0.05, 0.15, 0.30),
        frag(value, 0.30, 0.50, 0.30),
    ])
    assert getattr(result, attr) == value
    assert result.evidence[attr].method == "spatial"


def test_quantity_with_unit_from_neighbour(engine):
    result = engine.analyze([
        frag("Qty", 0.05, 0.12, 0.30),
        frag("50 bags", 0.30, 0.45, 0.30),
    ])
    assert result.quantity == "50"
    assert result.unit_of_measure == "bags"


def test_bottom_left_origin_boxes():
    """Vision-style boxes (y grows upwards) read top-down with y_axis_up."""
    engine = ReceiptExtractionEngine(config=ExtractionConfig(y_axis_up=True))
    result = engine.analyze([
        frag("Grand Total", 0.05, 0.25, 0.10),
        frag("₹ 980.00", 0.60, 0.80, 0.10),
        frag("Item", 0.05, 0.15, 0.90),
        frag("Cement", 0.30, 0.45, 0.90),
    ])

    assert result.amount == Decimal("980.00")
    assert result.item == "Cement"


# -----------------------------------------------------------------------------
# Amount sniffer
# -----------------------------------------------------------------------------

def test_amount_sniffer_adopts_unlabelled_total(engine):
    """
    INVARIANT: ["Grand Total", "₹ 12,450.00"] gives amount 12450.00 even
    when the value is printed on the next line.
    """
    result = engine.analyze([
        frag("Grand Total", 0.05, 0.30, 0.80),
        frag("₹ 12,450.00", 0.05, 0.30, 0.85),
    ])

    assert result.amount == Decimal("12450.00")
    assert result.evidence["amount"].method == "sniffer"


def test_amount_sniffer_accepts_trailing_currency(engine):
    result = engine.analyze([
        frag("Thank you", 0.05, 0.40, 0.70),
        frag("12,450.00 INR", 0.05, 0.35, 0.85),
    ])

    assert result.amount == Decimal("12450.00")
    assert result.evidence["amount"].method == "sniffer"


def test_grand_total_on_same_row_resolves_spatially(engine):
    result = engine.analyze([
        frag("Grand Total", 0.05, 0.30, 0.80),
        frag("₹ 12,450.00", 0.55, 0.80, 0.80),
    ])

    assert result.amount == Decimal("12450.00")
    assert result.evidence["amount"].method == "spatial"


def test_sniffer_skips_small_integers_and_dates(engine):
    result = engine.analyze([
        frag("Cement", 0.05, 0.30, 0.20),
        frag("3", 0.05, 0.10, 0.30),
        frag("23/12/2025", 0.05, 0.30, 0.40),
        frag("85", 0.05, 0.10, 0.50),
    ])

    assert result.amount == Decimal("85")


def test_no_monetary_token_leaves_amount_empty(engine):
    result = engine.analyze([frag("Thank you", 0.1, 0.5, 0.5), frag("2", 0.1, 0.2, 0.6)])
    assert result.amount is None


# -----------------------------------------------------------------------------
# Defaults / absorbed gaps
# -----------------------------------------------------------------------------

def test_default_payment_mode_is_cash(engine):
    result = engine.analyze([
        frag("Total: 100.00", 0.05, 0.40, 0.50),
        frag("Thank you", 0.05, 0.40, 0.60),
    ])
    assert result.payment_mode == PaymentMode.CASH


def test_payment_mode_from_label(engine):
    result = engine.analyze([frag("Mode of Payment: Cheque", 0.05, 0.60, 0.50)])
    assert result.payment_mode == PaymentMode.CHEQUE


def test_payment_mode_from_receipt_text_without_label(engine):
    result = engine.analyze([
        frag("Total: 640.00", 0.05, 0.40, 0.50),
        frag("VISA **** 4242", 0.05, 0.40, 0.60),
    ])
    assert result.payment_mode == PaymentMode.CARD


def test_invalid_calendar_date_is_absorbed(engine):
    """
    INVARIANT: "31/02/2024" gives date None and no exception.
    """
    result = engine.analyze([frag("Date: 31/02/2024", 0.05, 0.40, 0.10)])

    assert result.date is None
    assert result.raw_fields["date"] == "31/02/2024"


def test_missing_fields_are_empty_not_errors(engine):
    result = engine.analyze([frag("Hello", 0.1, 0.3, 0.1)])

    assert result.date is None
    assert result.amount is None
    assert result.categories == []
    assert result.payment_mode == PaymentMode.CASH
    for name in ("description", "item_type", "item", "brand", "spec",
                 "quantity", "unit_of_measure", "unit_price"):
        assert getattr(result, name) == ""


def test_text_fields_inline(engine):
    result = engine.analyze([
        frag("Category: Labour, Raw Materials,", 0.05, 0.70, 0.10),
        frag("Description - Slab casting, first floor", 0.05, 0.70, 0.15),
        frag("Grade: OPC 53", 0.05, 0.40, 0.20),
        frag("Item Type: Raw material", 0.05, 0.50, 0.25),
        frag("Unit: bag", 0.05, 0.30, 0.30),
    ])

    assert result.categories == ["Labour", "Raw Materials"]
    assert result.description == "Slab casting, first floor"
    assert result.spec == "OPC 53"
    assert result.item_type == "Raw material"
    assert result.unit_of_measure == "bag"
