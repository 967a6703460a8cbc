"""
Field table system for receiptfill.

Keeps the receipt labels for every expense form field in a versioned YAML
table instead of hardcoding them in the pipeline.
"""

from .loader import FieldTableLoader, load_field_table, DEFAULT_FIELDS_FILE
from .schema import ESSENTIAL_KEYS, FieldTable, FieldDefinition, PaymentModeKeywords

__all__ = [
    "FieldTableLoader",
    "load_field_table",
    "DEFAULT_FIELDS_FILE",
    "FieldTable",
    "FieldDefinition",
    "PaymentModeKeywords",
    "ESSENTIAL_KEYS",
]
