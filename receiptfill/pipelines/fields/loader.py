"""
Field table loader with validation and caching.

Loads the YAML field table, validates it against the schema, and keeps the
validated (immutable) table for the lifetime of the process.
"""

import os
import threading
from pathlib import Path
from typing import Dict, Optional
import logging

import yaml

from .schema import FieldTable


logger = logging.getLogger(__name__)

DEFAULT_FIELDS_FILE = Path(__file__).resolve().parents[2] / "resources" / "fields" / "expense_fields.yaml"


class FieldTableLoader:
    """Loads and validates a field table file."""

    def __init__(self, fields_file: Optional[str] = None, strict: bool = True):
        """
        Initialize field table loader.

        Args:
            fields_file: YAML file holding the field table
                (defaults to RECEIPTFILL_FIELDS_FILE, then the bundled table)
            strict: Raise on invalid files instead of logging and returning None
        """
        self.fields_file = Path(
            fields_file or os.getenv("RECEIPTFILL_FIELDS_FILE") or DEFAULT_FIELDS_FILE
        )
        self.strict = strict
        self._table: Optional[FieldTable] = None

    def load(self) -> Optional[FieldTable]:
        """Load the table (once) and return it."""
        if self._table is not None:
            return self._table

        if not self.fields_file.exists():
            raise FileNotFoundError(f"Field table not found: {self.fields_file}")

        try:
            with open(self.fields_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)

            if not isinstance(data, dict):
                raise ValueError(f"Expected a YAML mapping/object at top-level, got {type(data).__name__}")

            table = FieldTable(**data)

        except yaml.YAMLError as e:
            error_msg = f"Invalid YAML in {self.fields_file}: {e}"
            if self.strict:
                raise ValueError(error_msg)
            logger.error(error_msg)
            return None
        except Exception as e:
            error_msg = f"Failed to load field table {self.fields_file}: {e}"
            if self.strict:
                raise ValueError(error_msg)
            logger.error(error_msg)
            return None

        self._table = table
        logger.info(f"Loaded field table {table.id} v{table.version} ({len(table.fields)} fields) from {self.fields_file}")
        return table

    def reload(self) -> Optional[FieldTable]:
        """Reload the table from disk."""
        self._table = None
        return self.load()


_tables: Dict[str, FieldTable] = {}
_tables_lock = threading.Lock()


def load_field_table(fields_file: Optional[str] = None) -> FieldTable:
    """
    Return the validated field table for `fields_file`, loading it at most once.

    Tables are immutable, so the cached instance is shared by every engine.
    """
    path = str(FieldTableLoader(fields_file).fields_file)
    with _tables_lock:
        table = _tables.get(path)
        if table is None:
            table = FieldTableLoader(path, strict=True).load()
            _tables[path] = table
    return table
