"""
Numeric and date normalization for raw field strings.

Nothing in here raises on bad input: receipts are noisy and the caller is a
form pre-fill, so an unparsable value simply becomes None / "".
"""

import re
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Shared token patterns
# -----------------------------------------------------------------------------

CURRENCY_PATTERN = r"(?:₹|\$|€|£|¥|\brs\.?|\binr|\busd|\beur|\bgbp)"
NUMBER_PATTERN = r"[0-9][0-9,]*(?:\.[0-9]+)?"

_MONTHS = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?"

DATE_TOKEN_PATTERN = (
    r"(?:"
    r"\d{1,2}[/.\-]\d{1,2}[/.\-]\d{2,4}"            # 23/12/2025, 23-12-25, 23.12.2025
    r"|\d{4}[/.\-]\d{1,2}[/.\-]\d{1,2}"             # 2025-12-23
    r"|\d{1,2}[\s\-]" + _MONTHS + r"[\s\-,]*\d{2,4}"  # 23 Dec 2025, 23-Dec-2025
    r"|" + _MONTHS + r"\s+\d{1,2},?\s+\d{4}"        # Dec 23, 2025
    r")"
)

_CURRENCY_RE = re.compile(CURRENCY_PATTERN, re.IGNORECASE)
_DATE_TOKEN_RE = re.compile(DATE_TOKEN_PATTERN, re.IGNORECASE)
_DECIMAL_RE = re.compile(r"^-?\d+(?:\.\d+)?$")
_QUANTITY_RE = re.compile(r"^(" + NUMBER_PATTERN + r")\s*([^\d\s].*)?$")
# ":" / "=" / ":-" separators, or a "-" followed by a space; "-500" keeps its sign
_LEADING_SEPARATOR_RE = re.compile(r"^(?:[:=][:=\-]*|-+(?=\s))\s*")


# -----------------------------------------------------------------------------
# NumericCleaner
# -----------------------------------------------------------------------------

class NumericCleaner:
    """Strips currency, separators and whitespace from numeric field strings."""

    def clean(self, raw: Optional[str]) -> str:
        """
        "₹ 12,450.00" -> "12450.00", "Rs. 500/-" -> "500".

        Never throws; returns whatever is left after stripping.
        """
        if not raw:
            return ""
        s = str(raw).strip()
        s = _CURRENCY_RE.sub("", s)
        s = _LEADING_SEPARATOR_RE.sub("", s.strip())
        s = s.replace(",", "")
        s = re.sub(r"\s+", "", s)
        if s.endswith("/-"):
            s = s[:-2]
        s = s.rstrip(".")
        return s

    def to_decimal(self, raw: Optional[str]) -> Optional[Decimal]:
        """Cleaned value as Decimal, or None when it is not a plain number."""
        s = self.clean(raw)
        if not s or not _DECIMAL_RE.match(s):
            return None
        try:
            return Decimal(s)
        except InvalidOperation:
            return None

    def clean_number(self, raw: Optional[str]) -> str:
        """Cleaned string when it is a number, else ""."""
        s = self.clean(raw)
        return s if s and _DECIMAL_RE.match(s) else ""

    def split_quantity(self, raw: Optional[str]) -> Tuple[str, str]:
        """
        Split a quantity with a trailing unit.

        "5 bags" -> ("5", "bags"), "1,200" -> ("1200", ""), "lots" -> ("", "")
        """
        if not raw:
            return "", ""
        s = str(raw).strip().lstrip(":=-").strip()
        m = _QUANTITY_RE.match(s)
        if m:
            number = self.clean_number(m.group(1))
            unit = (m.group(2) or "").strip().strip(".")
            return number, unit
        return self.clean_number(s), ""


# -----------------------------------------------------------------------------
# DateParser
# -----------------------------------------------------------------------------

DATE_FORMATS: List[str] = [
    "%d/%m/%Y",   # 23/12/2025
    "%d-%m-%Y",   # 23-12-2025
    "%Y-%m-%d",   # 2025-12-23
    "%m/%d/%Y",   # 12/23/2025
    "%d %b %Y",   # 23 Dec 2025
    "%d %B %Y",   # 23 December 2025
    "%d.%m.%Y",   # 23.12.2025
    "%Y/%m/%d",   # 2025/12/23
    "%d/%m/%y",   # 23/12/25
    "%d-%m-%y",   # 23-12-25
    "%d-%b-%Y",   # 23-Dec-2025
    "%b %d, %Y",  # Dec 23, 2025
    "%b %d %Y",   # Dec 23 2025
]


class DateParser:
    """Parses receipt dates with a fixed, ordered list of formats."""

    def __init__(self, formats: Optional[List[str]] = None):
        self.formats = list(formats or DATE_FORMATS)

    @staticmethod
    def _tidy(candidate: str) -> str:
        c = re.sub(r"\s+", " ", candidate).strip().strip(",;|")
        # "Sept" is common on receipts but not a %b abbreviation
        c = re.sub(r"(?i)\bsept\b", "Sep", c)
        # "23 Dec. 2025"
        c = re.sub(r"(?i)\b([a-z]{3})\.", r"\1", c)
        return c

    def parse(self, raw: Optional[str]) -> Optional[datetime]:
        """
        Return the first successful parse of `raw`, or None.

        Tries the whole string, then the first date-like token inside it
        (handles "Bill Date 23/12/2025 10:42"). Impossible calendar dates
        such as 31/02/2024 fail every format and yield None.
        """
        if not raw:
            return None

        s = str(raw).strip()
        candidates = [s]
        m = _DATE_TOKEN_RE.search(s)
        if m and m.group(0) != s:
            candidates.append(m.group(0))

        for cand in candidates:
            c = self._tidy(cand)
            for fmt in self.formats:
                try:
                    return datetime.strptime(c, fmt)
                except ValueError:
                    continue

        logger.debug(f"Unparsable date: {raw!r}")
        return None
