"""
Pydantic schema for the expense field table.

Ensures the field table is well-formed and fails fast on configuration errors.
"""

from typing import List, Literal, Optional, Tuple
from pydantic import BaseModel, Field, field_validator, model_validator
import re


FieldKind = Literal["text", "numeric", "money", "date"]

# Keys every table must define: the engine and the result depend on them.
ESSENTIAL_KEYS = ("date", "amount")


def _normalize_keywords(v) -> Tuple[str, ...]:
    """Lower-case, trim and de-duplicate keywords, keeping their order."""
    if v is None:
        return ()
    if isinstance(v, str):
        v = [v]
    if not isinstance(v, (list, tuple)):
        raise ValueError("Keywords must be strings or lists of strings")

    seen = []
    for item in v:
        kw = " ".join(str(item).split()).lower()
        if not kw:
            raise ValueError("Keywords must not be empty")
        if kw not in seen:
            seen.append(kw)
    return tuple(seen)


class FieldDefinition(BaseModel):
    """One form field and the labels it may appear under on a receipt."""
    key: str = Field(..., description="Form field identifier (e.g., 'unitPrice')")
    aliases: Tuple[str, ...] = Field(..., description="Lower-case labels that mark this field")
    kind: FieldKind = Field(default="text", description="How the value is read")

    @field_validator("key")
    @classmethod
    def validate_key(cls, v):
        if not re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", v):
            raise ValueError(f"Invalid field key '{v}'. Expected an identifier.")
        return v

    @field_validator("aliases", mode="before")
    @classmethod
    def normalize_aliases(cls, v):
        aliases = _normalize_keywords(v)
        if not aliases:
            raise ValueError("A field needs at least one alias")
        return aliases

    model_config = {
        "extra": "forbid",
        "frozen": True,
    }


class PaymentModeKeywords(BaseModel):
    """Keyword groups for payment mode classification (checked in this order)."""
    upi: Tuple[str, ...] = Field(default_factory=tuple, description="UPI / wallet keywords")
    cheque: Tuple[str, ...] = Field(default_factory=tuple, description="Cheque keywords")
    card: Tuple[str, ...] = Field(default_factory=tuple, description="Card keywords")

    @field_validator("*", mode="before")
    @classmethod
    def ensure_keywords(cls, v):
        return _normalize_keywords(v)

    def ordered_groups(self) -> List[Tuple[str, Tuple[str, ...]]]:
        return [("upi", self.upi), ("cheque", self.cheque), ("card", self.card)]

    model_config = {
        "extra": "forbid",
        "frozen": True,
    }


class FieldTable(BaseModel):
    """Complete, versioned field table."""
    id: str = Field(..., description="Table ID (e.g., 'expense_fields')")
    version: str = Field(..., description="Semantic version (e.g., '1.0.0')")
    name: Optional[str] = Field(default=None, description="Human-readable name")
    fields: Tuple[FieldDefinition, ...] = Field(..., description="Fields in tie-break order")
    payment_modes: PaymentModeKeywords = Field(default_factory=PaymentModeKeywords)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v):
        if not re.match(r"^\d+\.\d+\.\d+$", v):
            raise ValueError(f"Invalid version '{v}'. Expected semantic version: '1.0.0'")
        return v

    @model_validator(mode="after")
    def validate_keys(self):
        """Keys must be unique and the essential ones present."""
        keys = [f.key for f in self.fields]
        duplicates = sorted({k for k in keys if keys.count(k) > 1})
        if duplicates:
            raise ValueError(f"Duplicate field keys: {duplicates}")

        for key in ESSENTIAL_KEYS:
            if key not in keys:
                raise ValueError(f"Essential field '{key}' is missing")

        return self

    @property
    def keys(self) -> List[str]:
        return [f.key for f in self.fields]

    def get(self, key: str) -> Optional[FieldDefinition]:
        for f in self.fields:
            if f.key == key:
                return f
        return None

    model_config = {
        "extra": "forbid",
        "frozen": True,
    }
