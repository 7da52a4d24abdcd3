"""
OCR extraction domain types (``invoice_kernel.domain.ocr``).

Responsibility
--------------
Value objects for the *output* of extraction engines and for the
consolidated, confidence-annotated projection stored on an invoice.
Nothing here performs extraction.

Invariants enforced
-------------------
* Confidences are ``Decimal`` in ``[0, 1]``.  Floats, ints and numeric
  strings are converted through ``str`` at construction, never compared
  or summed as floats.
* Cost metrics (tokens, pages, cost estimate) are carried for reporting
  only; no decision reads them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

# Engine tags written to ``InvoiceReceived.ocr_engine``
ENGINE_MERGED = "merged"
ENGINE_MANUAL_REVIEW = "manual_review"

# Canonical field names the consolidation understands as critical
CRITICAL_FIELDS: tuple[str, ...] = ("supplier_tax_id", "invoice_number", "total")


class ConfidenceBand(str, Enum):
    """Human-readable confidence bucket."""

    HIGH = "high"
    MEDIUM_HIGH = "medium_high"
    MEDIUM = "medium"
    LOW = "low"


def _as_decimal(value: Any, what: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"{what} must be numeric, got {value!r}") from e


def _as_confidence(value: Any, what: str) -> Decimal:
    confidence = _as_decimal(value, what)
    if not confidence.is_finite() or confidence < 0 or confidence > 1:
        raise ValueError(f"{what} must be between 0 and 1, got {value}")
    return confidence


@dataclass(frozen=True)
class ExtractedField:
    """One field value as read by one engine, with that engine's confidence."""

    name: str
    value: Any
    confidence: Decimal

    def __post_init__(self):
        object.__setattr__(
            self,
            "confidence",
            _as_confidence(self.confidence, f"Confidence of field '{self.name}'"),
        )

    @property
    def is_empty(self) -> bool:
        if self.value is None:
            return True
        return isinstance(self.value, str) and not self.value.strip()


@dataclass(frozen=True)
class ExtractionResult:
    """Output of a single extraction pass.

    ``is_fallback`` marks a secondary engine invoked after the primary
    failed or came back with low confidence.  ``error`` marks a pass that
    produced nothing usable.  ``line_amounts`` are the line totals the
    engine read; consolidation compares their sum with the ``total``
    field when passes disagree on it.
    """

    engine: str
    fields: tuple[ExtractedField, ...] = ()
    overall_confidence: Decimal | None = None
    is_fallback: bool = False
    error: str | None = None
    page_count: int | None = None
    processing_time_ms: int | None = None
    tokens_in: int | None = None
    tokens_out: int | None = None
    cost_estimate: Decimal | None = None
    line_amounts: tuple[Decimal, ...] = ()

    def __post_init__(self):
        if self.overall_confidence is not None:
            object.__setattr__(
                self,
                "overall_confidence",
                _as_confidence(
                    self.overall_confidence, f"Overall confidence of '{self.engine}'",
                ),
            )
        if self.cost_estimate is not None:
            object.__setattr__(
                self,
                "cost_estimate",
                _as_decimal(self.cost_estimate, f"Cost estimate of '{self.engine}'"),
            )
        object.__setattr__(self, "fields", tuple(self.fields))
        object.__setattr__(
            self,
            "line_amounts",
            tuple(
                _as_decimal(a, f"Line amount of '{self.engine}'")
                for a in self.line_amounts
            ),
        )
        names = [f.name for f in self.fields]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate field names in extraction from '{self.engine}'")

    @property
    def failed(self) -> bool:
        return self.error is not None

    def field_map(self) -> dict[str, ExtractedField]:
        return {f.name: f for f in self.fields}

    def lines_total(self) -> Decimal | None:
        if not self.line_amounts:
            return None
        return sum(self.line_amounts, Decimal("0"))


@dataclass(frozen=True)
class OCRThresholds:
    """Confidence cut-offs.

    ``field_floor`` is stricter than ``medium``: a single field below it
    forces manual review even when the overall score is acceptable.
    """

    high: Decimal = Decimal("0.90")
    medium_high: Decimal = Decimal("0.75")
    medium: Decimal = Decimal("0.60")
    field_floor: Decimal = Decimal("0.70")
    critical_fields: tuple[str, ...] = CRITICAL_FIELDS

    def __post_init__(self):
        for name in ("high", "medium_high", "medium", "field_floor"):
            object.__setattr__(self, name, _as_confidence(getattr(self, name), name))
        if not (self.medium <= self.medium_high <= self.high):
            raise ValueError("OCR thresholds must satisfy medium <= medium_high <= high")


@dataclass(frozen=True)
class ExtractionMetrics:
    """Summed cost-accounting metrics across all passes."""

    page_count: int | None = None
    processing_time_ms: int = 0
    tokens_in: int = 0
    tokens_out: int = 0
    cost_estimate: Decimal = Decimal("0")


@dataclass(frozen=True)
class ConsolidatedExtraction:
    """Canonical field set produced from one or more extraction passes."""

    engine: str
    values: dict[str, Any]
    field_confidence: dict[str, Decimal]
    confidence: Decimal
    band: ConfidenceBand
    confidence_notes: tuple[str, ...] = ()
    merge_notes: tuple[str, ...] = ()
    fallback_used: bool = False
    needs_manual_review: bool = False
    sources: tuple[str, ...] = ()
    metrics: ExtractionMetrics = field(default_factory=ExtractionMetrics)
