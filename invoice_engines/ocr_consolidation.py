"""
invoice_engines.ocr_consolidation -- Multi-pass OCR consolidation.

Responsibility:
    Turn one or more extraction passes into a single canonical field set
    with a confidence score, a merge narrative, and a manual-review flag,
    and project that result onto a received invoice.

Architecture position:
    Engines -- pure decision layer, zero I/O.
    May only import invoice_kernel/domain/ types.

Invariants enforced:
    - A candidate that fails its field check (supplier tax id format,
      numeric total) loses a disagreement regardless of confidence, and a
      failing candidate never completes a field from a later pass.
    - Disagreeing totals prefer the candidate closest to its own pass's
      line sum when both passes carry line amounts.
    - Otherwise higher confidence wins; ties keep the earlier (primary)
      pass.  Every disagreement is written to the merge notes with both
      candidates.
    - A fallback pass always surfaces as a confidence note.
    - Manual review is required when the overall confidence is below the
      medium threshold, any chosen field is below the per-field floor, or a
      critical field is missing.
    - Consolidation never reads or writes approval state.  Confidence is
      advisory reviewer metadata, not an approval gate.

Failure modes:
    - None raised.  No usable pass yields a ``manual_review`` result with
      confidence 0.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Sequence

from invoice_kernel.domain.invoice import InvoiceReceived
from invoice_kernel.domain.ocr import (
    ENGINE_MANUAL_REVIEW,
    ENGINE_MERGED,
    ConfidenceBand,
    ConsolidatedExtraction,
    ExtractedField,
    ExtractionMetrics,
    ExtractionResult,
    OCRThresholds,
)
from invoice_kernel.domain.tax_id import is_valid_tax_id
from invoice_kernel.logging_config import get_logger

from invoice_engines.tracer import traced_engine

logger = get_logger("engines.ocr_consolidation")

_CONFIDENCE_QUANTUM = Decimal("0.0001")
_ZERO = Decimal("0")


def confidence_band(
    confidence: Decimal,
    thresholds: OCRThresholds | None = None,
) -> ConfidenceBand:
    """Bucket a confidence score."""
    t = thresholds or OCRThresholds()
    if confidence >= t.high:
        return ConfidenceBand.HIGH
    if confidence >= t.medium_high:
        return ConfidenceBand.MEDIUM_HIGH
    if confidence >= t.medium:
        return ConfidenceBand.MEDIUM
    return ConfidenceBand.LOW


def _mean(values: Sequence[Decimal]) -> Decimal:
    if not values:
        return _ZERO
    return (sum(values, _ZERO) / len(values)).quantize(
        _CONFIDENCE_QUANTUM, rounding=ROUND_HALF_UP,
    )


def _same_value(a: Any, b: Any) -> bool:
    if a == b:
        return True
    return str(a).strip() == str(b).strip()


def _sum_metrics(results: Sequence[ExtractionResult]) -> ExtractionMetrics:
    pages = [r.page_count for r in results if r.page_count is not None]
    return ExtractionMetrics(
        page_count=max(pages) if pages else None,
        processing_time_ms=sum(r.processing_time_ms or 0 for r in results),
        tokens_in=sum(r.tokens_in or 0 for r in results),
        tokens_out=sum(r.tokens_out or 0 for r in results),
        cost_estimate=sum((r.cost_estimate or _ZERO for r in results), _ZERO),
    )


def _as_amount(value: Any) -> Decimal | None:
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


# Candidates failing their field's check never win against one that passes
FIELD_VALIDATORS: dict[str, Callable[[Any], bool]] = {
    "supplier_tax_id": is_valid_tax_id,
    "total": lambda value: _as_amount(value) is not None,
}


def _is_valid(field: ExtractedField) -> bool:
    check = FIELD_VALIDATORS.get(field.name)
    return check is None or check(field.value)


def _line_sum_gap(field: ExtractedField, result: ExtractionResult) -> Decimal | None:
    """Distance between a total candidate and its own pass's line sum."""
    lines_total = result.lines_total()
    amount = _as_amount(field.value)
    if lines_total is None or amount is None:
        return None
    return abs(amount - lines_total)


def _pick(
    kept: ExtractedField,
    kept_result: ExtractionResult,
    candidate: ExtractedField,
    candidate_result: ExtractionResult,
) -> tuple[bool, str]:
    """Decide a disagreement.  Returns (candidate wins, reason for the note)."""
    kept_valid, candidate_valid = _is_valid(kept), _is_valid(candidate)
    if kept_valid != candidate_valid:
        loser_engine = kept_result.engine if candidate_valid else candidate_result.engine
        return candidate_valid, f"{loser_engine} value failed validation"

    if candidate.name == "total":
        kept_gap = _line_sum_gap(kept, kept_result)
        candidate_gap = _line_sum_gap(candidate, candidate_result)
        if kept_gap is not None and candidate_gap is not None and kept_gap != candidate_gap:
            return (
                candidate_gap < kept_gap,
                f"line sum difference {min(kept_gap, candidate_gap)} "
                f"vs {max(kept_gap, candidate_gap)}",
            )

    return candidate.confidence > kept.confidence, ""


def _merge_fields(
    usable: Sequence[ExtractionResult],
    merge_notes: list[str],
) -> dict[str, tuple[ExtractedField, ExtractionResult]]:
    """Field-by-field merge.  Returns name -> (winning field, its pass)."""
    chosen: dict[str, tuple[ExtractedField, ExtractionResult]] = {}

    for position, result in enumerate(usable):
        for candidate in result.fields:
            if candidate.is_empty:
                continue

            current = chosen.get(candidate.name)
            if current is None:
                if position > 0 and not _is_valid(candidate):
                    merge_notes.append(
                        f"Field '{candidate.name}' from {result.engine} failed "
                        f"validation, discarded {candidate.value!r}"
                    )
                    continue
                chosen[candidate.name] = (candidate, result)
                if position > 0:
                    merge_notes.append(
                        f"Field '{candidate.name}' completed from {result.engine}"
                    )
                continue

            kept, kept_result = current
            if _same_value(kept.value, candidate.value):
                if candidate.confidence > kept.confidence:
                    chosen[candidate.name] = (candidate, result)
                continue

            candidate_wins, reason = _pick(kept, kept_result, candidate, result)
            if candidate_wins:
                winner, winner_result = candidate, result
                loser, loser_result = kept, kept_result
                chosen[candidate.name] = (candidate, result)
            else:
                winner, winner_result = kept, kept_result
                loser, loser_result = candidate, result

            note = (
                f"Field '{candidate.name}': chose {winner.value!r} from "
                f"{winner_result.engine} ({winner.confidence}) over {loser.value!r} "
                f"from {loser_result.engine} ({loser.confidence})"
            )
            merge_notes.append(f"{note}; {reason}" if reason else note)

    return chosen



@traced_engine("ocr_consolidation", "1.0")
def consolidate_extractions(
    results: Sequence[ExtractionResult],
    thresholds: OCRThresholds | None = None,
) -> ConsolidatedExtraction:
    """Consolidate extraction passes, primary first.

    Args:
        results: Passes in invocation order.  The first is the primary.
        thresholds: Confidence cut-offs; defaults to ``OCRThresholds()``.

    Returns:
        ConsolidatedExtraction.  Cost metrics are summed over every pass,
        failed ones included.
    """
    t = thresholds or OCRThresholds()
    confidence_notes: list[str] = []
    merge_notes: list[str] = []

    for result in results:
        if result.failed:
            confidence_notes.append(f"{result.engine} failed: {result.error}")

    fallback_used = any(r.is_fallback for r in results)
    if fallback_used:
        fallback_engines = ", ".join(r.engine for r in results if r.is_fallback)
        confidence_notes.append(f"Fallback extraction used: {fallback_engines}")

    usable = [r for r in results if not r.failed]
    metrics = _sum_metrics(results)

    if not usable:
        confidence_notes.append(
            "No extraction engine produced a usable result; manual review required"
        )
        logger.warning(
            "ocr_consolidation_failed",
            extra={"pass_count": len(results)},
        )
        return ConsolidatedExtraction(
            engine=ENGINE_MANUAL_REVIEW,
            values={},
            field_confidence={},
            confidence=_ZERO,
            band=ConfidenceBand.LOW,
            confidence_notes=tuple(confidence_notes),
            merge_notes=(),
            fallback_used=fallback_used,
            needs_manual_review=True,
            sources=(),
            metrics=metrics,
        )

    chosen = _merge_fields(usable, merge_notes)
    field_confidences = [f.confidence for f, _ in chosen.values()]

    if len(usable) == 1:
        single = usable[0]
        engine = single.engine
        if single.overall_confidence is not None:
            confidence = single.overall_confidence
        else:
            confidence = _mean([f.confidence for f in single.fields])
    else:
        engine = ENGINE_MERGED
        confidence = _mean(field_confidences)
        merge_notes.insert(
            0,
            "Merged " + ", ".join(r.engine for r in usable)
            + f" into {len(chosen)} field(s)",
        )

    needs_review = False
    if confidence < t.medium:
        needs_review = True
        confidence_notes.append(
            f"Overall confidence {confidence} is below {t.medium}"
        )
    for name, (winning, _) in chosen.items():
        if winning.confidence < t.field_floor:
            needs_review = True
            confidence_notes.append(
                f"Field '{name}' confidence {winning.confidence} is below "
                f"the field floor {t.field_floor}"
            )
    for name in t.critical_fields:
        if name not in chosen:
            needs_review = True
            confidence_notes.append(f"Critical field '{name}' is missing")

    consolidated = ConsolidatedExtraction(
        engine=engine,
        values={name: f.value for name, (f, _) in chosen.items()},
        field_confidence={name: f.confidence for name, (f, _) in chosen.items()},
        confidence=confidence,
        band=confidence_band(confidence, t),
        confidence_notes=tuple(confidence_notes),
        merge_notes=tuple(merge_notes),
        fallback_used=fallback_used,
        needs_manual_review=needs_review,
        sources=tuple(r.engine for r in usable),
        metrics=metrics,
    )

    logger.info(
        "ocr_consolidated",
        extra={
            "ocr_engine": engine,
            "confidence": str(confidence),
            "band": consolidated.band.value,
            "needs_manual_review": needs_review,
            "fallback_used": fallback_used,
            "field_count": len(chosen),
        },
    )
    return consolidated


def apply_consolidation(
    invoice: InvoiceReceived,
    consolidated: ConsolidatedExtraction,
) -> InvoiceReceived:
    """Return a copy of ``invoice`` carrying the OCR projection.

    Approval fields are copied through unchanged.  Merge notes are only
    kept for merged results.
    """
    metrics = consolidated.metrics
    return replace(
        invoice,
        ocr_engine=consolidated.engine,
        ocr_confidence=consolidated.confidence,
        ocr_confidence_notes=list(consolidated.confidence_notes),
        ocr_merge_notes=(
            list(consolidated.merge_notes)
            if consolidated.engine == ENGINE_MERGED else []
        ),
        ocr_extracted_data=dict(consolidated.values),
        ocr_fallback_used=consolidated.fallback_used,
        needs_manual_review=consolidated.needs_manual_review,
        ocr_pages=metrics.page_count,
        ocr_processing_time_ms=metrics.processing_time_ms,
        ocr_tokens_in=metrics.tokens_in,
        ocr_tokens_out=metrics.tokens_out,
        ocr_cost_estimate=metrics.cost_estimate,
    )
