"""
invoice_engines.validator -- Structural and transition validation.

Responsibility:
    Decide whether a received invoice and its lines are well formed, and
    whether an approval status change, an approval or a rejection is
    allowed.  Problems are returned as ``ValidationResult`` data; the
    caller decides whether to block a save.

Architecture position:
    Engines -- pure decision layer, zero I/O.
    May only import invoice_kernel/domain/ types.

Invariants enforced:
    - Accumulation: every check runs; nothing short-circuits.
    - Purity: "today" is the explicit ``as_of`` argument, never the clock.
    - Lifecycle: transitions are read from ``APPROVAL_TRANSITIONS``.

Failure modes:
    - None raised.  All findings are ``ValidationError`` entries.
"""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from typing import Sequence

from invoice_kernel.domain.approval import APPROVAL_TRANSITIONS, ApprovalStatus
from invoice_kernel.domain.invoice import InvoiceLine, InvoiceReceived
from invoice_kernel.domain.validation import ValidationError, ValidationResult

VALID_TAX_RATES: frozenset[Decimal] = frozenset(
    {Decimal("0"), Decimal("4"), Decimal("10"), Decimal("21")}
)
MIN_INVOICE_TOTAL = Decimal("0.01")
MAX_DISCOUNT = Decimal("100")

# Chart-of-accounts code: group digit 1-9, then 3 to 11 more digits
_ACCOUNT_CODE = re.compile(r"^[1-9][0-9]{3,11}$")


def _is_blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


def is_valid_account_code(code: str) -> bool:
    """True when ``code`` is a numeric chart-of-accounts code of 4-12 digits."""
    return bool(_ACCOUNT_CODE.match(code))


def validate_invoice_line(line: InvoiceLine, index: int) -> list[ValidationError]:
    """Validate one line.  ``index`` is zero-based; messages are one-based."""
    errors: list[ValidationError] = []
    prefix = f"lines[{index}]"
    position = index + 1

    if _is_blank(line.description):
        errors.append(ValidationError(
            field=f"{prefix}.description",
            message=f"Line {position} must have a description",
            code="LINE_DESCRIPTION_REQUIRED",
        ))

    if line.quantity < 0:
        errors.append(ValidationError(
            field=f"{prefix}.quantity",
            message=f"Quantity on line {position} cannot be negative",
            code="INVALID_QUANTITY",
        ))

    if line.unit_price < 0:
        errors.append(ValidationError(
            field=f"{prefix}.unit_price",
            message=f"Unit price on line {position} cannot be negative",
            code="INVALID_UNIT_PRICE",
        ))

    if line.discount_percentage < 0 or line.discount_percentage > MAX_DISCOUNT:
        errors.append(ValidationError(
            field=f"{prefix}.discount_percentage",
            message=f"Discount on line {position} must be between 0 and {MAX_DISCOUNT}",
            code="INVALID_DISCOUNT",
        ))

    if line.tax_rate not in VALID_TAX_RATES:
        errors.append(ValidationError(
            field=f"{prefix}.tax_rate",
            message=f"Tax rate on line {position} must be 0%, 4%, 10% or 21%",
            code="INVALID_TAX_RATE",
        ))

    if line.account_code and not is_valid_account_code(line.account_code):
        errors.append(ValidationError(
            field=f"{prefix}.account_code",
            message=(
                f"Account code '{line.account_code}' on line {position} "
                "is not a valid chart-of-accounts code"
            ),
            code="INVALID_ACCOUNT_CODE",
        ))

    return errors


def validate_invoice_received(
    invoice: InvoiceReceived,
    lines: Sequence[InvoiceLine],
    *,
    as_of: date,
) -> ValidationResult:
    """Validate a received invoice and all of its lines.

    Args:
        invoice: The invoice header.
        lines: The invoice's lines (at least one required).
        as_of: The business date; invoice dates after it are rejected.
    """
    errors: list[ValidationError] = []

    if _is_blank(invoice.supplier_id):
        errors.append(ValidationError(
            field="supplier_id",
            message="Supplier is required",
            code="SUPPLIER_REQUIRED",
        ))

    if _is_blank(invoice.invoice_number):
        errors.append(ValidationError(
            field="invoice_number",
            message="Invoice number is required",
            code="INVOICE_NUMBER_REQUIRED",
        ))

    if invoice.invoice_date is None:
        errors.append(ValidationError(
            field="invoice_date",
            message="Invoice date is required",
            code="INVOICE_DATE_REQUIRED",
        ))
    elif invoice.invoice_date > as_of:
        errors.append(ValidationError(
            field="invoice_date",
            message="Invoice date cannot be in the future",
            code="FUTURE_INVOICE_DATE",
        ))

    if not lines:
        errors.append(ValidationError(
            field="lines",
            message="Invoice must have at least one line",
            code="LINES_REQUIRED",
        ))

    for index, line in enumerate(lines):
        errors.extend(validate_invoice_line(line, index))

    if invoice.total < MIN_INVOICE_TOTAL:
        errors.append(ValidationError(
            field="total",
            message=f"Total must be at least {MIN_INVOICE_TOTAL}",
            code="TOTAL_TOO_LOW",
        ))

    return ValidationResult.from_errors(errors)


def can_change_status(
    current_status: ApprovalStatus,
    new_status: ApprovalStatus,
) -> ValidationResult:
    """Check a single approval status change against the lifecycle."""
    allowed = APPROVAL_TRANSITIONS.get(current_status, frozenset())
    if new_status in allowed:
        return ValidationResult.from_errors([])
    return ValidationResult.from_errors([ValidationError(
        field="approval_status",
        message=f"Cannot change status from {current_status.value} to {new_status.value}",
        code="INVALID_STATUS_TRANSITION",
    )])


def can_approve(invoice: InvoiceReceived) -> ValidationResult:
    """An invoice can be approved while it is pending and has a supplier."""
    errors: list[ValidationError] = []

    if invoice.approval_status == ApprovalStatus.APPROVED:
        errors.append(ValidationError(
            field="approval_status",
            message="Invoice is already approved",
            code="ALREADY_APPROVED",
        ))
    if invoice.approval_status == ApprovalStatus.REJECTED:
        errors.append(ValidationError(
            field="approval_status",
            message="Invoice was previously rejected",
            code="ALREADY_REJECTED",
        ))
    if _is_blank(invoice.supplier_id):
        errors.append(ValidationError(
            field="supplier_id",
            message="Invoice must have a supplier assigned",
            code="SUPPLIER_REQUIRED",
        ))

    return ValidationResult.from_errors(errors)


def can_reject(invoice: InvoiceReceived) -> ValidationResult:
    """Approved and rejected invoices cannot be rejected (again)."""
    errors: list[ValidationError] = []

    if invoice.approval_status == ApprovalStatus.APPROVED:
        errors.append(ValidationError(
            field="approval_status",
            message="An approved invoice cannot be rejected",
            code="CANNOT_REJECT_APPROVED",
        ))
    if invoice.approval_status == ApprovalStatus.REJECTED:
        errors.append(ValidationError(
            field="approval_status",
            message="Invoice was already rejected",
            code="ALREADY_REJECTED",
        ))

    return ValidationResult.from_errors(errors)
