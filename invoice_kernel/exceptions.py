"""
Typed Exception Hierarchy for the Invoice Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval decisions are surfaced verbatim to the calling API layer.  Callers
must be able to tell a permission problem from a stale write or a missing
rejection reason without parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        workflow.approve(invoice_id, user_id, "manager", "manager")
    except Exception as e:
        if "permission" in str(e):  # FRAGILE - message might change
            show_forbidden()

Example - RIGHT way (what this module enables):
    try:
        workflow.approve(invoice_id, user_id, "manager", "manager")
    except ApprovalPermissionError as e:
        api_response(code=e.code, role=e.role, level=e.approval_level)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from InvoiceKernelError:

    InvoiceKernelError (base)
    |
    +-- InvoiceError
    |   +-- InvoiceNotFoundError
    |   +-- InvoiceValidationError
    |
    +-- ApprovalError
    |   +-- InvalidApprovalTransitionError
    |   +-- InvoiceAlreadyApprovedError
    |   +-- InvoiceAlreadyRejectedError
    |   +-- ApprovalPermissionError
    |   +-- ApprovalLevelMismatchError
    |   +-- MissingRejectionReasonError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |       +-- StaleInvoiceStateError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigurationError
        +-- InvalidApprovalRuleError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Invoice         | INVOICE_NOT_FOUND           | Invoice ID doesn't exist
                | INVOICE_VALIDATION_FAILED   | Structural errors block submission
----------------|-----------------------------|-----------------------------------------
Approval        | INVALID_STATUS_TRANSITION   | Approval status change not allowed
                | ALREADY_APPROVED            | Invoice approval is terminal (approved)
                | ALREADY_REJECTED            | Invoice approval is terminal (rejected)
                | APPROVAL_PERMISSION_DENIED  | Role cannot act at this level
                | APPROVAL_LEVEL_MISMATCH     | Level is not the pending level
                | REJECTION_REASON_REQUIRED   | Rejection without a reason
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Concurrent modification detected
                | STALE_INVOICE_STATE         | Approval status moved under the caller
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying approval history
----------------|-----------------------------|-----------------------------------------
Configuration   | INVALID_APPROVAL_RULE       | Rule range malformed or overlapping

===============================================================================
HANDLING PATTERNS
===============================================================================

1. AUTHORIZATION vs TRANSITION errors are siblings under ApprovalError:

    try:
        workflow.reject(invoice_id, user_id, role, reason)
    except ApprovalPermissionError:
        return forbidden()
    except ApprovalError as e:
        return conflict(code=e.code)

2. STALE STATE is retryable after re-reading the invoice:

    except StaleInvoiceStateError as e:
        invoice = repository.get_invoice(e.entity_id)
        # show the new state to the user; do NOT blindly retry the action

3. PERSISTENCE errors (SQLAlchemy) are not wrapped -- they propagate as-is.
"""


class InvoiceKernelError(Exception):
    """
    Base exception for all invoice kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVOICE_KERNEL_ERROR"


# Invoice-related exceptions


class InvoiceError(InvoiceKernelError):
    """Base exception for invoice-related errors."""

    code: str = "INVOICE_ERROR"


class InvoiceNotFoundError(InvoiceError):
    """Invoice with given ID was not found."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class InvoiceValidationError(InvoiceError):
    """
    Invoice failed structural validation.

    Only raised where a caller explicitly asks for a gate (submission to
    the approval workflow).  The validator itself returns errors as data.
    """

    code: str = "INVOICE_VALIDATION_FAILED"

    def __init__(self, invoice_id: str, errors: list[dict]):
        self.invoice_id = invoice_id
        self.errors = errors
        codes = ", ".join(e["code"] for e in errors)
        super().__init__(
            f"Invoice {invoice_id} failed validation with "
            f"{len(errors)} error(s): {codes}"
        )


# Approval-related exceptions


class ApprovalError(InvoiceKernelError):
    """Base exception for approval workflow errors."""

    code: str = "APPROVAL_ERROR"


class InvalidApprovalTransitionError(ApprovalError):
    """Approval status change is not allowed by the lifecycle."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot change approval status from {from_status} to {to_status}"
        )


class InvoiceAlreadyApprovedError(ApprovalError):
    """Invoice is already fully approved (terminal)."""

    code: str = "ALREADY_APPROVED"

    def __init__(self, invoice_id: str, action: str):
        self.invoice_id = invoice_id
        self.action = action
        super().__init__(
            f"Invoice {invoice_id} is already approved; cannot {action} it"
        )


class InvoiceAlreadyRejectedError(ApprovalError):
    """Invoice was already rejected (terminal)."""

    code: str = "ALREADY_REJECTED"

    def __init__(self, invoice_id: str, action: str):
        self.invoice_id = invoice_id
        self.action = action
        super().__init__(
            f"Invoice {invoice_id} was already rejected; cannot {action} it"
        )


class ApprovalPermissionError(ApprovalError):
    """The actor's role lacks the capability for this approval level."""

    code: str = "APPROVAL_PERMISSION_DENIED"

    def __init__(self, user_id: str, role: str, approval_level: str | None):
        self.user_id = user_id
        self.role = role
        self.approval_level = approval_level
        super().__init__(
            f"User {user_id} with role '{role}' does not have permission "
            f"to approve or reject at level '{approval_level}'"
        )


class ApprovalLevelMismatchError(ApprovalError):
    """The requested level is not the level the invoice is waiting on."""

    code: str = "APPROVAL_LEVEL_MISMATCH"

    def __init__(
        self,
        invoice_id: str,
        requested_level: str,
        pending_level: str | None,
    ):
        self.invoice_id = invoice_id
        self.requested_level = requested_level
        self.pending_level = pending_level
        super().__init__(
            f"Invoice {invoice_id} is pending approval at level "
            f"'{pending_level}', not '{requested_level}'"
        )


class MissingRejectionReasonError(ApprovalError):
    """A rejection must state a reason."""

    code: str = "REJECTION_REASON_REQUIRED"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(
            f"A reason must be provided to reject invoice {invoice_id}"
        )


# Concurrency-related exceptions


class ConcurrencyError(InvoiceKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class StaleInvoiceStateError(OptimisticLockError):
    """
    Conditional update matched no row.

    Raised when two approval attempts race on the same invoice: the
    loser's expected approval status no longer holds.
    """

    code: str = "STALE_INVOICE_STATE"

    def __init__(self, invoice_id: str, expected_status: str):
        self.entity_type = "InvoiceReceived"
        self.entity_id = invoice_id
        self.expected_status = expected_status
        ConcurrencyError.__init__(
            self,
            f"Invoice {invoice_id} is no longer in approval status "
            f"'{expected_status}'; it was modified by another transaction",
        )


# Immutability-related exceptions


class ImmutabilityError(InvoiceKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Configuration-related exceptions


class ConfigurationError(InvoiceKernelError):
    """Base exception for configuration errors."""

    code: str = "CONFIGURATION_ERROR"


class InvalidApprovalRuleError(ConfigurationError):
    """An approval rule range is malformed or overlaps another rule."""

    code: str = "INVALID_APPROVAL_RULE"

    def __init__(self, rule_name: str, reason: str):
        self.rule_name = rule_name
        self.reason = reason
        super().__init__(f"Invalid approval rule '{rule_name}': {reason}")
