"""
Tests for RejectInvoiceUseCase against a mocked persistence collaborator.

Covers:
- Rejection at the pending level, rejection metadata, history comments
- Notes concatenation (existing notes are kept)
- Reason required, terminal invoices, unsubmitted invoices, capability
- Every failure path raises before persistence is touched
"""

from unittest.mock import MagicMock

import pytest

from invoice_kernel.domain.approval import ApprovalAction, ApprovalLevel, ApprovalStatus
from invoice_kernel.domain.invoice import InvoiceStatus
from invoice_kernel.exceptions import (
    ApprovalPermissionError,
    InvalidApprovalTransitionError,
    InvoiceAlreadyApprovedError,
    InvoiceAlreadyRejectedError,
    MissingRejectionReasonError,
    StaleInvoiceStateError,
)
from invoice_services.reject_invoice import (
    RejectInvoiceInput,
    RejectInvoiceUseCase,
    append_notes,
)


@pytest.fixture
def persistence():
    mock = MagicMock()
    mock.update_invoice.side_effect = lambda invoice_id, update, **kw: update
    return mock


@pytest.fixture
def use_case(persistence, clock):
    return RejectInvoiceUseCase(persistence, clock)


def reject_input(invoice, role="manager", reason="Wrong amount", comments=None):
    return RejectInvoiceInput(
        invoice=invoice,
        rejector_user_id="user-7",
        rejector_role=role,
        reason=reason,
        comments=comments,
    )


class TestAppendNotes:

    def test_no_existing_notes(self):
        assert append_notes(None, "Price mismatch") == "Price mismatch"

    def test_existing_notes_kept(self):
        assert append_notes("Delivered late", "Price mismatch") == (
            "Delivered late\n\nPrice mismatch"
        )

    def test_no_comments_leaves_notes(self):
        assert append_notes("Delivered late", None) == "Delivered late"
        assert append_notes(None, "  ") is None


class TestRejectHappyPath:

    def test_manager_rejects_pending_manager(self, use_case, persistence, make_invoice, clock):
        invoice = make_invoice(
            approval_status=ApprovalStatus.PENDING_MANAGER,
            requires_manager_approval=True,
        )

        use_case.execute(reject_input(invoice, reason="  Wrong amount  "))

        args, kwargs = persistence.update_invoice.call_args
        assert args[0] == invoice.id
        assert kwargs == {"expected_approval_status": ApprovalStatus.PENDING_MANAGER}
        update = args[1]
        assert update.approval_status == ApprovalStatus.REJECTED
        assert update.status == InvoiceStatus.REJECTED
        assert update.action == ApprovalAction.REJECTED
        assert update.approval_level == ApprovalLevel.MANAGER
        assert update.actor_id == "user-7"
        assert update.rejected_by == "user-7"
        assert update.rejected_reason == "Wrong amount"
        assert update.rejected_at == clock.now()

    def test_reason_used_as_history_comment_without_comments(
        self, use_case, persistence, make_invoice,
    ):
        invoice = make_invoice(approval_status=ApprovalStatus.PENDING_ACCOUNTING)

        use_case.execute(reject_input(invoice, role="accountant"))

        update = persistence.update_invoice.call_args.args[1]
        assert update.comments == "Wrong amount"
        assert update.notes is None

    def test_comments_appended_to_existing_notes(self, use_case, persistence, make_invoice):
        invoice = make_invoice(
            approval_status=ApprovalStatus.PENDING_ACCOUNTING,
            notes="Delivered late",
        )

        use_case.execute(reject_input(
            invoice, role="accountant", comments="Supplier must reissue",
        ))

        update = persistence.update_invoice.call_args.args[1]
        assert update.notes == "Delivered late\n\nSupplier must reissue"
        assert update.comments == "Supplier must reissue"

    def test_admin_rejects_at_any_pending_level(self, use_case, persistence, make_invoice):
        invoice = make_invoice(
            approval_status=ApprovalStatus.PENDING_MANAGER,
            requires_manager_approval=True,
        )

        use_case.execute(reject_input(invoice, role="admin"))

        persistence.update_invoice.assert_called_once()

    def test_logs_rejection(self, use_case, make_invoice, captured_logs):
        invoice = make_invoice(approval_status=ApprovalStatus.PENDING_ACCOUNTING)

        use_case.execute(reject_input(invoice, role="accountant"))

        records = [r for r in captured_logs() if r["message"] == "invoice_rejected"]
        assert len(records) == 1
        assert records[0]["reason"] == "Wrong amount"
        assert records[0]["actor_role"] == "accountant"


class TestRejectRefusals:

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_required(self, use_case, persistence, make_invoice, reason):
        invoice = make_invoice(approval_status=ApprovalStatus.PENDING_ACCOUNTING)

        with pytest.raises(MissingRejectionReasonError):
            use_case.execute(reject_input(invoice, role="accountant", reason=reason))
        persistence.update_invoice.assert_not_called()

    def test_approved_invoice(self, use_case, persistence, make_invoice):
        invoice = make_invoice(approval_status=ApprovalStatus.APPROVED)

        with pytest.raises(InvoiceAlreadyApprovedError):
            use_case.execute(reject_input(invoice, role="accountant"))
        persistence.update_invoice.assert_not_called()

    def test_rejected_invoice(self, use_case, persistence, make_invoice):
        invoice = make_invoice(approval_status=ApprovalStatus.REJECTED)

        with pytest.raises(InvoiceAlreadyRejectedError) as exc_info:
            use_case.execute(reject_input(invoice, role="accountant"))

        assert exc_info.value.code == "ALREADY_REJECTED"
        persistence.update_invoice.assert_not_called()

    def test_unsubmitted_invoice(self, use_case, persistence, make_invoice):
        with pytest.raises(InvalidApprovalTransitionError) as exc_info:
            use_case.execute(reject_input(make_invoice(), role="admin"))

        assert exc_info.value.to_status == "rejected"
        persistence.update_invoice.assert_not_called()

    @pytest.mark.parametrize("role,status", [
        ("accountant", ApprovalStatus.PENDING_MANAGER),
        ("manager", ApprovalStatus.PENDING_ACCOUNTING),
        ("viewer", ApprovalStatus.PENDING_ACCOUNTING),
    ])
    def test_role_cannot_act_at_pending_level(
        self, use_case, persistence, make_invoice, role, status,
    ):
        invoice = make_invoice(approval_status=status, requires_manager_approval=True)

        with pytest.raises(ApprovalPermissionError):
            use_case.execute(reject_input(invoice, role=role))
        persistence.update_invoice.assert_not_called()

    def test_stale_state_propagates(self, use_case, persistence, make_invoice):
        invoice = make_invoice(approval_status=ApprovalStatus.PENDING_ACCOUNTING)
        persistence.update_invoice.side_effect = StaleInvoiceStateError(
            str(invoice.id), "pending_accounting",
        )

        with pytest.raises(StaleInvoiceStateError):
            use_case.execute(reject_input(invoice, role="accountant"))
