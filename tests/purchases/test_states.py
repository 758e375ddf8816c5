"""Status edges of Purchase and Transaction."""
import pytest

from pixshop.services.purchases.states import (
    PurchaseStatus,
    TransactionStatus,
    can_transition_purchase,
    can_transition_transaction,
    purchase_predecessors,
    transaction_predecessors,
)


class TestPurchaseEdges:
    def test_happy_path(self):
        assert can_transition_purchase(PurchaseStatus.PENDING, PurchaseStatus.PAID)
        assert can_transition_purchase(PurchaseStatus.PAID, PurchaseStatus.COMPLETED)

    def test_completed_only_expires_or_refunds(self):
        assert can_transition_purchase(PurchaseStatus.COMPLETED, PurchaseStatus.EXPIRED)
        assert can_transition_purchase(PurchaseStatus.COMPLETED, PurchaseStatus.REFUNDED)
        assert not can_transition_purchase(PurchaseStatus.COMPLETED, PurchaseStatus.FAILED)
        assert not can_transition_purchase(PurchaseStatus.COMPLETED, PurchaseStatus.PAID)

    def test_terminal_states_have_no_exit(self):
        for status in (PurchaseStatus.FAILED, PurchaseStatus.REFUNDED, PurchaseStatus.EXPIRED):
            for target in PurchaseStatus.ALL:
                assert not can_transition_purchase(status, target)

    def test_predecessors(self):
        assert purchase_predecessors(PurchaseStatus.PAID) == (PurchaseStatus.PENDING,)
        assert purchase_predecessors(PurchaseStatus.FAILED) == ("paid", "pending")
        assert purchase_predecessors(PurchaseStatus.REFUNDED) == ("completed", "paid")
        assert purchase_predecessors(PurchaseStatus.EXPIRED) == (PurchaseStatus.COMPLETED,)
        assert purchase_predecessors(PurchaseStatus.PENDING) == ()

    def test_unknown_status_rejected(self):
        with pytest.raises(ValueError):
            purchase_predecessors("cancelled")


class TestTransactionEdges:
    def test_pending_to_processing_to_paid(self):
        assert can_transition_transaction(TransactionStatus.PENDING, TransactionStatus.PROCESSING)
        assert can_transition_transaction(TransactionStatus.PROCESSING, TransactionStatus.PAID)

    def test_refund_only_from_paid(self):
        assert transaction_predecessors(TransactionStatus.REFUNDED) == (TransactionStatus.PAID,)
        assert not can_transition_transaction(TransactionStatus.PROCESSING, TransactionStatus.REFUNDED)

    def test_paid_is_not_reapplied(self):
        assert TransactionStatus.PAID not in transaction_predecessors(TransactionStatus.PAID)

    def test_unknown_status_rejected(self):
        with pytest.raises(ValueError):
            transaction_predecessors("chargeback")
