"""
Purchase / Transaction status enumerations and their allowed edges.

Pure data, no I/O. PurchaseService turns every edge into a conditional UPDATE
whose WHERE clause lists the predecessors computed here, so a transition is
applied only while the stored status is still a valid predecessor.
"""
from __future__ import annotations


class PurchaseStatus:
    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    EXPIRED = "expired"

    ALL = (PENDING, PAID, COMPLETED, FAILED, REFUNDED, EXPIRED)


class TransactionStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"
    REFUNDED = "refunded"

    ALL = (PENDING, PROCESSING, PAID, FAILED, EXPIRED, REFUNDED)
    TERMINAL = (PAID, FAILED, EXPIRED, REFUNDED)


PURCHASE_TRANSITIONS: dict[str, frozenset[str]] = {
    PurchaseStatus.PENDING: frozenset({PurchaseStatus.PAID, PurchaseStatus.FAILED}),
    PurchaseStatus.PAID: frozenset({PurchaseStatus.COMPLETED, PurchaseStatus.FAILED, PurchaseStatus.REFUNDED}),
    # completed -> expired only through the expiration sweep
    PurchaseStatus.COMPLETED: frozenset({PurchaseStatus.EXPIRED, PurchaseStatus.REFUNDED}),
    PurchaseStatus.FAILED: frozenset(),
    PurchaseStatus.REFUNDED: frozenset(),
    PurchaseStatus.EXPIRED: frozenset(),
}

TRANSACTION_TRANSITIONS: dict[str, frozenset[str]] = {
    TransactionStatus.PENDING: frozenset({
        TransactionStatus.PROCESSING,
        TransactionStatus.PAID,
        TransactionStatus.FAILED,
        TransactionStatus.EXPIRED,
    }),
    TransactionStatus.PROCESSING: frozenset({
        TransactionStatus.PAID,
        TransactionStatus.FAILED,
        TransactionStatus.EXPIRED,
    }),
    TransactionStatus.PAID: frozenset({TransactionStatus.REFUNDED}),
    TransactionStatus.FAILED: frozenset(),
    TransactionStatus.EXPIRED: frozenset(),
    TransactionStatus.REFUNDED: frozenset(),
}


def _predecessors(table: dict[str, frozenset[str]], target: str) -> tuple[str, ...]:
    return tuple(sorted(src for src, targets in table.items() if target in targets))


def purchase_predecessors(target: str) -> tuple[str, ...]:
    """Statuses from which a Purchase may move to target."""
    if target not in PurchaseStatus.ALL:
        raise ValueError(f"Unknown purchase status: {target}")
    return _predecessors(PURCHASE_TRANSITIONS, target)


def transaction_predecessors(target: str) -> tuple[str, ...]:
    """Statuses from which a Transaction may move to target."""
    if target not in TransactionStatus.ALL:
        raise ValueError(f"Unknown transaction status: {target}")
    return _predecessors(TRANSACTION_TRANSITIONS, target)


def can_transition_purchase(current: str, target: str) -> bool:
    return target in PURCHASE_TRANSITIONS.get(current, frozenset())


def can_transition_transaction(current: str, target: str) -> bool:
    return target in TRANSACTION_TRANSITIONS.get(current, frozenset())
