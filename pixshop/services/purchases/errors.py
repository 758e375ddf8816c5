"""Ledger errors with a machine-readable reason for the operator RPC."""


class PurchaseError(Exception):
    reason = "purchase_error"
    status_code = 400

    def __init__(self, message: str = "", **context) -> None:
        super().__init__(message or self.reason)
        self.context = context


class PurchaseNotFound(PurchaseError):
    reason = "purchase_not_found"
    status_code = 404


class ProductUnavailable(PurchaseError):
    reason = "product_unavailable"
    status_code = 404


class InvalidTransition(PurchaseError):
    reason = "invalid_transition"
    status_code = 400


class PaymentNotIssued(PurchaseError):
    reason = "payment_not_issued"
    status_code = 400


class PaymentNotSimulated(PurchaseError):
    reason = "not_simulated"
    status_code = 400
