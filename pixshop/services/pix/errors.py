"""
PIX provider failure types.
Creation recovers from these locally (simulated fallback); status checks let them propagate.
"""


class PixProviderError(Exception):
    """Transport failure, non-2xx answer or malformed body from the provider."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PixPaymentNotFound(PixProviderError):
    """Payment id is unknown to both the simulator and the provider."""
