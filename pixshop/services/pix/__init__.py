"""
PIX gateway: live Arkama client with an in-process simulator.

One gateway per process, built at startup with build_gateway() and passed explicitly.
"""
from pixshop.services.pix.client import PixGatewayClient, map_provider_status
from pixshop.services.pix.errors import PixPaymentNotFound, PixProviderError
from pixshop.services.pix.models import PixCustomer, PixPayment, PixPaymentStatus
from pixshop.services.pix.simulator import PixSimulator
from pixshop.services.pix import config as pix_config


def build_gateway() -> PixGatewayClient:
    """Gateway from settings, live calls guarded by the shared pix_provider breaker."""
    from pixshop.services.circuit_breaker import PIX_PROVIDER, get_circuit_breaker

    merchant_name, merchant_city = pix_config.get_merchant()
    simulator = PixSimulator(
        auto_pay_seconds=pix_config.get_auto_pay_seconds(),
        ttl_minutes=pix_config.get_code_ttl_minutes(),
        merchant_name=merchant_name,
        merchant_city=merchant_city,
    )
    return PixGatewayClient(
        pix_config.get_api_url(),
        pix_config.get_api_key(),
        simulator=simulator,
        min_key_length=pix_config.get_min_key_length(),
        timeout=pix_config.get_timeout(),
        code_ttl_minutes=pix_config.get_code_ttl_minutes(),
        breaker=get_circuit_breaker(PIX_PROVIDER),
    )


__all__ = [
    "PixGatewayClient",
    "PixSimulator",
    "PixCustomer",
    "PixPayment",
    "PixPaymentStatus",
    "PixProviderError",
    "PixPaymentNotFound",
    "build_gateway",
    "map_provider_status",
]
