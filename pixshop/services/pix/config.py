"""
PIX config: typed wrappers over pixshop.core.config for the gateway and simulator.
"""
from __future__ import annotations

from pixshop.core.config import settings


def get_api_url() -> str:
    return settings.arkama_api_url.rstrip("/")


def get_api_key() -> str:
    return settings.arkama_api_key or ""


def get_min_key_length() -> int:
    return settings.arkama_min_key_length


def get_timeout() -> float:
    return settings.arkama_timeout


def get_webhook_secret() -> str:
    return settings.arkama_webhook_secret or ""


def get_auto_pay_seconds() -> float:
    return settings.pix_sim_auto_pay_seconds


def get_code_ttl_minutes() -> int:
    return settings.pix_code_ttl_minutes


def get_merchant() -> tuple[str, str]:
    return settings.pix_merchant_name, settings.pix_merchant_city
