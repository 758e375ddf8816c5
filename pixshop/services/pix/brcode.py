"""
BR Code (PIX "copia e cola") builder: EMV QR TLV fields + CRC16/CCITT-FALSE checksum.
"""
from __future__ import annotations

import unicodedata
from decimal import Decimal

CURRENCY_CODES = {"BRL": "986", "USD": "840"}
PIX_GUI = "br.gov.bcb.pix"


def _tlv(tag: str, value: str) -> str:
    if len(value) > 99:
        raise ValueError(f"EMV field {tag} longer than 99 chars")
    return f"{tag}{len(value):02d}{value}"


def _ascii(text: str, limit: int) -> str:
    normalized = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    return normalized.strip()[:limit] or "NA"


def crc16_ccitt(payload: str) -> str:
    """CRC16/CCITT-FALSE (poly 0x1021, init 0xFFFF) as 4 uppercase hex chars."""
    crc = 0xFFFF
    for byte in payload.encode("utf-8"):
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return f"{crc:04X}"


def build_brcode(
    pix_key: str,
    amount: Decimal,
    currency: str,
    merchant_name: str,
    merchant_city: str,
    txid: str,
) -> str:
    """Static BR Code carrying amount and txid."""
    account = _tlv("00", PIX_GUI) + _tlv("01", pix_key)
    txid_clean = "".join(ch for ch in txid if ch.isalnum())[:25] or "***"
    payload = (
        _tlv("00", "01")
        + _tlv("26", account)
        + _tlv("52", "0000")
        + _tlv("53", CURRENCY_CODES.get(currency, "986"))
        + _tlv("54", f"{Decimal(amount):.2f}")
        + _tlv("58", "BR")
        + _tlv("59", _ascii(merchant_name, 25))
        + _tlv("60", _ascii(merchant_city, 15))
        + _tlv("62", _tlv("05", txid_clean))
        + "6304"
    )
    return payload + crc16_ccitt(payload)
