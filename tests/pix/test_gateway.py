"""PixGatewayClient: live Arkama calls over httpx.MockTransport, simulated mode and fallback."""
import json
from decimal import Decimal

import httpx
import pybreaker
import pytest

from pixshop.services.pix import PixCustomer, PixGatewayClient, PixPaymentNotFound, PixProviderError
from pixshop.services.pix.client import map_provider_status
from pixshop.services.pix.simulator import SIMULATED_ID_PREFIX, PixSimulator

API_URL = "https://api.arkama.test/v1"
LIVE_KEY = "ak_live_0123456789abcdef"


def _gateway(handler=None, api_key=LIVE_KEY, breaker=None):
    http_client = httpx.Client(transport=httpx.MockTransport(handler)) if handler else None
    return PixGatewayClient(
        API_URL,
        api_key,
        simulator=PixSimulator(auto_pay_seconds=None, render_qr=False),
        breaker=breaker,
        http_client=http_client,
    )


class TestMode:
    def test_missing_key_is_simulated(self):
        assert _gateway(api_key="").mode == "simulated"

    def test_short_key_is_simulated(self):
        assert not _gateway(api_key="short").live

    def test_long_key_is_live(self):
        assert _gateway(api_key=LIVE_KEY).mode == "live"


class TestStatusMapping:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("PAID", "paid"),
            ("approved", "paid"),
            ("WAITING_PAYMENT", "pending"),
            ("IN_ANALYSIS", "processing"),
            ("REFUSED", "failed"),
            ("EXPIRED", "expired"),
            ("SOMETHING_NEW", "pending"),
            (None, "pending"),
        ],
    )
    def test_map(self, raw, expected):
        assert map_provider_status(raw) == expected


class TestSimulatedMode:
    def test_create_never_calls_provider(self):
        def handler(request):
            raise AssertionError("provider must not be called")

        gw = _gateway(handler, api_key="")
        payment = gw.create_payment(Decimal("29.90"), "BRL", "Pack", "tx-1")
        assert payment.mode == "simulated"
        assert gw.check_status(payment.id).status == "pending"
        assert gw.confirm_manually(payment.id) is True
        assert gw.check_status(payment.id).is_paid

    def test_unknown_id_in_simulated_mode(self):
        with pytest.raises(PixPaymentNotFound):
            _gateway(api_key="").check_status("ord_123")

    def test_validation(self):
        gw = _gateway(api_key="")
        with pytest.raises(ValueError):
            gw.create_payment(Decimal("0"), "BRL", "Pack", "tx-1")
        with pytest.raises(ValueError):
            gw.create_payment(Decimal("10"), "BRL", "Pack", "")


class TestLiveCreate:
    def test_request_shape_and_result(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                201,
                json={
                    "data": {
                        "id": "ord_42",
                        "status": "PENDING",
                        "pix": {
                            "payload": "00020126...6304ABCD",
                            "qrCodeImage": "https://cdn.arkama.test/qr/ord_42.png",
                            "expirationDate": "2026-03-01T12:30:00Z",
                        },
                    }
                },
            )

        customer = PixCustomer(name="Ana", email="ana@example.com")
        payment = _gateway(handler).create_payment(Decimal("29.90"), "BRL", "Pack Verao", "tx-1", customer)

        assert seen["method"] == "POST"
        assert seen["url"] == f"{API_URL}/orders"
        assert seen["auth"] == f"Bearer {LIVE_KEY}"
        assert seen["body"]["value"] == 2990
        assert seen["body"]["paymentMethod"] == "pix"
        assert seen["body"]["externalId"] == "tx-1"
        assert seen["body"]["items"][0]["unitPrice"] == 2990
        assert seen["body"]["customer"] == {"name": "Ana", "email": "ana@example.com"}

        assert payment.mode == "live"
        assert payment.id == "ord_42"
        assert payment.payment_code == "00020126...6304ABCD"
        assert payment.qr_image.endswith("ord_42.png")
        assert payment.expires_at.isoformat() == "2026-03-01T12:30:00+00:00"

    def test_server_error_falls_back_to_simulator(self):
        gw = _gateway(lambda request: httpx.Response(502, json={"error": "bad gateway"}))
        payment = gw.create_payment(Decimal("29.90"), "BRL", "Pack", "tx-1")
        assert payment.mode == "simulated"
        assert payment.id.startswith(SIMULATED_ID_PREFIX)
        # the simulated id is still answered after fallback
        assert gw.check_status(payment.id).status == "pending"

    def test_transport_error_falls_back(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        payment = _gateway(handler).create_payment(Decimal("5"), "BRL", "Pack", "tx-1")
        assert payment.mode == "simulated"

    def test_malformed_body_falls_back(self):
        payment = _gateway(lambda request: httpx.Response(200, json={"data": {"id": "ord_1"}})).create_payment(
            Decimal("5"), "BRL", "Pack", "tx-1"
        )
        assert payment.mode == "simulated"

    def test_open_breaker_falls_back(self):
        breaker = pybreaker.CircuitBreaker(fail_max=1, reset_timeout=60)
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            return httpx.Response(500)

        gw = _gateway(handler, breaker=breaker)
        gw.create_payment(Decimal("5"), "BRL", "Pack", "tx-1")
        gw.create_payment(Decimal("5"), "BRL", "Pack", "tx-2")
        assert calls["n"] == 1


class TestLiveStatus:
    def test_paid(self):
        def handler(request: httpx.Request):
            assert request.url.path.endswith("/orders/ord_42")
            return httpx.Response(200, json={"id": "ord_42", "status": "PAID", "paidAt": "2026-03-01T12:05:00Z"})

        status = _gateway(handler).check_status("ord_42")
        assert status.is_paid
        assert status.mode == "live"
        assert status.paid_at.isoformat() == "2026-03-01T12:05:00+00:00"

    def test_provider_error_is_not_masked(self):
        gw = _gateway(lambda request: httpx.Response(503))
        with pytest.raises(PixProviderError) as exc:
            gw.check_status("ord_42")
        assert exc.value.status_code == 503

    def test_not_found(self):
        with pytest.raises(PixPaymentNotFound):
            _gateway(lambda request: httpx.Response(404)).check_status("ord_missing")

    def test_manual_confirm_rejected_for_live_ids(self):
        gw = _gateway(lambda request: httpx.Response(200, json={}))
        assert gw.confirm_manually("ord_42") is False
        assert gw.is_simulated("ord_42") is False

    def test_not_found_does_not_open_breaker(self):
        breaker = pybreaker.CircuitBreaker(fail_max=1, reset_timeout=60)

        def handler(request: httpx.Request):
            if request.method == "GET":
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(
                201, json={"data": {"id": "ord_7", "pix": {"payload": "000201...6304ABCD"}}}
            )

        gw = _gateway(handler, breaker=breaker)
        for _ in range(3):
            with pytest.raises(PixPaymentNotFound):
                gw.check_status("ord_gone")

        assert breaker.current_state == pybreaker.STATE_CLOSED
        assert gw.create_payment(Decimal("5"), "BRL", "Pack", "tx-1").mode == "live"


class TestSimulatedAcrossProcesses:
    def test_simulated_id_recognised_without_local_record(self):
        issuer = _gateway(api_key="")
        payment = issuer.create_payment(Decimal("29.90"), "BRL", "Pack", "tx-1")

        other = _gateway(api_key="")
        assert other.is_simulated(payment.id)
        with pytest.raises(PixPaymentNotFound):
            other.check_status(payment.id)

    def test_restored_payment_answers_status_and_confirm(self):
        issuer = _gateway(api_key="")
        payment = issuer.create_payment(Decimal("29.90"), "BRL", "Pack", "tx-1")

        other = _gateway(api_key="")
        assert other.restore_simulated(
            payment.id, "tx-1", Decimal("29.90"), "BRL", payment.payment_code, payment.expires_at
        )
        assert other.check_status(payment.id).status == "pending"
        assert other.confirm_manually(payment.id) is True
        assert other.check_status(payment.id).is_paid
        # already known: nothing to restore
        assert not other.restore_simulated(
            payment.id, "tx-1", Decimal("29.90"), "BRL", payment.payment_code, payment.expires_at
        )

    def test_live_ids_are_never_restored(self):
        gw = _gateway(api_key="")
        assert not gw.restore_simulated("ord_42", "tx-1", Decimal("5"), "BRL", "000201", None)
        assert not gw.is_simulated("ord_42")

    def test_simulated_id_not_sent_to_provider_in_live_mode(self):
        def handler(request):
            raise AssertionError("provider must not be called")

        with pytest.raises(PixPaymentNotFound):
            _gateway(handler).check_status(f"{SIMULATED_ID_PREFIX}0011223344556677")
