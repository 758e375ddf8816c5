"""In-memory PIX simulator: auto-pay, expiry, manual confirmation."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from pixshop.services.pix.brcode import crc16_ccitt
from pixshop.services.pix.simulator import SIMULATED_ID_PREFIX, PixSimulator


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


def _sim(clock, auto_pay=10.0, render_qr=False):
    return PixSimulator(auto_pay_seconds=auto_pay, ttl_minutes=30, clock=clock, render_qr=render_qr)


class TestCreate:
    def test_payment_shape(self, clock):
        sim = _sim(clock)
        payment = sim.create(Decimal("29.90"), "BRL", "Pack Verao", "tx-1")
        assert payment.id.startswith(SIMULATED_ID_PREFIX)
        assert payment.mode == "simulated"
        assert payment.expires_at == clock.now + timedelta(minutes=30)
        assert payment.amount == Decimal("29.90")
        assert crc16_ccitt(payment.payment_code[:-4]) == payment.payment_code[-4:]
        assert payment.qr_image is None
        assert payment.id in sim

    def test_qr_card_rendered_as_data_uri(self, clock):
        payment = _sim(clock, render_qr=True).create(Decimal("10"), "BRL", "x", "tx-2")
        assert payment.qr_image.startswith("data:image/png;base64,")

    def test_ids_are_unique(self, clock):
        sim = _sim(clock)
        ids = {sim.create(Decimal("1"), "BRL", "x", f"tx-{i}").id for i in range(20)}
        assert len(ids) == 20


class TestLifecycle:
    def test_pending_then_auto_paid(self, clock):
        sim = _sim(clock)
        payment = sim.create(Decimal("29.90"), "BRL", "x", "tx-1")
        assert sim.status(payment.id).status == "pending"
        clock.advance(seconds=9)
        assert sim.status(payment.id).status == "pending"
        clock.advance(seconds=1)
        status = sim.status(payment.id)
        assert status.is_paid
        assert status.paid_at == payment.expires_at - timedelta(minutes=30) + timedelta(seconds=10)

    def test_expires_without_auto_pay(self, clock):
        sim = _sim(clock, auto_pay=0)
        payment = sim.create(Decimal("29.90"), "BRL", "x", "tx-1")
        clock.advance(minutes=29)
        assert sim.status(payment.id).status == "pending"
        clock.advance(minutes=1)
        assert sim.status(payment.id).status == "expired"
        assert sim.pending() == []

    def test_auto_pay_after_ttl_never_pays(self, clock):
        sim = PixSimulator(auto_pay_seconds=3600, ttl_minutes=30, clock=clock, render_qr=False)
        payment = sim.create(Decimal("5"), "BRL", "x", "tx-1")
        clock.advance(hours=2)
        assert sim.status(payment.id).status == "expired"

    def test_paid_is_sticky(self, clock):
        sim = _sim(clock)
        payment = sim.create(Decimal("5"), "BRL", "x", "tx-1")
        clock.advance(seconds=15)
        assert sim.status(payment.id).is_paid
        clock.advance(hours=1)
        assert sim.status(payment.id).is_paid

    def test_unknown_id(self, clock):
        assert _sim(clock).status("ark_sim_missing") is None


class TestConfirm:
    def test_confirm_pending(self, clock):
        sim = _sim(clock, auto_pay=None)
        payment = sim.create(Decimal("5"), "BRL", "x", "tx-1")
        assert sim.pending() == [payment.id]
        assert sim.confirm(payment.id) is True
        status = sim.status(payment.id)
        assert status.is_paid
        assert status.paid_at == clock.now

    def test_confirm_twice_is_rejected(self, clock):
        sim = _sim(clock, auto_pay=None)
        payment = sim.create(Decimal("5"), "BRL", "x", "tx-1")
        assert sim.confirm(payment.id)
        assert sim.confirm(payment.id) is False

    def test_confirm_expired_or_unknown(self, clock):
        sim = _sim(clock, auto_pay=None)
        payment = sim.create(Decimal("5"), "BRL", "x", "tx-1")
        clock.advance(minutes=31)
        assert sim.confirm(payment.id) is False
        assert sim.confirm("nope") is False


class TestRestore:
    def test_restored_payment_keeps_issue_timeline(self, clock):
        issuer = _sim(clock)
        payment = issuer.create(Decimal("29.90"), "BRL", "x", "tx-1")
        clock.advance(seconds=4)

        other = _sim(clock)
        other.restore(payment.id, "tx-1", Decimal("29.90"), "BRL", payment.payment_code, payment.expires_at)
        assert payment.id in other
        assert other.status(payment.id).status == "pending"
        clock.advance(seconds=6)
        status = other.status(payment.id)
        assert status.is_paid
        assert status.paid_at == payment.expires_at - timedelta(minutes=30) + timedelta(seconds=10)

    def test_restored_after_expiry_reads_expired(self, clock):
        issuer = _sim(clock, auto_pay=None)
        payment = issuer.create(Decimal("5"), "BRL", "x", "tx-1")
        clock.advance(minutes=31)

        other = _sim(clock, auto_pay=None)
        other.restore(payment.id, "tx-1", Decimal("5"), "BRL", payment.payment_code, payment.expires_at.replace(tzinfo=None))
        assert other.status(payment.id).status == "expired"
        assert other.confirm(payment.id) is False

    def test_restore_keeps_existing_record(self, clock):
        sim = _sim(clock, auto_pay=None)
        payment = sim.create(Decimal("5"), "BRL", "x", "tx-1")
        assert sim.confirm(payment.id)
        sim.restore(payment.id, "tx-1", Decimal("5"), "BRL", payment.payment_code, payment.expires_at)
        assert sim.status(payment.id).is_paid
