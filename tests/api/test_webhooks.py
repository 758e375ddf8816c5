"""POST /webhooks/arkama: signature enforcement, event dispatch, duplicates."""
import hashlib
import hmac
import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from pixshop.api.routes.webhooks import get_webhook_secret, verify_signature
from pixshop.db.session import get_db
from pixshop.main import app
from pixshop.models.transaction import Transaction
from pixshop.services.buyers.service import BuyerIdentity
from pixshop.services.pix import PixGatewayClient
from pixshop.services.pix.simulator import PixSimulator
from pixshop.services.purchases.service import PurchaseService
from pixshop.services.purchases.states import PurchaseStatus, TransactionStatus

SECRET = "whsec_test"


def _sign(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


@pytest.fixture
def client(session_factory):
    def _db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_webhook_secret] = lambda: SECRET
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def enqueue():
    with patch("pixshop.api.routes.webhooks.enqueue_delivery") as mock:
        yield mock


@pytest.fixture
def issued(db, make_product):
    """A pending purchase with a simulated PIX code; returns (purchase_id, payment_id)."""
    gateway = PixGatewayClient(
        "https://api.arkama.test/v1",
        "",
        simulator=PixSimulator(auto_pay_seconds=None, render_qr=False),
    )
    svc = PurchaseService(db)
    purchase = svc.create_purchase(make_product().id, BuyerIdentity(telegram_id=555))
    tx = svc.issue_payment(purchase.id, gateway)
    return purchase.id, tx.external_id


def _post(client, payload: dict, signature: str | None = "auto", secret: str = SECRET):
    body = json.dumps(payload).encode()
    headers = {"Content-Type": "application/json"}
    if signature == "auto":
        headers["X-Arkama-Signature"] = _sign(body, secret)
    elif signature is not None:
        headers["X-Arkama-Signature"] = signature
    return client.post("/webhooks/arkama", content=body, headers=headers)


def _event(kind: str, payment_id: str, **payment) -> dict:
    return {"event": kind, "payment": {"id": payment_id, "status": "paid", "amount": 2990, **payment}}


def _statuses(db, purchase_id):
    db.expire_all()
    purchase = PurchaseService(db).get_or_raise(purchase_id)
    tx = db.query(Transaction).filter(Transaction.purchase_id == purchase_id).one()
    return purchase.status, tx.status


class TestSignature:
    def test_verify_signature(self):
        body = b'{"a":1}'
        assert verify_signature(SECRET, body, _sign(body))
        assert verify_signature(SECRET, body, _sign(body).upper())
        assert not verify_signature(SECRET, body, _sign(body, "other"))
        assert not verify_signature("", body, _sign(body, ""))
        assert not verify_signature(SECRET, body, None)

    @pytest.mark.parametrize("kind", ["payment.confirmed", "payment.failed", "payment.expired"])
    def test_wrong_signature_never_mutates(self, client, db, issued, enqueue, kind):
        purchase_id, payment_id = issued
        resp = _post(client, _event(kind, payment_id), signature=_sign(b"something else"))
        assert resp.status_code == 401
        assert _statuses(db, purchase_id) == (PurchaseStatus.PENDING, TransactionStatus.PROCESSING)
        enqueue.assert_not_called()

    def test_missing_signature(self, client, db, issued, enqueue):
        purchase_id, payment_id = issued
        resp = _post(client, _event("payment.confirmed", payment_id), signature=None)
        assert resp.status_code == 401
        assert _statuses(db, purchase_id)[0] == PurchaseStatus.PENDING

    def test_missing_secret_fails_closed(self, client, db, issued, enqueue):
        purchase_id, payment_id = issued
        app.dependency_overrides[get_webhook_secret] = lambda: ""
        resp = _post(client, _event("payment.confirmed", payment_id), secret="")
        assert resp.status_code == 401
        assert _statuses(db, purchase_id)[0] == PurchaseStatus.PENDING
        enqueue.assert_not_called()

    def test_malformed_body_after_valid_signature(self, client):
        body = b"not json"
        resp = client.post("/webhooks/arkama", content=body, headers={"X-Arkama-Signature": _sign(body)})
        assert resp.status_code == 400


class TestEvents:
    def test_confirmed_marks_paid_and_enqueues_delivery(self, client, db, issued, enqueue):
        purchase_id, payment_id = issued
        resp = _post(client, _event("payment.confirmed", payment_id, paidAt="2026-03-01T12:05:00Z"))

        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.json()["purchase_id"] == purchase_id
        assert _statuses(db, purchase_id) == (PurchaseStatus.PAID, TransactionStatus.PAID)
        enqueue.assert_called_once_with(purchase_id)

    def test_duplicate_confirmation_is_acknowledged_once(self, client, db, issued, enqueue):
        purchase_id, payment_id = issued
        first = _post(client, _event("payment.confirmed", payment_id))
        PurchaseService(db).complete_delivery(purchase_id)
        second = _post(client, _event("payment.confirmed", payment_id))

        assert first.status_code == second.status_code == 200
        assert second.json()["message"] == "Already processed"
        enqueue.assert_called_once_with(purchase_id)

    def test_duplicate_before_delivery_enqueues_again(self, client, db, issued, enqueue):
        purchase_id, payment_id = issued
        _post(client, _event("payment.confirmed", payment_id))
        second = _post(client, _event("payment.confirmed", payment_id))

        assert second.json()["message"] == "Already processed"
        assert enqueue.call_count == 2
        assert _statuses(db, purchase_id) == (PurchaseStatus.PAID, TransactionStatus.PAID)

    def test_lost_enqueue_is_retried_by_provider_resend(self, client, db, issued, enqueue):
        purchase_id, payment_id = issued
        enqueue.side_effect = [ConnectionError("broker down"), None]
        unguarded = TestClient(app, raise_server_exceptions=False)

        first = _post(unguarded, _event("payment.confirmed", payment_id))
        assert first.status_code == 500
        assert _statuses(db, purchase_id) == (PurchaseStatus.PAID, TransactionStatus.PAID)

        retry = _post(unguarded, _event("payment.confirmed", payment_id))
        assert retry.status_code == 200
        assert enqueue.call_args_list[-1].args == (purchase_id,)
        assert enqueue.call_count == 2

    def test_lookup_by_external_id(self, client, db, issued, enqueue):
        purchase_id, _ = issued
        tx_id = db.query(Transaction).filter(Transaction.purchase_id == purchase_id).one().id
        resp = _post(client, _event("payment.confirmed", "ord_unknown", externalId=tx_id))
        assert resp.status_code == 200
        assert _statuses(db, purchase_id)[0] == PurchaseStatus.PAID

    def test_failed(self, client, db, issued, enqueue):
        purchase_id, payment_id = issued
        resp = _post(client, _event("payment.failed", payment_id))
        assert resp.status_code == 200
        assert _statuses(db, purchase_id) == (PurchaseStatus.FAILED, TransactionStatus.FAILED)
        enqueue.assert_not_called()

    def test_expired(self, client, db, issued, enqueue):
        purchase_id, payment_id = issued
        resp = _post(client, {"type": "payment.expired", "payment": {"id": payment_id}})
        assert resp.status_code == 200
        assert _statuses(db, purchase_id) == (PurchaseStatus.FAILED, TransactionStatus.EXPIRED)

    def test_unknown_payment_is_ignored(self, client, enqueue):
        resp = _post(client, _event("payment.confirmed", "ord_nobody"))
        assert resp.status_code == 200
        assert resp.json()["status"] == "ignored"
        enqueue.assert_not_called()

    def test_unknown_event_type_acknowledged_without_mutation(self, client, db, issued, enqueue):
        purchase_id, payment_id = issued
        resp = _post(client, _event("payment.refunded", payment_id))
        assert resp.status_code == 200
        assert resp.json()["status"] == "ignored"
        assert _statuses(db, purchase_id) == (PurchaseStatus.PENDING, TransactionStatus.PROCESSING)

    def test_get_lists_supported_events(self, client):
        resp = client.get("/webhooks/arkama")
        assert resp.status_code == 200
        assert resp.json()["events"] == ["payment.confirmed", "payment.failed", "payment.expired"]
