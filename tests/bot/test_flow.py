"""Purchase flow: callback payload parsing, keyboards, texts, «Já transferi» handler."""
import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from pixshop.bot import keyboards, texts
from pixshop.bot.flow import (
    CALLBACK_DATA_LIMIT,
    FlowState,
    FlowStep,
    callback_for,
    deep_link,
    parse_callback,
    parse_start_arg,
)
from pixshop.services.pix import PixProviderError
from pixshop.services.purchases.service import PaymentOutcome


class TestParseCallback:
    @pytest.mark.parametrize(
        "data, step",
        [
            ("back_to_models", FlowStep(FlowState.MODELS)),
            ("show_history", FlowStep(FlowState.HISTORY)),
            ("cancel", FlowStep(FlowState.CANCEL)),
            ("model_c1", FlowStep(FlowState.PROFILE, "c1")),
            ("packs_c1", FlowStep(FlowState.PACKS, "c1")),
            ("pack_p1", FlowStep(FlowState.PACK_DETAILS, "p1")),
            ("subscribe_c1", FlowStep(FlowState.SUBSCRIPTION, "c1")),
            ("buy_p1", FlowStep(FlowState.CHECKOUT, "p1")),
            ("check_u1", FlowStep(FlowState.CHECK_PAYMENT, "u1")),
        ],
    )
    def test_known_payloads(self, data, step):
        assert parse_callback(data) == step

    @pytest.mark.parametrize("data", [None, "", "model_", "buy_", "rate:5", "noop"])
    def test_foreign_or_empty_payloads(self, data):
        assert parse_callback(data) is None

    def test_round_trip_with_uuid_ids(self):
        ident = str(uuid4())
        for state in (FlowState.PROFILE, FlowState.PACKS, FlowState.SUBSCRIPTION,
                      FlowState.PACK_DETAILS, FlowState.CHECKOUT, FlowState.CHECK_PAYMENT):
            data = callback_for(state, ident)
            assert len(data.encode()) <= CALLBACK_DATA_LIMIT
            assert parse_callback(data) == FlowStep(state, ident)

    def test_argument_required(self):
        with pytest.raises(ValueError):
            callback_for(FlowState.CHECKOUT)

    def test_too_long(self):
        with pytest.raises(ValueError):
            callback_for(FlowState.PROFILE, "x" * 64)


class TestDeepLink:
    def test_start_with_model(self):
        assert parse_start_arg("/start model_abc") == FlowStep(FlowState.PROFILE, "abc")

    @pytest.mark.parametrize("text", [None, "/start", "/start model_", "/start promo_1"])
    def test_plain_start(self, text):
        assert parse_start_arg(text) is None

    def test_link_round_trip(self):
        link = deep_link("pixshop_bot", "abc")
        assert link == "https://t.me/pixshop_bot?start=model_abc"
        assert parse_start_arg("/start " + link.split("start=")[1]).arg == "abc"


class TestKeyboardsAndTexts:
    def test_checkout_keyboard(self):
        purchase_id = str(uuid4())
        kb = keyboards.checkout_keyboard(purchase_id)
        datas = [row[0].callback_data for row in kb.inline_keyboard]
        assert datas == [f"check_{purchase_id}", "cancel"]

    def test_profile_keyboard_hides_missing_sections(self):
        kb = keyboards.profile_keyboard("c1", has_packs=False, has_subscription=True, link=None)
        datas = [b.callback_data for row in kb.inline_keyboard for b in row]
        assert datas == ["subscribe_c1", "back_to_models"]

    def test_checkout_text_escapes(self):
        text = texts.checkout("Pack <VIP>", "R$ 29,90", 30, "000201&x")
        assert "Pack &lt;VIP&gt;" in text
        assert "000201&amp;x" in text
        assert "Expira em 30 min" in text

    def test_history(self):
        text = texts.history([("Pack Verao", None, "R$ 29,90", datetime(2026, 3, 1))])
        assert "1. <b>Pack Verao</b>" in text
        assert "N/A" in text
        assert "01/03/2026" in text


def _outcome(**kwargs):
    values = dict(purchase_id="p1", purchase_status="pending", transaction_status="processing",
                  newly_paid=False, changed=False)
    values.update(kwargs)
    return PaymentOutcome(**values)


class TestCheckPaymentHandler:
    @pytest.fixture
    def callback(self):
        cb = MagicMock()
        cb.from_user.id = 555
        cb.message.answer = AsyncMock()
        cb.answer = AsyncMock()
        return cb

    @pytest.fixture
    def idempotency(self):
        store = MagicMock()
        store.check_and_set.return_value = True
        return store

    def _run(self, callback, idempotency, outcome=None, error=None):
        from pixshop.bot import main as bot_main

        refresh = MagicMock(return_value=outcome, side_effect=error)
        with patch.object(bot_main, "_refresh_status", refresh), \
                patch.object(bot_main, "enqueue_delivery") as enqueue:
            asyncio.run(bot_main.check_payment(callback, "p1", MagicMock(), idempotency))
        return refresh, enqueue

    def test_newly_paid_enqueues_delivery(self, callback, idempotency):
        _, enqueue = self._run(callback, idempotency, _outcome(purchase_status="paid", transaction_status="paid",
                                                               newly_paid=True, changed=True))
        enqueue.assert_called_once_with("p1")
        assert callback.message.answer.call_args[0][0] == texts.PAID

    def test_already_delivered_does_not_enqueue_again(self, callback, idempotency):
        _, enqueue = self._run(callback, idempotency, _outcome(purchase_status="completed", transaction_status="paid"))
        enqueue.assert_not_called()
        assert callback.message.answer.call_args[0][0] == texts.PAID

    def test_paid_but_undelivered_enqueues_again(self, callback, idempotency):
        # the enqueue at the paid edge was lost; this poll is the retry
        _, enqueue = self._run(callback, idempotency, _outcome(purchase_status="paid", transaction_status="paid"))
        enqueue.assert_called_once_with("p1")
        assert callback.message.answer.call_args[0][0] == texts.PAID

    def test_waiting(self, callback, idempotency):
        self._run(callback, idempotency, _outcome())
        assert callback.message.answer.call_args[0][0] == texts.WAITING

    def test_expired(self, callback, idempotency):
        self._run(callback, idempotency, _outcome(purchase_status="failed", transaction_status="expired"))
        assert callback.message.answer.call_args[0][0] == texts.EXPIRED

    def test_provider_unreachable(self, callback, idempotency):
        self._run(callback, idempotency, error=PixProviderError("status: HTTP 503"))
        assert callback.message.answer.call_args[0][0] == texts.PROVIDER_UNREACHABLE

    def test_double_tap_debounced(self, callback, idempotency):
        idempotency.check_and_set.return_value = False
        refresh, enqueue = self._run(callback, idempotency, _outcome())
        refresh.assert_not_called()
        callback.answer.assert_awaited_once_with(texts.CHECK_DEBOUNCED)
        idempotency.check_and_set.assert_called_once_with("pix_check:p1")
