"""
Purchase flow as an explicit state enum keyed by callback payloads.

Every button carries its destination in callback_data; parse_callback() turns it
back into a FlowStep so handlers (and tests) dispatch without the chat transport.
Telegram caps callback_data at 64 bytes, so pack/buy carry only the product id.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

CALLBACK_DATA_LIMIT = 64


class FlowState(str, Enum):
    MODELS = "models"
    PROFILE = "profile"
    PACKS = "packs"
    SUBSCRIPTION = "subscription"
    PACK_DETAILS = "pack_details"
    CHECKOUT = "checkout"
    CHECK_PAYMENT = "check_payment"
    CANCEL = "cancel"
    HISTORY = "history"


@dataclass(frozen=True)
class FlowStep:
    state: FlowState
    arg: str | None = None  # creator id, product id or purchase id depending on state


# prefix -> state, for payloads shaped "<prefix><id>"
_PREFIXED = (
    ("model_", FlowState.PROFILE),
    ("packs_", FlowState.PACKS),
    ("subscribe_", FlowState.SUBSCRIPTION),
    ("pack_", FlowState.PACK_DETAILS),
    ("buy_", FlowState.CHECKOUT),
    ("check_", FlowState.CHECK_PAYMENT),
)
_EXACT = {
    "back_to_models": FlowState.MODELS,
    "show_history": FlowState.HISTORY,
    "cancel": FlowState.CANCEL,
}
_PREFIX_OF = {state: prefix for prefix, state in _PREFIXED}


def parse_callback(data: str | None) -> FlowStep | None:
    """callback_data -> FlowStep; None for payloads outside the purchase flow."""
    if not data:
        return None
    if data in _EXACT:
        return FlowStep(_EXACT[data])
    # "packs_" must win over "pack_"; _PREFIXED is ordered accordingly
    for prefix, state in _PREFIXED:
        if data.startswith(prefix):
            arg = data[len(prefix):]
            return FlowStep(state, arg) if arg else None
    return None


def callback_for(state: FlowState, arg: str | None = None) -> str:
    """Inverse of parse_callback."""
    for data, exact_state in _EXACT.items():
        if exact_state is state:
            return data
    if not arg:
        raise ValueError(f"{state.value} needs an argument")
    data = f"{_PREFIX_OF[state]}{arg}"
    if len(data.encode("utf-8")) > CALLBACK_DATA_LIMIT:
        raise ValueError(f"callback_data too long: {data}")
    return data


def parse_start_arg(text: str | None) -> FlowStep | None:
    """Deep link: '/start model_<id>' opens the creator's gallery directly."""
    if not text:
        return None
    parts = text.split(maxsplit=1)
    if len(parts) < 2:
        return None
    arg = parts[1].strip()
    if arg.startswith("model_") and len(arg) > len("model_"):
        return FlowStep(FlowState.PROFILE, arg[len("model_"):])
    return None


def deep_link(bot_username: str, creator_id: str) -> str:
    return f"https://t.me/{bot_username}?start=model_{creator_id}"
