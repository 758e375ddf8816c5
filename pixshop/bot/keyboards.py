"""Inline keyboards of the purchase flow. callback_data comes from flow.callback_for()."""
from __future__ import annotations

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from pixshop.bot.flow import FlowState, callback_for


def _btn(text: str, state: FlowState, arg: str | None = None) -> InlineKeyboardButton:
    return InlineKeyboardButton(text=text, callback_data=callback_for(state, arg))


def welcome_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [_btn("🔥 Ver Conteudo", FlowState.MODELS)],
        [_btn("📋 Minhas Compras", FlowState.HISTORY)],
    ])


def models_keyboard(rows: list[tuple[str, str]]) -> InlineKeyboardMarkup:
    """rows: (button label, creator id)."""
    return InlineKeyboardMarkup(
        inline_keyboard=[[_btn(label, FlowState.PROFILE, creator_id)] for label, creator_id in rows]
    )


def profile_keyboard(creator_id: str, has_packs: bool, has_subscription: bool, link: str | None) -> InlineKeyboardMarkup:
    first_row = []
    if has_packs:
        first_row.append(_btn("📦 Ver Packs", FlowState.PACKS, creator_id))
    if has_subscription:
        first_row.append(_btn("⭐ Assinar", FlowState.SUBSCRIPTION, creator_id))
    buttons = [first_row] if first_row else []
    if link:
        buttons.append([InlineKeyboardButton(text="💋 Perfil", url=link)])
    buttons.append([_btn("👀 Ver outras modelos", FlowState.MODELS)])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def packs_keyboard(creator_id: str, rows: list[tuple[str, str]]) -> InlineKeyboardMarkup:
    """rows: (button label, product id)."""
    buttons = [[_btn(label, FlowState.PACK_DETAILS, product_id)] for label, product_id in rows]
    buttons.append([_btn("⬅️ Voltar", FlowState.PROFILE, creator_id)])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def pack_details_keyboard(creator_id: str, product_id: str, price: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [_btn(f"🔓 Liberar Acesso • {price}", FlowState.CHECKOUT, product_id)],
        [_btn("⬅️ Voltar aos packs", FlowState.PACKS, creator_id)],
    ])


def subscription_keyboard(creator_id: str, product_id: str, price: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [_btn(f"⭐ Assinar • {price}", FlowState.CHECKOUT, product_id)],
        [_btn("⬅️ Voltar", FlowState.PROFILE, creator_id)],
    ])


def checkout_keyboard(purchase_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [_btn("✅ Já transferi", FlowState.CHECK_PAYMENT, purchase_id)],
        [_btn("❌ Cancelar", FlowState.CANCEL)],
    ])


def retry_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[[_btn("🔄 Tentar novamente", FlowState.MODELS)]])


def browse_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[[_btn("🔥 Ver modelos", FlowState.MODELS)]])
