"""
Plain reply_markup dicts for the sync Telegram client (worker side).
"""
from __future__ import annotations

from typing import Any


def build_see_more_markup() -> dict[str, Any]:
    return {"inline_keyboard": [[{"text": "🔥 Ver mais conteudo", "callback_data": "back_to_models"}]]}
