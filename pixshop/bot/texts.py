"""Buyer-facing bot texts (pt-BR, HTML parse mode)."""
from __future__ import annotations

import html
from datetime import datetime

TIER_EMOJI = {"platinum": "💎", "gold": "🥇", "silver": "🥈", "bronze": "🥉"}

WELCOME = (
    "<b>Seja bem-vindo!</b> 👋\n\n"
    "Aqui voce encontra conteudo exclusivo.\n\n"
    "<i>Clique abaixo para comecar:</i>"
)
HELP = (
    "<b>Como funciona?</b> 🤔\n\n"
    "1️⃣ Escolha uma modelo\n"
    "2️⃣ Veja o conteudo gratuito\n"
    "3️⃣ Escolha um pack ou assinatura\n"
    "4️⃣ Libere o acesso\n\n"
    "<i>Duvidas? Fale com o suporte.</i>"
)
NO_MODELS = "Nenhuma modelo disponivel no momento.\n\nVolte mais tarde!"
MODELS_HEADER = "🔥 <b>Modelos Disponiveis</b>\n\nEscolha uma para ver o conteudo:"
MODEL_NOT_FOUND = "Modelo nao encontrada."
NO_PACKS = "Nenhum pack disponivel no momento."
PACK_UNAVAILABLE = "Pack nao disponivel."
SUBSCRIPTION_UNAVAILABLE = "Assinatura nao disponivel no momento."
PRODUCT_UNAVAILABLE = "Produto nao disponivel."
GENERATING = "⏳ Gerando codigo..."
CHECKOUT_FAILED = "❌ Erro ao gerar codigo. Tente novamente."
PURCHASE_NOT_FOUND = "Compra nao encontrada."
TRANSACTION_NOT_FOUND = "Transacao nao encontrada."
WAITING = "⏳ <b>Aguardando...</b>\n\nAinda nao identificamos. Se ja transferiu, aguarde alguns segundos."
EXPIRED = "⏰ <b>Tempo esgotado</b>\n\nO codigo expirou. Tente novamente."
PAYMENT_FAILED = "❌ <b>Pagamento nao aprovado</b>\n\nTente novamente."
PAID = "✅ <b>Pagamento confirmado!</b>\n\nSeu conteudo esta sendo enviado..."
PROVIDER_UNREACHABLE = "⚠️ Nao foi possivel verificar agora. Tente novamente em instantes."
CHECK_DEBOUNCED = "Verificando, aguarde..."
CANCELLED = "❌ Cancelado.\n\nVolte quando quiser!"
LOAD_ERROR = "Erro ao carregar. Tente novamente."
CALLBACK_ERROR = "Erro, tente novamente"
USER_UNKNOWN = "Erro: usuario nao identificado."
HISTORY_EMPTY = "<b>📋 Minhas Compras</b>\n\nVoce ainda nao fez nenhuma compra."


def tier_emoji(tier: str | None) -> str:
    return TIER_EMOJI.get(tier or "", "⭐")


def profile_caption(name: str, username: str, bio: str | None, tier: str | None) -> str:
    return (
        f"{tier_emoji(tier)} <b>{html.escape(name)}</b>\n"
        f"@{html.escape(username)}\n\n"
        f"{html.escape(bio) if bio else ''}"
    )


def packs_header(creator_name: str) -> str:
    return f"<b>📦 Packs de {html.escape(creator_name)}</b>\n\nEscolha um pack para ver detalhes:"


def pack_details(name: str, description: str | None, content_count: int, price: str) -> str:
    return (
        f"<b>📦 {html.escape(name)}</b>\n\n"
        + (f"{html.escape(description)}\n\n" if description else "")
        + (f"📸 <b>{content_count} fotos exclusivas</b>\n" if content_count > 0 else "")
        + f"💰 <b>{price}</b>\n\n"
        "<i>Acesso permanente apos a compra</i>"
    )


def subscription_offer(creator_name: str, description: str | None, price: str, days: int) -> str:
    return (
        f"<b>⭐ Assinatura VIP - {html.escape(creator_name)}</b>\n\n"
        "✅ Acesso a todo conteudo novo\n"
        "✅ Chat privado\n"
        "✅ Conteudo exclusivo para assinantes\n\n"
        + (f"{html.escape(description)}\n\n" if description else "")
        + f"💰 <b>{price}</b> / {days} dias\n\n"
        "<i>Cancele quando quiser</i>"
    )


def checkout(product_name: str, price: str, expires_in_minutes: int, pix_code: str) -> str:
    return (
        "<b>💳 Finalizar Compra</b>\n\n"
        f"📦 {html.escape(product_name)}\n"
        f"💰 <b>{price}</b>\n"
        f"⏰ Expira em {expires_in_minutes} min\n\n"
        f"<b>Codigo Copia e Cola:</b>\n<code>{html.escape(pix_code)}</code>\n\n"
        "👆 Toque para copiar e cole no app do banco"
    )


def history(rows: list[tuple[str, str | None, str, datetime]]) -> str:
    """rows: (product name, creator name, formatted price, created_at)."""
    lines = ["<b>📋 Minhas Compras</b>\n"]
    for idx, (name, creator, price, created_at) in enumerate(rows, start=1):
        lines.append(
            f"{idx}. <b>{html.escape(name)}</b>\n"
            f"   👤 {html.escape(creator or 'N/A')}\n"
            f"   💰 {price} • {created_at.strftime('%d/%m/%Y')}\n"
        )
    return "\n".join(lines)
