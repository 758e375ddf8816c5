"""Buyer-facing delivery texts (pt-BR, HTML parse mode)."""
import html


def access_released(product_name: str, creator_name: str | None) -> str:
    return (
        "🎉 <b>Acesso Liberado!</b>\n\n"
        f"📦 {html.escape(product_name)}\n"
        + (f"👤 {html.escape(creator_name)}\n" if creator_name else "")
        + "\n<i>Seu conteudo exclusivo esta logo abaixo:</i>"
    )


def photos_sent(count: int) -> str:
    return f"✅ <b>{count} fotos enviadas!</b>\n\nAproveite seu conteudo exclusivo."


def no_content() -> str:
    return "✅ Compra confirmada!\n\nO conteudo sera enviado em breve."


def subscription_until(expires_label: str) -> str:
    return f"⭐ Sua assinatura vale ate <b>{expires_label}</b>."
