"""
Telegram bot using aiogram 3.x
Purchase flow: models -> gallery -> packs / subscription -> checkout (PIX) -> "Já transferi" poll.
Delivery itself runs in the Celery worker once the purchase is paid.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from aiogram import Bot, Dispatcher, F, Router
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.fsm.storage.redis import RedisStorage
from aiogram.types import (
    BotCommand,
    BufferedInputFile,
    CallbackQuery,
    ErrorEvent,
    InputMediaPhoto,
    Message,
)

from pixshop.bot import keyboards, texts
from pixshop.bot.flow import FlowState, parse_callback, parse_start_arg
from pixshop.core.config import settings
from pixshop.core.logging import configure_logging
from pixshop.db.session import get_db_session
from pixshop.models.creator import Creator
from pixshop.services.buyers.service import BuyerIdentity
from pixshop.services.catalog.service import CatalogService
from pixshop.services.delivery.queue import enqueue_delivery
from pixshop.services.idempotency import IdempotencyStore
from pixshop.services.pix import PixGatewayClient, PixProviderError, build_gateway
from pixshop.services.purchases.errors import PaymentNotIssued, ProductUnavailable, PurchaseNotFound
from pixshop.services.purchases.service import PaymentOutcome, PurchaseService, as_utc
from pixshop.services.purchases.states import TransactionStatus
from pixshop.storage.base import PublicUrlStorage, Storage
from pixshop.utils.currency import format_price
from pixshop.utils.pix_card import decode_data_uri

configure_logging()
logger = logging.getLogger("bot")

router = Router()

MEDIA_GROUP_LIMIT = 10
HISTORY_LIMIT = 10


# ===========================================
# Sync helpers (run in a worker thread: DB + PIX gateway)
# ===========================================

@dataclass(frozen=True)
class CheckoutView:
    purchase_id: str
    product_name: str
    price: str
    pix_code: str
    qr_image: str | None
    expires_at: datetime


def _issue_payment(purchase_id: str, gateway: PixGatewayClient) -> CheckoutView:
    with get_db_session() as db:
        svc = PurchaseService(db)
        tx = svc.issue_payment(purchase_id, gateway)
        purchase = svc.get_or_raise(purchase_id)
        return CheckoutView(
            purchase_id=purchase.id,
            product_name=purchase.product_snapshot.get("name", ""),
            price=format_price(purchase.amount, purchase.currency),
            pix_code=tx.pix_code,
            qr_image=tx.pix_qr_image,
            expires_at=as_utc(tx.pix_expires_at),
        )


def _refresh_status(purchase_id: str, telegram_user_id: int, gateway: PixGatewayClient) -> PaymentOutcome:
    with get_db_session() as db:
        svc = PurchaseService(db)
        purchase = svc.get_or_raise(purchase_id)
        if purchase.telegram_user_id != telegram_user_id:
            raise PurchaseNotFound(f"Purchase {purchase_id} not found", purchase_id=purchase_id)
        return svc.refresh_payment_status(purchase_id, gateway)


def _min_price_label(catalog: CatalogService, creator_id: str) -> str | None:
    products = list(catalog.list_packs(creator_id))
    sub = catalog.get_subscription(creator_id)
    if sub is not None:
        products.append(sub)
    if not products:
        return None
    cheapest = min(products, key=lambda p: Decimal(str(p.price)))
    return format_price(cheapest.price, cheapest.currency)


# ===========================================
# Screens
# ===========================================

async def show_models(message: Message) -> None:
    with get_db_session() as db:
        catalog = CatalogService(db)
        rows = []
        for creator in catalog.list_creators():
            price = _min_price_label(catalog, creator.id)
            label = f"{texts.tier_emoji(creator.tier)} {creator.name}"
            if price:
                label += f" • a partir {price}"
            rows.append((label, creator.id))

    if not rows:
        await message.answer(texts.NO_MODELS)
        return
    await message.answer(texts.MODELS_HEADER, parse_mode="HTML", reply_markup=keyboards.models_keyboard(rows))


async def show_profile(message: Message, creator_id: str, content_storage: Storage) -> None:
    """Gallery: N-1 preview photos as an album, the last one with caption and buttons."""
    with get_db_session() as db:
        catalog = CatalogService(db)
        creator = catalog.get_creator(creator_id)
        if creator is None:
            await message.answer(texts.MODEL_NOT_FOUND)
            return
        caption = texts.profile_caption(creator.name, creator.username, creator.bio, creator.tier)
        photos = [content_storage.public_url(p) for p in (creator.preview_photos or [])]
        kb = keyboards.profile_keyboard(
            creator.id,
            has_packs=bool(catalog.list_packs(creator.id)),
            has_subscription=catalog.get_subscription(creator.id) is not None,
            link=creator.referral_link or creator.profile_url,
        )

    if photos:
        head, last = photos[:-1][-MEDIA_GROUP_LIMIT:], photos[-1]
        try:
            if len(head) == 1:
                await message.answer_photo(head[0])
            elif head:
                await message.answer_media_group([InputMediaPhoto(media=p) for p in head])
        except TelegramAPIError as e:
            logger.warning("gallery_send_failed", extra={"error": str(e), "chat_id": message.chat.id})
        try:
            await message.answer_photo(last, caption=caption, parse_mode="HTML", reply_markup=kb)
            return
        except TelegramAPIError as e:
            logger.warning("gallery_cover_failed", extra={"error": str(e), "chat_id": message.chat.id})

    await message.answer(caption, parse_mode="HTML", reply_markup=kb)


async def show_packs(message: Message, creator_id: str) -> None:
    with get_db_session() as db:
        catalog = CatalogService(db)
        creator = catalog.get_creator(creator_id)
        if creator is None:
            await message.answer(texts.MODEL_NOT_FOUND)
            return
        creator_name = creator.name
        rows = [
            (f"📦 {p.name} • {format_price(p.price, p.currency)}", p.id)
            for p in catalog.list_packs(creator_id)
        ]

    if not rows:
        await message.answer(texts.NO_PACKS)
        return
    await message.answer(
        texts.packs_header(creator_name),
        parse_mode="HTML",
        reply_markup=keyboards.packs_keyboard(creator_id, rows),
    )


async def show_pack_details(message: Message, product_id: str, content_storage: Storage) -> None:
    with get_db_session() as db:
        product = CatalogService(db).get_product(product_id)
        if product is None or product.is_subscription:
            await message.answer(texts.PACK_UNAVAILABLE)
            return
        price = format_price(product.price, product.currency)
        caption = texts.pack_details(product.name, product.description, len(product.content_items or []), price)
        kb = keyboards.pack_details_keyboard(product.creator_id, product.id, price)
        preview = product.preview_images[0] if product.preview_images else None

    if preview:
        try:
            await message.answer_photo(
                content_storage.public_url(preview), caption=caption, parse_mode="HTML", reply_markup=kb
            )
            return
        except TelegramAPIError as e:
            logger.warning("pack_preview_failed", extra={"error": str(e), "chat_id": message.chat.id})
    await message.answer(caption, parse_mode="HTML", reply_markup=kb)


async def show_subscription(message: Message, creator_id: str) -> None:
    with get_db_session() as db:
        catalog = CatalogService(db)
        creator = catalog.get_creator(creator_id)
        if creator is None:
            await message.answer(texts.MODEL_NOT_FOUND)
            return
        sub = catalog.get_subscription(creator_id)
        if sub is None:
            await message.answer(texts.SUBSCRIPTION_UNAVAILABLE)
            return
        price = format_price(sub.price, sub.currency)
        text = texts.subscription_offer(
            creator.name, sub.description, price, sub.duration_days or settings.subscription_default_days
        )
        kb = keyboards.subscription_keyboard(creator_id, sub.id, price)
    await message.answer(text, parse_mode="HTML", reply_markup=kb)


async def checkout(
    callback: CallbackQuery,
    product_id: str,
    gateway: PixGatewayClient,
    state: FSMContext,
) -> None:
    """Create the pending purchase, issue the PIX code, show the payment card."""
    message = callback.message
    user = callback.from_user
    if user is None:
        await message.answer(texts.USER_UNKNOWN)
        return

    identity = BuyerIdentity(
        telegram_id=user.id,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        language_code=user.language_code,
    )
    try:
        with get_db_session() as db:
            purchase_id = PurchaseService(db).create_purchase(product_id, identity).id
    except ProductUnavailable:
        await message.answer(texts.PRODUCT_UNAVAILABLE)
        return

    await message.answer(texts.GENERATING)
    try:
        view = await asyncio.to_thread(_issue_payment, purchase_id, gateway)
    except (PixProviderError, ValueError):
        logger.exception("checkout_issue_failed", extra={"purchase_id": purchase_id, "user_id": user.id})
        await message.answer(texts.CHECKOUT_FAILED)
        return

    await state.update_data(purchase_id=purchase_id)
    expires_in = max(1, int((view.expires_at - datetime.now(timezone.utc)).total_seconds() // 60))
    caption = texts.checkout(view.product_name, view.price, expires_in, view.pix_code)
    kb = keyboards.checkout_keyboard(purchase_id)
    logger.info("checkout_shown", extra={"purchase_id": purchase_id, "user_id": user.id})

    if view.qr_image:
        try:
            png = decode_data_uri(view.qr_image)
            if png is not None:
                await message.answer_photo(
                    BufferedInputFile(png, filename="pix.png"), caption=caption, parse_mode="HTML", reply_markup=kb
                )
                return
            if view.qr_image.startswith("http"):
                await message.answer_photo(view.qr_image, caption=caption, parse_mode="HTML", reply_markup=kb)
                return
        except TelegramAPIError as e:
            logger.warning("checkout_qr_failed", extra={"purchase_id": purchase_id, "error": str(e)})
    await message.answer(caption, parse_mode="HTML", reply_markup=kb)


async def check_payment(
    callback: CallbackQuery,
    purchase_id: str,
    gateway: PixGatewayClient,
    idempotency: IdempotencyStore,
) -> None:
    """«Já transferi»: poll the gateway; a paid, undelivered purchase gets its delivery enqueued."""
    message = callback.message
    user_id = callback.from_user.id
    if not idempotency.check_and_set(f"pix_check:{purchase_id}"):
        await callback.answer(texts.CHECK_DEBOUNCED)
        return

    try:
        outcome = await asyncio.to_thread(_refresh_status, purchase_id, user_id, gateway)
    except PurchaseNotFound:
        await message.answer(texts.PURCHASE_NOT_FOUND)
        return
    except PaymentNotIssued:
        await message.answer(texts.TRANSACTION_NOT_FOUND)
        return
    except PixProviderError as e:
        logger.warning("check_payment_provider_error", extra={"purchase_id": purchase_id, "error": str(e)})
        await message.answer(
            texts.PROVIDER_UNREACHABLE, reply_markup=keyboards.checkout_keyboard(purchase_id)
        )
        return

    if outcome.needs_delivery:
        enqueue_delivery(purchase_id)
    if outcome.is_paid:
        await message.answer(texts.PAID, parse_mode="HTML")
    elif outcome.transaction_status == TransactionStatus.EXPIRED:
        await message.answer(texts.EXPIRED, parse_mode="HTML", reply_markup=keyboards.retry_keyboard())
    elif outcome.transaction_status == TransactionStatus.FAILED:
        await message.answer(texts.PAYMENT_FAILED, parse_mode="HTML", reply_markup=keyboards.retry_keyboard())
    else:
        await message.answer(texts.WAITING, parse_mode="HTML", reply_markup=keyboards.checkout_keyboard(purchase_id))


async def show_history(message: Message, telegram_user_id: int) -> None:
    with get_db_session() as db:
        items, _ = PurchaseService(db).user_history(telegram_user_id, limit=HISTORY_LIMIT)
        creator_ids = {p.creator_id for p in items}
        names = {
            c.id: c.name
            for c in db.query(Creator).filter(Creator.id.in_(creator_ids)).all()
        } if creator_ids else {}
        rows = [
            (
                p.product_snapshot.get("name", ""),
                names.get(p.creator_id),
                format_price(p.amount, p.currency),
                as_utc(p.created_at),
            )
            for p in items
        ]

    if not rows:
        await message.answer(texts.HISTORY_EMPTY, parse_mode="HTML", reply_markup=keyboards.browse_keyboard())
        return
    await message.answer(texts.history(rows), parse_mode="HTML", reply_markup=keyboards.browse_keyboard())


# ===========================================
# Handlers
# ===========================================

@router.message(CommandStart())
async def cmd_start(message: Message, content_storage: Storage):
    """Handle /start command. Supports deep link: /start model_<id>."""
    step = parse_start_arg(message.text)
    try:
        if step is not None and step.state is FlowState.PROFILE:
            logger.info("start_deeplink_model", extra={"user_id": message.from_user.id})
            await show_profile(message, step.arg, content_storage)
            return
        await message.answer(texts.WELCOME, parse_mode="HTML", reply_markup=keyboards.welcome_keyboard())
        logger.info("start", extra={"user_id": message.from_user.id})
    except Exception:
        logger.exception("Error in cmd_start", extra={"user_id": message.from_user.id})
        await message.answer(texts.LOAD_ERROR)


@router.message(Command("help"))
async def cmd_help(message: Message):
    await message.answer(texts.HELP, parse_mode="HTML", reply_markup=keyboards.welcome_keyboard())


@router.message(Command("models"))
async def cmd_models(message: Message):
    try:
        await show_models(message)
    except Exception:
        logger.exception("Error in cmd_models", extra={"user_id": message.from_user.id})
        await message.answer(texts.LOAD_ERROR)


@router.message(Command("history"))
async def cmd_history(message: Message):
    try:
        await show_history(message, message.from_user.id)
    except Exception:
        logger.exception("Error in cmd_history", extra={"user_id": message.from_user.id})
        await message.answer(texts.LOAD_ERROR)


@router.callback_query(F.data.func(lambda data: parse_callback(data) is not None))
async def on_flow_callback(
    callback: CallbackQuery,
    state: FSMContext,
    gateway: PixGatewayClient,
    content_storage: Storage,
    idempotency: IdempotencyStore,
):
    """Single dispatcher for every purchase-flow button."""
    step = parse_callback(callback.data)
    message = callback.message
    logger.info("flow_callback", extra={"user_id": callback.from_user.id, "status": step.state.value})
    try:
        if step.state is FlowState.MODELS:
            await show_models(message)
        elif step.state is FlowState.HISTORY:
            await show_history(message, callback.from_user.id)
        elif step.state is FlowState.PROFILE:
            await show_profile(message, step.arg, content_storage)
        elif step.state is FlowState.PACKS:
            await show_packs(message, step.arg)
        elif step.state is FlowState.SUBSCRIPTION:
            await show_subscription(message, step.arg)
        elif step.state is FlowState.PACK_DETAILS:
            await show_pack_details(message, step.arg, content_storage)
        elif step.state is FlowState.CHECKOUT:
            await checkout(callback, step.arg, gateway, state)
        elif step.state is FlowState.CHECK_PAYMENT:
            await check_payment(callback, step.arg, gateway, idempotency)
        elif step.state is FlowState.CANCEL:
            await state.clear()
            await message.answer(texts.CANCELLED, reply_markup=keyboards.browse_keyboard())
        await callback.answer()
    except Exception:
        logger.exception("flow_callback_error", extra={"user_id": callback.from_user.id, "status": step.state.value})
        await callback.answer(texts.CALLBACK_ERROR)


async def on_error(event: ErrorEvent, *args, **kwargs):
    """Global error handler."""
    logger.exception(
        "Error in handler",
        extra={"error": str(event.exception)},
    )


async def main():
    """Start the bot."""
    logger.info("Starting bot...")

    bot = Bot(token=settings.telegram_bot_token)
    gateway = build_gateway()
    logger.info("pix_gateway_ready", extra={"mode": gateway.mode})

    # Redis FSM storage; gateway / storage / idempotency are injected into handlers by name
    dp = Dispatcher(
        storage=RedisStorage.from_url(settings.redis_url),
        gateway=gateway,
        content_storage=PublicUrlStorage(settings.storage_public_url),
        idempotency=IdempotencyStore(),
    )
    dp.errors.register(on_error)
    dp.include_router(router)

    await bot.set_my_commands([
        BotCommand(command="start", description="🏠 Inicio"),
        BotCommand(command="models", description="🔥 Ver conteudo"),
        BotCommand(command="history", description="📋 Minhas compras"),
        BotCommand(command="help", description="❓ Ajuda"),
    ])
    await bot.delete_webhook(drop_pending_updates=True)
    logger.info("Bot started successfully!")

    try:
        await dp.start_polling(bot, allowed_updates=["message", "callback_query"])
    finally:
        gateway.close()
        await bot.session.close()


if __name__ == "__main__":
    asyncio.run(main())
