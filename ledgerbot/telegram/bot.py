from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from telegram import (
    Bot,
    BotCommand,
    InaccessibleMessage,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    Update,
)
from telegram.error import RetryAfter
from telegram.ext import (
    AIORateLimiter,
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from ..config import get_settings
from ..db import SessionLocal
from ..services.ledger import LedgerStore
from ..services.reports import ReportPeriod, build_report
from . import texts
from .dialogs import DialogEngine, FlowName, SessionRegistry, UserIdentity
from .helpers import format_report

logger = logging.getLogger(__name__)

ALLOWED_UPDATES = ["message", "callback_query"]

CALLBACK_ADD_INCOME = "add_income"
CALLBACK_ADD_EXPENSE = "add_expense"
CALLBACK_REPORT_TODAY = "report_today"
CALLBACK_REPORT_MONTH = "report_month"
MENU_CALLBACK_PATTERN = (
    f"^({CALLBACK_ADD_INCOME}|{CALLBACK_ADD_EXPENSE}|{CALLBACK_REPORT_TODAY}|{CALLBACK_REPORT_MONTH})$"
)

CALLBACK_FLOWS = {
    CALLBACK_ADD_INCOME: FlowName.ADD_INCOME,
    CALLBACK_ADD_EXPENSE: FlowName.ADD_EXPENSE,
}
CALLBACK_REPORTS = {
    CALLBACK_REPORT_TODAY: ReportPeriod.TODAY,
    CALLBACK_REPORT_MONTH: ReportPeriod.THIS_MONTH,
}

MAIN_MENU = InlineKeyboardMarkup(
    [
        [InlineKeyboardButton(texts.MENU_ADD_INCOME, callback_data=CALLBACK_ADD_INCOME)],
        [InlineKeyboardButton(texts.MENU_ADD_EXPENSE, callback_data=CALLBACK_ADD_EXPENSE)],
        [InlineKeyboardButton(texts.MENU_REPORT_TODAY, callback_data=CALLBACK_REPORT_TODAY)],
        [InlineKeyboardButton(texts.MENU_REPORT_MONTH, callback_data=CALLBACK_REPORT_MONTH)],
    ]
)

BOT_COMMANDS = [
    BotCommand("start", "Asosiy menyu"),
    BotCommand("help", "Yordam"),
    BotCommand("add_income", "Daromad qo'shish"),
    BotCommand("add_expense", "Xarajat qo'shish"),
    BotCommand("report_today", "Bugungi hisobot"),
    BotCommand("report_month", "Oylik hisobot"),
    BotCommand("balance", "Balans"),
    BotCommand("set_limit", "Oylik limit"),
    BotCommand("cancel", "Jarayonni bekor qilish"),
]


class TelegramConversation:
    """Adapts one Telegram message to the dialog ``Conversation`` interface."""

    def __init__(self, message: Any, user: Any, bot: Optional[Bot] = None) -> None:
        self._message = message
        self._bot = bot
        self._identity = UserIdentity(
            telegram_id=user.id,
            chat_id=getattr(message, "chat_id", None)
            or getattr(getattr(message, "chat", None), "id", None)
            or user.id,
            first_name=getattr(user, "first_name", None),
            username=getattr(user, "username", None),
        )

    @property
    def identity(self) -> UserIdentity:
        return self._identity

    @property
    def text(self) -> Optional[str]:
        return getattr(self._message, "text", None)

    async def send(self, text: str, **kwargs: Any) -> None:
        await _reply_to(self._message, self._bot, text, **kwargs)


async def _reply_to(message: Any, bot: Optional[Bot], text: str, **kwargs: Any) -> None:
    # Buttons on old menus arrive with a message the bot can no longer reply to.
    if isinstance(message, InaccessibleMessage):
        if bot is None:
            logger.warning("Cannot reply in chat %s: message is inaccessible", message.chat.id)
            return
        await bot.send_message(chat_id=message.chat.id, text=text, **kwargs)
        return
    await message.reply_text(text, **kwargs)


async def _reply(
    update: object, context: ContextTypes.DEFAULT_TYPE, text: str, **kwargs: Any
) -> None:
    message = getattr(update, "effective_message", None)
    if message is None:
        return
    await _reply_to(message, getattr(context, "bot", None), text, **kwargs)


def _conversation(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> TelegramConversation | None:
    message = getattr(update, "effective_message", None)
    user = getattr(update, "effective_user", None)
    if message is None or user is None:
        return None
    return TelegramConversation(message, user, getattr(context, "bot", None))


def _dialogs(context: ContextTypes.DEFAULT_TYPE) -> DialogEngine:
    return context.application.bot_data["dialogs"]


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _reply(update, context, texts.WELCOME, reply_markup=MAIN_MENU)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _reply(update, context, texts.HELP)


async def _start_flow(
    update: Update, context: ContextTypes.DEFAULT_TYPE, flow: FlowName
) -> None:
    conversation = _conversation(update, context)
    if conversation is None:
        await _reply(update, context, texts.UNKNOWN_USER)
        return
    await _dialogs(context).start(conversation, flow)


async def add_income(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _start_flow(update, context, FlowName.ADD_INCOME)


async def add_expense(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _start_flow(update, context, FlowName.ADD_EXPENSE)


async def set_limit(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _start_flow(update, context, FlowName.SET_LIMIT)


async def cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    conversation = _conversation(update, context)
    if conversation is None:
        return
    if await _dialogs(context).cancel(conversation):
        await conversation.send(texts.CANCELLED)
    else:
        await conversation.send(texts.NOTHING_TO_CANCEL)


async def dialog_reply(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Route plain messages to the user's open dialog; others are ignored."""
    conversation = _conversation(update, context)
    if conversation is None:
        return
    await _dialogs(context).resume(conversation)


async def _send_report(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    period: ReportPeriod,
    *,
    require_identity: bool,
) -> None:
    message = update.effective_message
    if message is None:
        return
    bot_data = context.application.bot_data
    store: LedgerStore = bot_data["store"]
    tele_user = update.effective_user

    try:
        user_id = None
        if tele_user is not None:
            user = await store.ensure_user(
                tele_user.id,
                first_name=getattr(tele_user, "first_name", None),
                username=getattr(tele_user, "username", None),
            )
            user_id = user.id
        elif require_identity:
            await _reply(update, context, texts.UNKNOWN_USER)
            return
        else:
            logger.warning(
                "Report %s requested without a Telegram user; totals cover all users.",
                period.value,
            )

        summary = await build_report(
            store,
            period,
            user_id=user_id,
            now=datetime.now(timezone.utc),
            tz=bot_data["timezone"],
        )
    except Exception:
        logger.exception("Failed to build %s report", period.value)
        await _reply(update, context, texts.GENERIC_FAILURE)
        return

    await _reply(update, context, format_report(summary))


async def report_today(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _send_report(update, context, ReportPeriod.TODAY, require_identity=False)


async def report_month(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _send_report(update, context, ReportPeriod.THIS_MONTH, require_identity=False)


async def balance(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _send_report(update, context, ReportPeriod.ALL_TIME, require_identity=True)


async def menu_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if not query:
        return
    await query.answer()
    data = query.data or ""
    if data in CALLBACK_FLOWS:
        await _start_flow(update, context, CALLBACK_FLOWS[data])
    elif data in CALLBACK_REPORTS:
        await _send_report(update, context, CALLBACK_REPORTS[data], require_identity=True)


async def on_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Unhandled error while processing update", exc_info=context.error)
    try:
        await _reply(update, context, texts.GENERIC_FAILURE)
    except Exception:
        logger.exception("Failed to notify user about the error.")


def _create_application(token: str, engine: DialogEngine, store: LedgerStore, tz: Any) -> Application:
    application = (
        Application.builder()
        .token(token)
        .updater(None)
        .rate_limiter(AIORateLimiter())
        .build()
    )
    application.bot_data["dialogs"] = engine
    application.bot_data["store"] = store
    application.bot_data["timezone"] = tz
    application.add_handler(CommandHandler("start", start))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("add_income", add_income))
    application.add_handler(CommandHandler("add_expense", add_expense))
    application.add_handler(CommandHandler("set_limit", set_limit))
    application.add_handler(CommandHandler("cancel", cancel))
    application.add_handler(CommandHandler("report_today", report_today))
    application.add_handler(CommandHandler("report_month", report_month))
    application.add_handler(CommandHandler("balance", balance))
    application.add_handler(CallbackQueryHandler(menu_callback, pattern=MENU_CALLBACK_PATTERN))
    application.add_handler(
        MessageHandler(filters.UpdateType.MESSAGE & ~filters.COMMAND, dialog_reply)
    )
    application.add_error_handler(on_error)
    return application


def _retry_after_seconds(exc: RetryAfter) -> float:
    delay = exc.retry_after
    if isinstance(delay, timedelta):
        return delay.total_seconds()
    return float(delay)


async def register_webhook(bot: Bot, url: str) -> None:
    """Point Telegram at ``url`` unless it already is; one retry when rate-limited."""
    info = await bot.get_webhook_info()
    if info.url == url:
        logger.info("Telegram webhook already set to %s", url)
        return
    try:
        await bot.set_webhook(url=url, allowed_updates=ALLOWED_UPDATES)
    except RetryAfter as exc:
        delay = _retry_after_seconds(exc)
        logger.warning("setWebhook rate-limited; retrying in %.1f seconds", delay)
        await asyncio.sleep(delay)
        await bot.set_webhook(url=url, allowed_updates=ALLOWED_UPDATES)
    logger.info("Telegram webhook configured at %s", url)


_application: Application | None = None
_lock = asyncio.Lock()


async def init_bot() -> None:
    """Initialise the Telegram application and register the webhook."""
    settings = get_settings()
    async with _lock:
        global _application
        if _application is not None:
            return

        store = LedgerStore(SessionLocal)
        registry = SessionRegistry(ttl_seconds=settings.dialog_session_ttl_seconds)
        engine = DialogEngine(store, registry, tz=settings.tzinfo)
        application = _create_application(settings.telegram_bot_token, engine, store, settings.tzinfo)

        try:
            await application.initialize()
            await application.start()
        except Exception:
            logger.exception("Failed to initialise Telegram bot; bot disabled for this run.")
            await application.shutdown()
            return
        try:
            await application.bot.set_my_commands(BOT_COMMANDS)
        except Exception:
            logger.exception("Failed to set Telegram command list.")

        if settings.telegram_register_webhook_on_start:
            try:
                await register_webhook(application.bot, settings.full_webhook_url)
            except Exception:
                logger.exception("Failed to register Telegram webhook; serving with the current one.")

        _application = application


async def handle_update(payload: dict[str, Any]) -> None:
    """Process a Telegram update forwarded by FastAPI."""
    async with _lock:
        if _application is None:
            raise RuntimeError("Telegram bot is not initialised.")
        application = _application
    update = Update.de_json(payload, application.bot)
    await application.process_update(update)


async def shutdown_bot() -> None:
    """Remove the webhook and tear down the Telegram application."""
    async with _lock:
        global _application
        if _application is None:
            return
        try:
            await _application.bot.delete_webhook()
            logger.info("Telegram webhook removed.")
        except Exception as exc:
            logger.warning("deleteWebhook failed: %s", exc)
        await _application.stop()
        await _application.shutdown()
        _application = None
