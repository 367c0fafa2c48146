from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from unittest import IsolatedAsyncioTestCase
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID
from zoneinfo import ZoneInfo

from telegram import Chat, InaccessibleMessage
from telegram.error import RetryAfter

from ledgerbot.models.transaction import TransactionType
from ledgerbot.telegram import bot, texts
from ledgerbot.telegram.dialogs import DialogEngine, SessionRegistry

USER_ID = UUID("11111111-2222-3333-4444-555555555555")


class DummyMessage:
    """Minimal stand-in for a Telegram message used in handlers."""

    def __init__(self, text: str | None = None, *, chat_id: int = 528101001) -> None:
        self.text = text
        self.chat_id = chat_id
        self.reply_text = AsyncMock()


class DummyCallbackQuery:
    def __init__(self, data: str, *, message=None) -> None:
        self.data = data
        self.message = message
        self.answer = AsyncMock()


def _telegram_user() -> SimpleNamespace:
    return SimpleNamespace(id=528101001, first_name="Aziz", username="aziz")


def _update(message: DummyMessage, *, user=None, callback_query=None) -> SimpleNamespace:
    return SimpleNamespace(
        effective_message=message,
        effective_user=user,
        callback_query=callback_query,
    )


def _store(income: str = "0", expense: str = "0") -> AsyncMock:
    store = AsyncMock()
    store.ensure_user.return_value = SimpleNamespace(id=USER_ID)
    store.find_limit.return_value = None

    async def _sum(kind, *, user_id=None, date_range=None):
        return Decimal(income) if kind is TransactionType.INCOME else Decimal(expense)

    store.sum_amount.side_effect = _sum
    return store


class TelegramBotTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.store = _store(income="1500", expense="250.5")
        self.dialogs = DialogEngine(self.store, SessionRegistry(), tz=ZoneInfo("Asia/Tashkent"))
        self.context = SimpleNamespace(
            application=SimpleNamespace(
                bot_data={
                    "dialogs": self.dialogs,
                    "store": self.store,
                    "timezone": ZoneInfo("Asia/Tashkent"),
                }
            ),
        )

    async def test_start_shows_main_menu(self) -> None:
        message = DummyMessage("/start")

        await bot.start(_update(message, user=_telegram_user()), self.context)

        message.reply_text.assert_awaited_once_with(texts.WELCOME, reply_markup=bot.MAIN_MENU)
        callbacks = [row[0].callback_data for row in bot.MAIN_MENU.inline_keyboard]
        self.assertEqual(
            callbacks,
            [
                bot.CALLBACK_ADD_INCOME,
                bot.CALLBACK_ADD_EXPENSE,
                bot.CALLBACK_REPORT_TODAY,
                bot.CALLBACK_REPORT_MONTH,
            ],
        )

    async def test_help_lists_commands(self) -> None:
        message = DummyMessage("/help")

        await bot.help_command(_update(message, user=_telegram_user()), self.context)

        text = message.reply_text.await_args.args[0]
        for command in ("/add_income", "/add_expense", "/report_today", "/report_month", "/balance"):
            self.assertIn(command, text)

    async def test_add_income_command_runs_dialog(self) -> None:
        user = _telegram_user()
        command = DummyMessage("/add_income")

        await bot.add_income(_update(command, user=user), self.context)
        command.reply_text.assert_awaited_once_with(texts.PROMPT_INCOME_SOURCE)

        await bot.dialog_reply(_update(DummyMessage("ish haqi"), user=user), self.context)
        reply = DummyMessage("500000")
        await bot.dialog_reply(_update(reply, user=user), self.context)

        self.store.ensure_user.assert_awaited_once_with(528101001, first_name="Aziz", username="aziz")
        self.store.create_transaction.assert_awaited_once()
        args = self.store.create_transaction.await_args.args
        self.assertEqual(args[1:], (TransactionType.INCOME, "ish haqi", Decimal("500000.00"), "income"))
        self.assertIn("500000.00", reply.reply_text.await_args.args[0])

    async def test_plain_text_without_dialog_is_ignored(self) -> None:
        message = DummyMessage("salom")

        await bot.dialog_reply(_update(message, user=_telegram_user()), self.context)

        message.reply_text.assert_not_awaited()

    async def test_flow_without_user_cannot_start(self) -> None:
        message = DummyMessage("/add_expense")

        await bot.add_expense(_update(message), self.context)

        message.reply_text.assert_awaited_once_with(texts.UNKNOWN_USER)

    async def test_cancel_reports_whether_a_dialog_was_open(self) -> None:
        user = _telegram_user()
        await bot.set_limit(_update(DummyMessage("/set_limit"), user=user), self.context)

        first = DummyMessage("/cancel")
        await bot.cancel(_update(first, user=user), self.context)
        second = DummyMessage("/cancel")
        await bot.cancel(_update(second, user=user), self.context)

        first.reply_text.assert_awaited_once_with(texts.CANCELLED)
        second.reply_text.assert_awaited_once_with(texts.NOTHING_TO_CANCEL)

    async def test_report_today_for_user(self) -> None:
        message = DummyMessage("/report_today")

        await bot.report_today(_update(message, user=_telegram_user()), self.context)

        self.store.ensure_user.assert_awaited_once()
        for call in self.store.sum_amount.await_args_list:
            self.assertEqual(call.kwargs["user_id"], USER_ID)
            self.assertIsNotNone(call.kwargs["date_range"])
        text = message.reply_text.await_args.args[0]
        self.assertIn("1500.00", text)
        self.assertIn("250.50", text)

    async def test_text_report_without_user_aggregates_all_users(self) -> None:
        message = DummyMessage("/report_month")

        with self.assertLogs("ledgerbot.telegram.bot", level="WARNING"):
            await bot.report_month(_update(message), self.context)

        self.store.ensure_user.assert_not_awaited()
        for call in self.store.sum_amount.await_args_list:
            self.assertIsNone(call.kwargs["user_id"])
        message.reply_text.assert_awaited_once()

    async def test_balance_without_user_is_refused(self) -> None:
        message = DummyMessage("/balance")

        await bot.balance(_update(message), self.context)

        message.reply_text.assert_awaited_once_with(texts.UNKNOWN_USER)
        self.store.sum_amount.assert_not_awaited()

    async def test_balance_for_user(self) -> None:
        message = DummyMessage("/balance")

        await bot.balance(_update(message, user=_telegram_user()), self.context)

        text = message.reply_text.await_args.args[0]
        self.assertEqual(
            text, texts.REPORT_BALANCE.format(income="1500.00", expense="250.50", balance="1249.50")
        )

    async def test_report_failure_replies_with_generic_error(self) -> None:
        self.store.sum_amount.side_effect = RuntimeError("database down")
        message = DummyMessage("/report_today")

        with self.assertLogs("ledgerbot.telegram.bot", level="ERROR"):
            await bot.report_today(_update(message, user=_telegram_user()), self.context)

        message.reply_text.assert_awaited_once_with(texts.GENERIC_FAILURE)

    async def test_menu_button_sends_month_report(self) -> None:
        message = DummyMessage()
        query = DummyCallbackQuery(bot.CALLBACK_REPORT_MONTH, message=message)

        await bot.menu_callback(
            _update(message, user=_telegram_user(), callback_query=query), self.context
        )

        query.answer.assert_awaited_once()
        self.store.ensure_user.assert_awaited_once()
        self.assertTrue(message.reply_text.await_args.args[0].startswith("📅"))

    async def test_menu_button_starts_expense_dialog(self) -> None:
        message = DummyMessage()
        query = DummyCallbackQuery(bot.CALLBACK_ADD_EXPENSE, message=message)

        await bot.menu_callback(
            _update(message, user=_telegram_user(), callback_query=query), self.context
        )

        message.reply_text.assert_awaited_once_with(texts.PROMPT_EXPENSE_TITLE)

    async def test_menu_report_button_requires_user(self) -> None:
        message = DummyMessage()
        query = DummyCallbackQuery(bot.CALLBACK_REPORT_TODAY, message=message)

        await bot.menu_callback(_update(message, callback_query=query), self.context)

        message.reply_text.assert_awaited_once_with(texts.UNKNOWN_USER)

    def _stale_menu_update(self, data: str) -> SimpleNamespace:
        message = InaccessibleMessage(chat=Chat(id=777, type=Chat.PRIVATE), message_id=5)
        query = DummyCallbackQuery(data, message=message)
        return _update(message, user=_telegram_user(), callback_query=query)

    async def test_button_on_inaccessible_message_starts_dialog(self) -> None:
        self.context.bot = AsyncMock()

        await bot.menu_callback(self._stale_menu_update(bot.CALLBACK_ADD_INCOME), self.context)

        self.context.bot.send_message.assert_awaited_once_with(
            chat_id=777, text=texts.PROMPT_INCOME_SOURCE
        )
        self.assertIn((528101001, 777), self.dialogs.registry)

    async def test_button_on_inaccessible_message_sends_report(self) -> None:
        self.context.bot = AsyncMock()

        await bot.menu_callback(self._stale_menu_update(bot.CALLBACK_REPORT_TODAY), self.context)

        self.context.bot.send_message.assert_awaited_once()
        kwargs = self.context.bot.send_message.await_args.kwargs
        self.assertEqual(kwargs["chat_id"], 777)
        self.assertIn("1500.00", kwargs["text"])

    async def test_error_handler_notifies_user(self) -> None:
        message = DummyMessage("boom")
        context = SimpleNamespace(error=RuntimeError("boom"))

        with self.assertLogs("ledgerbot.telegram.bot", level="ERROR"):
            await bot.on_error(_update(message), context)

        message.reply_text.assert_awaited_once_with(texts.GENERIC_FAILURE)


class WebhookLifecycleTests(IsolatedAsyncioTestCase):
    def tearDown(self) -> None:
        bot._application = None

    async def test_register_webhook_skips_when_already_set(self) -> None:
        telegram_bot = AsyncMock()
        telegram_bot.get_webhook_info.return_value = SimpleNamespace(
            url="https://bot.example.com/webhook/secret"
        )

        await bot.register_webhook(telegram_bot, "https://bot.example.com/webhook/secret")

        telegram_bot.set_webhook.assert_not_awaited()

    async def test_register_webhook_sets_new_url(self) -> None:
        telegram_bot = AsyncMock()
        telegram_bot.get_webhook_info.return_value = SimpleNamespace(url="")

        await bot.register_webhook(telegram_bot, "https://bot.example.com/webhook/secret")

        telegram_bot.set_webhook.assert_awaited_once_with(
            url="https://bot.example.com/webhook/secret", allowed_updates=bot.ALLOWED_UPDATES
        )

    async def test_register_webhook_retries_once_when_rate_limited(self) -> None:
        telegram_bot = AsyncMock()
        telegram_bot.get_webhook_info.return_value = SimpleNamespace(url="")
        telegram_bot.set_webhook.side_effect = [RetryAfter(3), True]

        with patch("ledgerbot.telegram.bot.asyncio.sleep", new_callable=AsyncMock) as sleep_mock:
            await bot.register_webhook(telegram_bot, "https://bot.example.com/webhook/secret")

        sleep_mock.assert_awaited_once_with(3.0)
        self.assertEqual(telegram_bot.set_webhook.await_count, 2)

    async def test_handle_update_requires_initialised_bot(self) -> None:
        with self.assertRaises(RuntimeError):
            await bot.handle_update({"update_id": 1})

    async def test_handle_update_processes_payload(self) -> None:
        application = MagicMock()
        application.process_update = AsyncMock()
        bot._application = application

        with patch("ledgerbot.telegram.bot.Update.de_json", return_value="parsed") as de_json:
            await bot.handle_update({"update_id": 7})

        de_json.assert_called_once_with({"update_id": 7}, application.bot)
        application.process_update.assert_awaited_once_with("parsed")

    async def test_shutdown_deletes_webhook_and_stops(self) -> None:
        application = MagicMock()
        application.bot.delete_webhook = AsyncMock()
        application.stop = AsyncMock()
        application.shutdown = AsyncMock()
        bot._application = application

        await bot.shutdown_bot()

        application.bot.delete_webhook.assert_awaited_once()
        application.stop.assert_awaited_once()
        application.shutdown.assert_awaited_once()
        self.assertIsNone(bot._application)

    async def test_shutdown_continues_when_delete_webhook_fails(self) -> None:
        application = MagicMock()
        application.bot.delete_webhook = AsyncMock(side_effect=RuntimeError("network"))
        application.stop = AsyncMock()
        application.shutdown = AsyncMock()
        bot._application = application

        with self.assertLogs("ledgerbot.telegram.bot", level="WARNING"):
            await bot.shutdown_bot()

        application.shutdown.assert_awaited_once()

    def _settings(self, *, register: bool) -> SimpleNamespace:
        return SimpleNamespace(
            telegram_bot_token="123:abc",
            tzinfo=ZoneInfo("Asia/Tashkent"),
            dialog_session_ttl_seconds=None,
            telegram_register_webhook_on_start=register,
            full_webhook_url="https://bot.example.com/webhook/finance-bot-secret",
        )

    async def test_init_bot_registers_commands_and_webhook(self) -> None:
        application = MagicMock()
        application.initialize = AsyncMock()
        application.start = AsyncMock()
        application.bot.set_my_commands = AsyncMock()

        with patch("ledgerbot.telegram.bot.get_settings", return_value=self._settings(register=True)), patch(
            "ledgerbot.telegram.bot._create_application", return_value=application
        ), patch("ledgerbot.telegram.bot.register_webhook", new_callable=AsyncMock) as register_mock:
            await bot.init_bot()

        application.bot.set_my_commands.assert_awaited_once_with(bot.BOT_COMMANDS)
        register_mock.assert_awaited_once_with(
            application.bot, "https://bot.example.com/webhook/finance-bot-secret"
        )
        self.assertIs(bot._application, application)

    async def test_init_bot_failure_leaves_bot_disabled(self) -> None:
        application = MagicMock()
        application.initialize = AsyncMock(side_effect=RuntimeError("invalid token"))
        application.shutdown = AsyncMock()

        with patch("ledgerbot.telegram.bot.get_settings", return_value=self._settings(register=False)), patch(
            "ledgerbot.telegram.bot._create_application", return_value=application
        ), self.assertLogs("ledgerbot.telegram.bot", level="ERROR"):
            await bot.init_bot()

        application.shutdown.assert_awaited_once()
        self.assertIsNone(bot._application)
