"""User-facing reply texts (Uzbek)."""

import textwrap

WELCOME = "Hisob-Kitob telegram botiga xush kelibsiz\nPastdagi buyruqlardan birini tanlang"

HELP = textwrap.dedent(
    """
    📚 Yordam — Finance Bot

    Ushbu bot bilan siz oylik va kundalik daromad va xarajatlarni yozib borishingiz mumkin.

    Asosiy buyruqlar:
    /start — Asosiy menyuni ko'rsatadi
    /help — Ushbu yordam xabari
    /add_income — Yangi daromad qo'shish (bot sizdan manba va summani so'raydi)
    /add_expense — Yangi xarajat qo'shish (bot sizdan nom, summa va kategoriya so'raydi)
    /report_today — Bugungi hisobot (daromad / xarajat)
    /report_month — Oylik hisobot (daromad / xarajat)
    /balance — Balansni ko'rish
    /set_limit — Oylik xarajat limitini o'rnatish
    /cancel — Joriy jarayonni bekor qilish

    🔔 Eslatma:
    • Bot yangi xarajat qo'shilganda avtomatik tekshiradi — agar shu oy xarajatlaringiz daromaddan oshsa, ogohlantiradi.
    """
).strip()

MENU_ADD_INCOME = "➕ Kirim qo'shish"
MENU_ADD_EXPENSE = "➖ Chiqim qo'shish"
MENU_REPORT_TODAY = "📊 Kunlik xarajat"
MENU_REPORT_MONTH = "📅 Oylik xarajat"

PROMPT_INCOME_SOURCE = "Daromad manbayini kiriting (masalan ish haqi):"
PROMPT_INCOME_AMOUNT = "Summasini kiriting (raqam, masalan, 500000)"
PROMPT_EXPENSE_TITLE = "Xarajat nomini kiriting (masalan: non, transport):"
PROMPT_EXPENSE_AMOUNT = "Summasini kiriting (raqam, masalan: 20000):"
PROMPT_EXPENSE_CATEGORY = "Kategoriya kiriting (masalan: oziq-ovqat, transport):"
PROMPT_LIMIT_AMOUNT = "Oylik xarajat limitini kiriting (raqam, masalan: 1000000):"

DEFAULT_INCOME_SOURCE = "Daromad"
DEFAULT_EXPENSE_TITLE = "xarajat"
DEFAULT_EXPENSE_CATEGORY = "other"
INCOME_CATEGORY = "income"

INVALID_AMOUNT = "Iltimos haqiqiy raqam kiriting. Jarayon bekor qilindi."
CANCELLED = "Jarayon bekor qilindi."
NOTHING_TO_CANCEL = "Bekor qilinadigan jarayon yo'q."
GENERIC_FAILURE = "Xatolik yuz berdi. Iltimos keyinroq qayta urinib ko'ring."
UNKNOWN_USER = "Telegram foydalanuvchingizni aniqlab bo'lmadi."

INCOME_SAVED = "Daromad saqlandi: {source} - {amount}"
EXPENSE_SAVED = "Xarajat saqlandi: {title} — {amount} so'm, kategoriya: {category}"
LIMIT_SAVED = "Oylik limit o'rnatildi: {amount} so'm"
LIMIT_EXCEEDED = "⚠️ Diqqat! Sizning oy limitingiz ({limit}) oshdi. Jami xarajat: {total}."
OVER_BUDGET = (
    "⚠️ Eslatma: shu oy jami xarajatlaringiz ({expense}) jami daromadingizdan ({income}) "
    "{diff} so'm ko'p. Iltimos byudjetni tekshiring."
)
POSITIVE_BALANCE = "✅ Hozirgi oylik balans ijobiy: {diff} so'm qolgan."

REPORT_TODAY = "📊 Bugungi hisobot ({label}):\n\nKirim: {income}\nChiqim: {expense}"
REPORT_MONTH = "📅 Oylik hisobot ({label}):\n\nKirim: {income}\nChiqim: {expense}"
REPORT_BALANCE = (
    "💰 Sizning balansingiz:\n\nJami kirim: {income}\nJami chiqim: {expense}\nBalans: {balance}"
)
