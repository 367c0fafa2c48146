"""Guided multi-step dialogs (add income, add expense, set limit).

Each dialog is a small state machine stored per ``(telegram user, chat)`` in a
:class:`SessionRegistry`. Handlers feed every inbound reply to
:meth:`DialogEngine.resume`, which validates it against the awaited step and
either asks the next question, saves the entry, or aborts.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Protocol
from uuid import UUID

from ..models.transaction import TransactionType
from ..services.ledger import LedgerStore
from ..utils.timeranges import month_range
from . import texts
from .helpers import clip_text, format_amount, parse_amount

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 255
CATEGORY_MAX_LENGTH = 64

SessionKey = tuple[int, int]


class FlowName(str, Enum):
    ADD_INCOME = "add_income"
    ADD_EXPENSE = "add_expense"
    SET_LIMIT = "set_limit"


class DialogStep(str, Enum):
    INCOME_SOURCE = "income_source"
    INCOME_AMOUNT = "income_amount"
    EXPENSE_TITLE = "expense_title"
    EXPENSE_AMOUNT = "expense_amount"
    EXPENSE_CATEGORY = "expense_category"
    LIMIT_AMOUNT = "limit_amount"


class DialogOutcome(str, Enum):
    AWAITING = "awaiting"
    COMPLETED = "completed"
    ABORTED = "aborted"
    IGNORED = "ignored"


FLOW_STEPS: dict[FlowName, tuple[DialogStep, ...]] = {
    FlowName.ADD_INCOME: (DialogStep.INCOME_SOURCE, DialogStep.INCOME_AMOUNT),
    FlowName.ADD_EXPENSE: (
        DialogStep.EXPENSE_TITLE,
        DialogStep.EXPENSE_AMOUNT,
        DialogStep.EXPENSE_CATEGORY,
    ),
    FlowName.SET_LIMIT: (DialogStep.LIMIT_AMOUNT,),
}

STEP_PROMPTS: dict[DialogStep, str] = {
    DialogStep.INCOME_SOURCE: texts.PROMPT_INCOME_SOURCE,
    DialogStep.INCOME_AMOUNT: texts.PROMPT_INCOME_AMOUNT,
    DialogStep.EXPENSE_TITLE: texts.PROMPT_EXPENSE_TITLE,
    DialogStep.EXPENSE_AMOUNT: texts.PROMPT_EXPENSE_AMOUNT,
    DialogStep.EXPENSE_CATEGORY: texts.PROMPT_EXPENSE_CATEGORY,
    DialogStep.LIMIT_AMOUNT: texts.PROMPT_LIMIT_AMOUNT,
}


class InvalidAnswerError(ValueError):
    """Raised when a reply cannot be accepted for the awaited step."""


def _positive_amount(text: Optional[str]) -> Decimal:
    try:
        amount = parse_amount(text)
    except ValueError as exc:
        raise InvalidAnswerError(str(exc)) from exc
    if amount <= 0:
        raise InvalidAnswerError("Amount must be greater than zero.")
    return amount


# step -> (answer key, parser)
STEP_ANSWERS: dict[DialogStep, tuple[str, Callable[[Optional[str]], Any]]] = {
    DialogStep.INCOME_SOURCE: (
        "title",
        lambda text: clip_text(text, texts.DEFAULT_INCOME_SOURCE, TITLE_MAX_LENGTH),
    ),
    DialogStep.INCOME_AMOUNT: ("amount", _positive_amount),
    DialogStep.EXPENSE_TITLE: (
        "title",
        lambda text: clip_text(text, texts.DEFAULT_EXPENSE_TITLE, TITLE_MAX_LENGTH),
    ),
    DialogStep.EXPENSE_AMOUNT: ("amount", _positive_amount),
    DialogStep.EXPENSE_CATEGORY: (
        "category",
        lambda text: clip_text(text, texts.DEFAULT_EXPENSE_CATEGORY, CATEGORY_MAX_LENGTH),
    ),
    DialogStep.LIMIT_AMOUNT: ("amount", _positive_amount),
}


@dataclass(frozen=True)
class UserIdentity:
    telegram_id: int
    chat_id: int
    first_name: Optional[str] = None
    username: Optional[str] = None

    @property
    def key(self) -> SessionKey:
        return (self.telegram_id, self.chat_id)


class Conversation(Protocol):
    """What a dialog needs from the transport for one inbound update."""

    @property
    def identity(self) -> UserIdentity: ...

    @property
    def text(self) -> Optional[str]: ...

    async def send(self, text: str, **kwargs: Any) -> None: ...


@dataclass
class DialogSession:
    flow: FlowName
    step: DialogStep
    answers: dict[str, Any] = field(default_factory=dict)
    updated_at: float = 0.0

    def next_step(self) -> Optional[DialogStep]:
        steps = FLOW_STEPS[self.flow]
        index = steps.index(self.step)
        if index + 1 < len(steps):
            return steps[index + 1]
        return None


class SessionRegistry:
    """In-memory dialog sessions with one lock per session key.

    Sessions idle for longer than ``ttl_seconds`` are dropped when next looked
    up; ``None`` keeps them until they are answered or cancelled.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[SessionKey, DialogSession] = {}
        self._locks: dict[SessionKey, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, key: object) -> bool:
        return key in self._sessions

    def lock(self, key: SessionKey) -> asyncio.Lock:
        return self._locks.setdefault(key, asyncio.Lock())

    def _expired(self, session: DialogSession) -> bool:
        if self.ttl_seconds is None:
            return False
        return self._clock() - session.updated_at > self.ttl_seconds

    def get(self, key: SessionKey) -> Optional[DialogSession]:
        session = self._sessions.get(key)
        if session is not None and self._expired(session):
            logger.info("Dropping expired %s dialog for %s", session.flow.value, key)
            del self._sessions[key]
            return None
        return session

    def open(self, key: SessionKey, flow: FlowName) -> DialogSession:
        session = DialogSession(flow=flow, step=FLOW_STEPS[flow][0], updated_at=self._clock())
        self._sessions[key] = session
        return session

    def touch(self, session: DialogSession) -> None:
        session.updated_at = self._clock()

    def discard(self, key: SessionKey) -> Optional[DialogSession]:
        return self._sessions.pop(key, None)

    def prune(self) -> int:
        """Drop every expired session; returns how many were removed."""
        expired = [key for key, session in self._sessions.items() if self._expired(session)]
        for key in expired:
            del self._sessions[key]
        return len(expired)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DialogEngine:
    def __init__(
        self,
        store: LedgerStore,
        registry: SessionRegistry,
        *,
        tz: tzinfo | str,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.registry = registry
        self.tz = tz
        self._clock = clock
        self._finishers: dict[FlowName, Callable[[DialogSession, Conversation], Any]] = {
            FlowName.ADD_INCOME: self._save_income,
            FlowName.ADD_EXPENSE: self._save_expense,
            FlowName.SET_LIMIT: self._save_limit,
        }

    async def start(self, conversation: Conversation, flow: FlowName) -> DialogOutcome:
        """Begin ``flow``, replacing any dialog already open for this user and chat."""
        key = conversation.identity.key
        async with self.registry.lock(key):
            self.registry.prune()
            previous = self.registry.discard(key)
            if previous is not None:
                logger.info("Replacing %s dialog for %s", previous.flow.value, key)
            session = self.registry.open(key, flow)
            await conversation.send(STEP_PROMPTS[session.step])
            return DialogOutcome.AWAITING

    async def cancel(self, conversation: Conversation) -> bool:
        key = conversation.identity.key
        async with self.registry.lock(key):
            return self.registry.discard(key) is not None

    async def resume(self, conversation: Conversation) -> DialogOutcome:
        """Feed one reply to the open dialog, if there is one."""
        key = conversation.identity.key
        async with self.registry.lock(key):
            session = self.registry.get(key)
            if session is None:
                return DialogOutcome.IGNORED

            answer_key, parser = STEP_ANSWERS[session.step]
            try:
                session.answers[answer_key] = parser(conversation.text)
            except InvalidAnswerError as exc:
                self.registry.discard(key)
                logger.info("Aborted %s dialog for %s: %s", session.flow.value, key, exc)
                await conversation.send(texts.INVALID_AMOUNT)
                return DialogOutcome.ABORTED

            following = session.next_step()
            if following is not None:
                session.step = following
                self.registry.touch(session)
                await conversation.send(STEP_PROMPTS[following])
                return DialogOutcome.AWAITING

            self.registry.discard(key)
            return await self._finishers[session.flow](session, conversation)

    async def _ensure_user_id(self, identity: UserIdentity) -> UUID:
        user = await self.store.ensure_user(
            identity.telegram_id,
            first_name=identity.first_name,
            username=identity.username,
        )
        return user.id

    async def _save_income(
        self, session: DialogSession, conversation: Conversation
    ) -> DialogOutcome:
        title = session.answers["title"]
        amount: Decimal = session.answers["amount"]
        try:
            user_id = await self._ensure_user_id(conversation.identity)
            await self.store.create_transaction(
                user_id,
                TransactionType.INCOME,
                title,
                amount,
                texts.INCOME_CATEGORY,
                occurred_at=self._clock(),
            )
        except Exception:
            logger.exception("Failed to save income for %s", conversation.identity.key)
            await conversation.send(texts.GENERIC_FAILURE)
            return DialogOutcome.ABORTED

        await conversation.send(
            texts.INCOME_SAVED.format(source=title, amount=format_amount(amount))
        )
        return DialogOutcome.COMPLETED

    async def _save_expense(
        self, session: DialogSession, conversation: Conversation
    ) -> DialogOutcome:
        title = session.answers["title"]
        amount: Decimal = session.answers["amount"]
        category = session.answers["category"]
        now = self._clock()
        try:
            user_id = await self._ensure_user_id(conversation.identity)
            await self.store.create_transaction(
                user_id,
                TransactionType.EXPENSE,
                title,
                amount,
                category,
                occurred_at=now,
            )
        except Exception:
            logger.exception("Failed to save expense for %s", conversation.identity.key)
            await conversation.send(texts.GENERIC_FAILURE)
            return DialogOutcome.ABORTED

        await conversation.send(
            texts.EXPENSE_SAVED.format(
                title=title, amount=format_amount(amount), category=category
            )
        )
        try:
            await self._notify_budget(user_id, conversation, now)
        except Exception:
            # The expense is already committed at this point.
            logger.exception("Monthly budget check failed for %s", conversation.identity.key)
        return DialogOutcome.COMPLETED

    async def _notify_budget(
        self, user_id: UUID, conversation: Conversation, now: datetime
    ) -> None:
        date_range = month_range(now, self.tz)
        results = await asyncio.gather(
            self.store.find_limit(user_id),
            self.store.sum_amount(TransactionType.EXPENSE, user_id=user_id, date_range=date_range),
            self.store.sum_amount(TransactionType.INCOME, user_id=user_id, date_range=date_range),
            return_exceptions=True,
        )
        # Every query has finished here; surface the first failure.
        for result in results:
            if isinstance(result, BaseException):
                raise result
        limit, total_expense, total_income = results
        total_expense = total_expense or Decimal("0")
        total_income = total_income or Decimal("0")

        if limit is not None and total_expense > limit.amount:
            await conversation.send(
                texts.LIMIT_EXCEEDED.format(
                    limit=format_amount(limit.amount), total=format_amount(total_expense)
                )
            )

        if total_expense > total_income:
            await conversation.send(
                texts.OVER_BUDGET.format(
                    expense=format_amount(total_expense),
                    income=format_amount(total_income),
                    diff=format_amount(total_expense - total_income),
                )
            )
        else:
            await conversation.send(
                texts.POSITIVE_BALANCE.format(diff=format_amount(total_income - total_expense))
            )

    async def _save_limit(
        self, session: DialogSession, conversation: Conversation
    ) -> DialogOutcome:
        amount: Decimal = session.answers["amount"]
        try:
            user_id = await self._ensure_user_id(conversation.identity)
            limit = await self.store.set_limit(user_id, amount)
        except Exception:
            logger.exception("Failed to save monthly limit for %s", conversation.identity.key)
            await conversation.send(texts.GENERIC_FAILURE)
            return DialogOutcome.ABORTED

        await conversation.send(texts.LIMIT_SAVED.format(amount=format_amount(limit.amount)))
        return DialogOutcome.COMPLETED
