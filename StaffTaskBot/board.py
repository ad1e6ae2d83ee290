"""
TaskBoard - точка входа ядра для одного вошедшего сотрудника.

Держит страницу назначений, статистику, реферальный код и живые таймеры.
Команды: request_transition, refresh, change_filter, change_page, share_referral.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Awaitable, Callable, Dict, Hashable, Mapping, Optional, Union

import config
from api_client import SchedulerAPI
from countdown import Countdown, CountdownTicker, deadline_for
from errors import ApiError, Conflict, InvalidTransition, LoadError, StaffTaskBotError, Unauthorized
from models import Assignment, AssignmentStatus, StaffSession, Statistics
from referrals import ReferralTracker
from sharing import ShareChannel, ShareMode, SharePayload, build_share_payload
from store import AssignmentStore
from task_stats import compute_statistics
from transitions import transition
from utils import status_label, utcnow

logger = logging.getLogger(__name__)

CountdownListener = Callable[[Mapping[Hashable, Countdown]], Union[None, Awaitable[None]]]


@dataclass
class TransitionOutcome:
    """Результат смены статуса. Ошибка - значение, а не исключение."""
    success: bool
    assignment: Optional[Assignment]
    message: str
    error: Optional[StaffTaskBotError] = None


class TaskBoard:
    def __init__(self,
                 session: StaffSession,
                 api,
                 page_size: Optional[int] = None,
                 origin: Optional[str] = None,
                 clock: Callable[[], datetime] = utcnow,
                 tick_interval: Optional[float] = None):
        self.session = session
        self.api = api
        self.origin = origin or config.config.APP_ORIGIN
        self._clock = clock

        self.store = AssignmentStore(api, page_size or config.config.PAGE_SIZE)
        self.referrals = ReferralTracker(api, session)
        self.ticker = CountdownTicker(
            interval=tick_interval or config.config.COUNTDOWN_TICK_SECONDS,
            on_tick=self._on_tick,
            clock=clock,
        )

        self.statistics: Optional[Statistics] = None
        self.error: Optional[str] = None
        self.countdown_listener: Optional[CountdownListener] = None

    # --- загрузка ---

    async def open(self) -> bool:
        """Первая загрузка: первая страница без фильтра + реферальный код"""
        loaded = await self._load(lambda: self.store.load(self.session.staff_id, None, 1))
        await self.referrals.referral_code()
        return loaded

    async def refresh(self) -> bool:
        if self.store.staff_id is None:
            return await self._load(lambda: self.store.load(self.session.staff_id, None, 1))
        return await self._load(self.store.refresh)

    async def change_filter(self, status: Union[AssignmentStatus, str, None]) -> bool:
        try:
            status_filter = AssignmentStatus(status) if status else None
        except ValueError:
            logger.warning(f"Unknown status filter: {status!r}")
            self.error = "Unknown status filter"
            return False
        return await self._load(
            lambda: self.store.load(self.session.staff_id, status_filter, 1)
        )

    async def change_page(self, page: int) -> bool:
        if self.store.staff_id is None:
            return await self.refresh()
        return await self._load(lambda: self.store.change_page(page))

    async def _load(self, loader: Callable[[], Awaitable[bool]]) -> bool:
        try:
            applied = await loader()
        except LoadError as e:
            if isinstance(e.__cause__, Unauthorized):
                raise e.__cause__
            # Прежние данные остаются, показываем баннер
            self.error = e.message
            return False

        if not applied:
            return False

        self.error = None
        self._sync_countdowns()
        await self._refresh_statistics()
        return True

    def dismiss_error(self) -> None:
        self.error = None

    # --- статусы ---

    async def request_transition(self,
                                 assignment_id: int,
                                 new_status: Union[AssignmentStatus, str],
                                 notes: Optional[str] = None) -> TransitionOutcome:
        current = self.store.get(assignment_id)
        if current is None:
            return TransitionOutcome(False, None, "❌ Task not found")

        try:
            candidate = transition(current, new_status, notes, now=self._clock())
        except InvalidTransition as e:
            return TransitionOutcome(False, current, f"❌ {e.message}", e)

        if not self.store.mark_updating(assignment_id):
            return TransitionOutcome(False, current, "⏳ This task is already being updated")

        # Пока сервер не ответил, в хранилище остается прежний статус
        try:
            persisted = await asyncio.to_thread(
                self.api.persist_transition, assignment_id, candidate.status, notes
            )
        except Unauthorized:
            raise
        except Conflict as e:
            logger.warning(f"Conflict while updating assignment {assignment_id}: {e}")
            # Статус поменялся где-то еще - перечитываем перед повтором
            await self.refresh()
            return TransitionOutcome(
                False,
                self.store.get(assignment_id),
                "⚠️ This task was changed elsewhere. The list was reloaded, please try again.",
                e,
            )
        except ApiError as e:
            logger.error(f"Failed to update assignment {assignment_id}: {e}")
            return TransitionOutcome(False, current, f"❌ {e.message or 'Failed to update task status'}", e)
        finally:
            self.store.clear_updating(assignment_id)

        updated = self._merge(candidate, persisted)
        # Страницу могли перезагрузить, пока шел запрос - тогда свежие данные главнее
        if self.store.get(assignment_id) is current:
            self.store.apply_local_transition(assignment_id, updated)
        self._sync_countdowns()
        await self._refresh_statistics()

        return TransitionOutcome(True, updated, f"✅ Task status updated to {status_label(updated.status)}")

    @staticmethod
    def _merge(candidate: Assignment, persisted: Optional[Assignment]) -> Assignment:
        """Ответ сервера главнее, но снимок задачи и счетчик рефералов не теряем"""
        if persisted is None or persisted.id != candidate.id:
            return candidate
        return replace(
            persisted,
            task=persisted.task or candidate.task,
            staff_id=persisted.staff_id or candidate.staff_id,
            task_id=persisted.task_id or candidate.task_id,
            notes=persisted.notes if persisted.notes is not None else candidate.notes,
            started_at=persisted.started_at or candidate.started_at,
            completed_at=persisted.completed_at or candidate.completed_at,
            referral_count=max(persisted.referral_count, candidate.referral_count),
            countdown=None if persisted.is_terminal else persisted.countdown,
        )

    # --- статистика ---

    async def _refresh_statistics(self) -> None:
        try:
            self.statistics = await asyncio.to_thread(self.api.fetch_statistics, self.session.staff_id)
        except Unauthorized:
            raise
        except ApiError as e:
            logger.warning(f"Failed to fetch statistics for staff {self.session.staff_id}: {e}")
            self.statistics = None

    def page_statistics(self) -> Statistics:
        """Свертка только по загруженной странице"""
        return compute_statistics(self.store.items, self._clock())

    # --- таймеры ---

    def countdowns(self) -> Dict[int, Countdown]:
        values = {}
        for assignment in self.store.items:
            value = self.ticker.latest(assignment.id)
            if value is not None:
                values[assignment.id] = value
        return values

    def _sync_countdowns(self) -> None:
        if self.countdown_listener is None:
            # Таймеры никто не видит - тик не нужен
            self.ticker.stop()
            return
        deadlines = {}
        for assignment in self.store.items:
            deadline = deadline_for(assignment)
            if deadline is not None:
                deadlines[assignment.id] = deadline
        self.ticker.sync(deadlines)

    async def _on_tick(self, values: Mapping[Hashable, Countdown]) -> None:
        if self.countdown_listener is None:
            return
        result = self.countdown_listener(values)
        if inspect.isawaitable(result):
            await result

    def show_countdowns(self, listener: Optional[CountdownListener]) -> Dict[int, Countdown]:
        """Представление с таймерами открыто - подписываемся на тик"""
        self.countdown_listener = listener
        self._sync_countdowns()
        return self.countdowns()

    def hide_countdowns(self) -> None:
        """Представление с таймерами закрыто - останавливаем тик"""
        self.countdown_listener = None
        self.ticker.stop()

    # --- рефералы ---

    async def share_referral(self,
                             channel: Union[ShareChannel, str],
                             mode: Union[ShareMode, str] = ShareMode.LINK) -> Optional[SharePayload]:
        code = await self.referrals.referral_code()
        if code is None:
            return None
        return build_share_payload(
            ShareChannel(channel),
            code,
            origin=self.origin,
            display_name=self.session.display_name,
            mode=ShareMode(mode),
        )

    def close(self) -> None:
        self.hide_countdowns()


_boards: Dict[int, TaskBoard] = {}


def get_board(telegram_id: int) -> Optional[TaskBoard]:
    return _boards.get(telegram_id)


def open_board(telegram_id: int, session: StaffSession, api=None) -> TaskBoard:
    """Одна активная доска на пользователя Telegram"""
    existing = _boards.get(telegram_id)
    if existing is not None and existing.session == session:
        return existing
    if existing is not None:
        existing.close()

    if api is None:
        api = SchedulerAPI(token=session.api_token)

    board = TaskBoard(session, api)
    _boards[telegram_id] = board
    return board


def close_board(telegram_id: int) -> None:
    board = _boards.pop(telegram_id, None)
    if board is not None:
        board.close()
