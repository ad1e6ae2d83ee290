"""
Таймер обратного отсчета для реферальных задач.

compute_countdown - чистая функция от (дедлайн, текущее время).
CountdownTicker - один общий тик раз в секунду на все видимые таймеры.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Hashable, Mapping, Optional, Union

from models import Assignment, TaskType
from utils import utcnow

logger = logging.getLogger(__name__)

URGENT_THRESHOLD_MS = 3_600_000
EXPIRED_DISPLAY = "00:00:00"


@dataclass(frozen=True)
class Countdown:
    remaining_ms: int
    display: str
    is_expired: bool
    is_urgent: bool


def format_remaining(remaining_ms: int) -> str:
    """HH:MM:SS, часы не сворачиваются через 24"""
    if remaining_ms <= 0:
        return EXPIRED_DISPLAY
    hours, rest = divmod(remaining_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    seconds = rest // 1000
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def compute_countdown(deadline: datetime, now: Optional[datetime] = None) -> Countdown:
    now = now or utcnow()
    remaining_ms = (deadline - now) // timedelta(milliseconds=1)

    if remaining_ms <= 0:
        return Countdown(remaining_ms=0, display=EXPIRED_DISPLAY, is_expired=True, is_urgent=True)

    return Countdown(
        remaining_ms=remaining_ms,
        display=format_remaining(remaining_ms),
        is_expired=False,
        is_urgent=remaining_ms < URGENT_THRESHOLD_MS,
    )


def deadline_for(assignment: Assignment) -> Optional[datetime]:
    """Дедлайн реферального окна (task.deadline) или None, если таймер не нужен"""
    task = assignment.task
    if task is None or assignment.is_terminal:
        return None
    if task.task_type != TaskType.NEW_USER:
        return None
    return task.deadline


def countdown_for(assignment: Assignment, now: Optional[datetime] = None) -> Optional[Countdown]:
    deadline = deadline_for(assignment)
    if deadline is None:
        return None
    return compute_countdown(deadline, now)


TickListener = Callable[[Mapping[Hashable, Countdown]], Union[None, Awaitable[None]]]


class CountdownTicker:
    """
    Общий планировщик живых таймеров.

    Каждый тик пересчитывает все зарегистрированные таймеры по сохраненным
    дедлайнам и один раз вызывает on_tick со всеми значениями. Истекший таймер
    попадает в тик последний раз (00:00:00) и снимается. Когда таймеров не
    осталось, фоновая задача завершается.
    """

    def __init__(self,
                 interval: float = 1.0,
                 on_tick: Optional[TickListener] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.interval = interval
        self.on_tick = on_tick
        self._clock = clock
        self._deadlines: Dict[Hashable, datetime] = {}
        self._latest: Dict[Hashable, Countdown] = {}
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._deadlines

    def __len__(self) -> int:
        return len(self._deadlines)

    def latest(self, key: Hashable) -> Optional[Countdown]:
        return self._latest.get(key)

    def register(self, key: Hashable, deadline: datetime) -> Countdown:
        """Добавляет таймер. Новый дедлайн для ключа перезапускает интервал."""
        value = compute_countdown(deadline, self._clock())
        previous = self._deadlines.get(key)

        if value.is_expired:
            # Истекший таймер не тикает
            self._deadlines.pop(key, None)
            self._latest[key] = value
            self._stop_if_idle()
            return value

        self._deadlines[key] = deadline
        self._latest[key] = value

        if previous is not None and previous != deadline:
            self._restart()
        else:
            self._ensure_running()
        return value

    def unregister(self, key: Hashable) -> None:
        self._deadlines.pop(key, None)
        self._latest.pop(key, None)
        self._stop_if_idle()

    def sync(self, deadlines: Mapping[Hashable, datetime]) -> Dict[Hashable, Countdown]:
        """Оставляет ровно переданные таймеры (например, видимую страницу)"""
        for key in list(self._deadlines):
            if key not in deadlines:
                self.unregister(key)
        for key in list(self._latest):
            if key not in deadlines:
                self._latest.pop(key, None)
        return {key: self.register(key, deadline) for key, deadline in deadlines.items()}

    def stop(self) -> None:
        self._deadlines.clear()
        self._latest.clear()
        self._cancel()

    async def tick(self) -> Dict[Hashable, Countdown]:
        now = self._clock()
        values: Dict[Hashable, Countdown] = {}
        for key, deadline in list(self._deadlines.items()):
            value = compute_countdown(deadline, now)
            values[key] = value
            self._latest[key] = value
            if value.is_expired:
                del self._deadlines[key]

        if values and self.on_tick is not None:
            result = self.on_tick(values)
            if inspect.isawaitable(result):
                await result
        self._stop_if_idle()
        return values

    async def _run(self) -> None:
        me = asyncio.current_task()
        while self._deadlines and self._task is me:
            await asyncio.sleep(self.interval)
            if self._task is not me:
                break
            try:
                await self.tick()
            except Exception as e:
                logger.warning(f"Countdown listener failed, stopping ticker: {e}")
                self._deadlines.clear()
        logger.debug("Countdown ticker idle")

    def _ensure_running(self) -> None:
        if self.is_running or not self._deadlines or not _loop_running():
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def _restart(self) -> None:
        self._cancel()
        self._ensure_running()

    def _stop_if_idle(self) -> None:
        if not self._deadlines:
            self._cancel()

    def _cancel(self) -> None:
        if self._task is not None and not self._task.done():
            current = asyncio.current_task() if _loop_running() else None
            if self._task is not current:
                self._task.cancel()
        self._task = None


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True
