"""
Хранилище текущей страницы назначений одного сотрудника.

Фильтр по статусу применяется на сервере, страницы нумеруются с 1.
Если загрузка завершилась после того, как началась более новая, ее результат
отбрасывается (побеждает последний запрос).
"""

import asyncio
import logging
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union

from errors import ApiError, LoadError
from models import Assignment, AssignmentPage, AssignmentStatus

logger = logging.getLogger(__name__)


class AssignmentStore:
    def __init__(self, api, page_size: int = 20):
        self._api = api
        self.page_size = page_size

        self._items: List[Assignment] = []
        self._index: Dict[int, int] = {}
        self._updating: Set[int] = set()
        self._request_seq = 0

        self.staff_id: Optional[int] = None
        self.status_filter: Optional[AssignmentStatus] = None
        self.page = 1
        self.total_pages = 1
        self.total = 0
        self.loaded = False

    # --- чтение ---

    @property
    def items(self) -> Tuple[Assignment, ...]:
        return tuple(self._items)

    def get(self, assignment_id: int) -> Optional[Assignment]:
        position = self._index.get(assignment_id)
        return self._items[position] if position is not None else None

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Assignment]:
        return iter(tuple(self._items))

    def __contains__(self, assignment_id: int) -> bool:
        return assignment_id in self._index

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    # --- загрузка ---

    async def load(self,
                   staff_id: int,
                   status_filter: Union[AssignmentStatus, str, None] = None,
                   page: int = 1) -> bool:
        """
        Загружает страницу. Возвращает False, если ответ устарел и отброшен.
        При ошибке бросает LoadError, прежние данные остаются.
        """
        status_filter = AssignmentStatus(status_filter) if status_filter else None
        page = max(1, int(page))

        self._request_seq += 1
        request_id = self._request_seq

        try:
            result: AssignmentPage = await asyncio.to_thread(
                self._api.fetch_assignments, staff_id, status_filter, page, self.page_size
            )
        except ApiError as e:
            if request_id != self._request_seq:
                logger.info(f"Discarding failed stale load #{request_id}: {e}")
                return False
            logger.error(f"Failed to load assignments for staff {staff_id}: {e}")
            raise LoadError(e.message or "Failed to fetch tasks") from e

        if request_id != self._request_seq:
            logger.info(f"Discarding stale load #{request_id} (latest is #{self._request_seq})")
            return False

        self._replace(result.items)
        self.staff_id = staff_id
        self.status_filter = status_filter
        self.page = page
        self.total_pages = max(1, result.total_pages)
        self.total = result.total
        self.loaded = True
        return True

    async def refresh(self) -> bool:
        if self.staff_id is None:
            raise LoadError("Nothing loaded yet")
        return await self.load(self.staff_id, self.status_filter, self.page)

    async def change_filter(self, status_filter: Union[AssignmentStatus, str, None]) -> bool:
        """Смена фильтра всегда сбрасывает страницу на первую"""
        if self.staff_id is None:
            raise LoadError("Nothing loaded yet")
        return await self.load(self.staff_id, status_filter, 1)

    async def change_page(self, page: int) -> bool:
        if self.staff_id is None:
            raise LoadError("Nothing loaded yet")
        page = min(max(1, int(page)), self.total_pages)
        return await self.load(self.staff_id, self.status_filter, page)

    # --- локальные изменения ---

    def apply_local_transition(self, assignment_id: int, updated: Assignment) -> Assignment:
        """Заменяет одно назначение по id, порядок и остальные не трогает"""
        if updated.id != assignment_id:
            raise ValueError(f"Assignment id mismatch: {assignment_id} != {updated.id}")
        position = self._index.get(assignment_id)
        if position is None:
            raise KeyError(assignment_id)
        self._items[position] = updated
        return updated

    def mark_updating(self, assignment_id: int) -> bool:
        """False, если назначение уже обновляется"""
        if assignment_id in self._updating:
            return False
        self._updating.add(assignment_id)
        return True

    def clear_updating(self, assignment_id: int) -> None:
        self._updating.discard(assignment_id)

    def is_updating(self, assignment_id: int) -> bool:
        return assignment_id in self._updating

    def _replace(self, items: List[Assignment]) -> None:
        self._items = list(items)
        self._index = {item.id: position for position, item in enumerate(self._items)}
