"""
Переходы статусов назначения.

Чистые функции: ничего не хранят, ничего не отправляют в сеть и не меняют
входное назначение. Сохранение на сервере и откат - забота вызывающего кода
(см. board.TaskBoard.request_transition).
"""

from dataclasses import replace
from datetime import datetime
from typing import Dict, FrozenSet, Optional, Tuple, Union

from errors import InvalidTransition
from models import Assignment, AssignmentStatus
from utils import utcnow

S = AssignmentStatus

# Все, чего нет в таблице, запрещено.
ALLOWED_TRANSITIONS: Dict[AssignmentStatus, FrozenSet[AssignmentStatus]] = {
    S.ASSIGNED: frozenset({S.ACCEPTED, S.REJECTED}),
    S.ACCEPTED: frozenset({S.IN_PROGRESS, S.COMPLETED, S.REJECTED}),
    S.IN_PROGRESS: frozenset({S.COMPLETED, S.REJECTED}),
    S.COMPLETED: frozenset(),
    S.REJECTED: frozenset(),
}

TERMINAL_STATUSES: Tuple[AssignmentStatus, ...] = (S.COMPLETED, S.REJECTED)

# Порядок кнопок в боте
_BUTTON_ORDER: Tuple[AssignmentStatus, ...] = (S.ACCEPTED, S.IN_PROGRESS, S.COMPLETED, S.REJECTED)


def _coerce(status: Union[AssignmentStatus, str]) -> AssignmentStatus:
    try:
        return AssignmentStatus(status)
    except ValueError:
        raise InvalidTransition("unknown", str(status)) from None


def is_terminal(status: Union[AssignmentStatus, str]) -> bool:
    return _coerce(status) in TERMINAL_STATUSES


def allowed_targets(status: Union[AssignmentStatus, str]) -> Tuple[AssignmentStatus, ...]:
    """Статусы, в которые можно перейти из текущего"""
    allowed = ALLOWED_TRANSITIONS[_coerce(status)]
    return tuple(s for s in _BUTTON_ORDER if s in allowed)


def can_transition(current: Union[AssignmentStatus, str], new_status: Union[AssignmentStatus, str]) -> bool:
    try:
        return AssignmentStatus(new_status) in ALLOWED_TRANSITIONS[AssignmentStatus(current)]
    except ValueError:
        return False


def transition(assignment: Assignment,
               new_status: Union[AssignmentStatus, str],
               notes: Optional[str] = None,
               now: Optional[datetime] = None) -> Assignment:
    """
    Возвращает новое назначение со статусом new_status.
    Бросает InvalidTransition, если переход не разрешен таблицей.
    """
    if not can_transition(assignment.status, new_status):
        current = getattr(assignment.status, 'value', assignment.status)
        raise InvalidTransition(current, getattr(new_status, 'value', str(new_status)))

    target = AssignmentStatus(new_status)
    now = now or utcnow()

    changes = {"status": target, "updated_at": now}
    if notes is not None:
        changes["notes"] = notes

    if target == S.IN_PROGRESS:
        changes["started_at"] = now
    elif target == S.COMPLETED:
        changes["completed_at"] = now
        changes["progress"] = 100

    # Завершенное или отклоненное назначение таймер не показывает
    if target in TERMINAL_STATUSES:
        changes["countdown"] = None

    return replace(assignment, **changes)
