"""Сводная статистика по назначениям - всегда пересчитывается целиком."""

from datetime import datetime
from typing import Iterable, Optional

from models import Assignment, AssignmentStatus, Statistics
from utils import utcnow

_PENDING = (AssignmentStatus.ASSIGNED, AssignmentStatus.ACCEPTED)
_CLOSED = (AssignmentStatus.COMPLETED, AssignmentStatus.REJECTED)


def is_overdue(assignment: Assignment, now: Optional[datetime] = None) -> bool:
    """Срок прошел, а назначение еще не завершено и не отклонено"""
    due_date = assignment.due_date
    if due_date is None or assignment.status in _CLOSED:
        return False
    return due_date < (now or utcnow())


def compute_statistics(assignments: Iterable[Assignment], now: Optional[datetime] = None) -> Statistics:
    now = now or utcnow()
    total = pending = in_progress = completed = overdue = 0

    for assignment in assignments:
        total += 1
        if assignment.status in _PENDING:
            pending += 1
        elif assignment.status == AssignmentStatus.IN_PROGRESS:
            in_progress += 1
        elif assignment.status == AssignmentStatus.COMPLETED:
            completed += 1

        if is_overdue(assignment, now):
            overdue += 1

    return Statistics(
        total=total,
        pending=pending,
        in_progress=in_progress,
        completed=completed,
        overdue=overdue,
    )


def completion_rate(stats: Statistics) -> float:
    """Процент выполненных назначений"""
    if stats.total <= 0:
        return 0.0
    return stats.completed / stats.total * 100
