import math
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import pytest

from errors import ApiError
from models import (
    Assignment, AssignmentPage, AssignmentStatus, ReferralRecord, StaffSession,
    Statistics, TaskDefinition, TaskPriority, TaskType,
)

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_task(task_id: int = 1, **kwargs) -> TaskDefinition:
    data = {
        "id": task_id,
        "title": f"Task {task_id}",
        "task_type": TaskType.DAILY,
        "priority": TaskPriority.MEDIUM,
    }
    data.update(kwargs)
    return TaskDefinition(**data)


def make_assignment(assignment_id: int = 1,
                    status: AssignmentStatus = AssignmentStatus.ASSIGNED,
                    task: Optional[TaskDefinition] = None,
                    **kwargs) -> Assignment:
    data = {
        "id": assignment_id,
        "task_id": task.id if task else assignment_id,
        "staff_id": 7,
        "status": status,
        "task": task if task is not None else make_task(assignment_id),
        "created_at": NOW - timedelta(hours=1),
    }
    data.update(kwargs)
    return Assignment(**data)


class FakeSchedulerAPI:
    """Синхронный двойник SchedulerAPI, хранит назначения в памяти"""

    def __init__(self, assignments: Optional[List[Assignment]] = None):
        self.assignments: List[Assignment] = list(assignments or [])
        self.calls: List[tuple] = []
        self.gates: Dict[int, threading.Event] = {}

        self.load_error: Optional[ApiError] = None
        self.persist_error: Optional[ApiError] = None
        self.persist_result: Optional[Assignment] = None
        self.on_persist: Optional[Callable[[int], None]] = None
        self.stats = Statistics(total=3, pending=1, in_progress=1, completed=1, overdue=0)
        self.stats_error: Optional[ApiError] = None
        self.referral_code = "DOC123"
        self.referral_error: Optional[ApiError] = None
        self.referral_list: List[ReferralRecord] = []

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def fetch_assignments(self, staff_id, status_filter=None, page=1, limit=20) -> AssignmentPage:
        self.calls.append(("fetch_assignments", staff_id, status_filter, page, limit))
        gate = self.gates.get(page)
        if gate is not None:
            gate.wait(5)
        if self.load_error is not None:
            raise self.load_error

        items = [a for a in self.assignments if status_filter is None or a.status == status_filter]
        total_pages = max(1, math.ceil(len(items) / limit))
        chunk = items[(page - 1) * limit:page * limit]
        return AssignmentPage(items=chunk, total_pages=total_pages, page=page, total=len(items))

    def persist_transition(self, assignment_id, new_status, notes=None) -> Optional[Assignment]:
        self.calls.append(("persist_transition", assignment_id, new_status, notes))
        if self.on_persist is not None:
            self.on_persist(assignment_id)
        if self.persist_error is not None:
            raise self.persist_error

        for position, item in enumerate(self.assignments):
            if item.id == assignment_id:
                self.assignments[position] = replace(item, status=AssignmentStatus(new_status))
        return self.persist_result

    def fetch_statistics(self, staff_id) -> Statistics:
        self.calls.append(("fetch_statistics", staff_id))
        if self.stats_error is not None:
            raise self.stats_error
        return self.stats

    def fetch_referral_code(self, staff_id) -> str:
        self.calls.append(("fetch_referral_code", staff_id))
        if self.referral_error is not None:
            raise self.referral_error
        return self.referral_code

    def fetch_referrals(self, staff_id) -> List[ReferralRecord]:
        self.calls.append(("fetch_referrals", staff_id))
        if self.referral_error is not None:
            raise self.referral_error
        return self.referral_list

    def create_referral_invite(self, staff_id, name, email, task_id=None) -> dict:
        self.calls.append(("create_referral_invite", staff_id, name, email, task_id))
        return {"referralCode": self.referral_code}


@pytest.fixture
def session() -> StaffSession:
    return StaffSession(staff_id=7, display_name="Dr. Smith", category="doctor", api_token="token")


@pytest.fixture
def api() -> FakeSchedulerAPI:
    return FakeSchedulerAPI([
        make_assignment(1, AssignmentStatus.ASSIGNED),
        make_assignment(2, AssignmentStatus.ACCEPTED),
        make_assignment(3, AssignmentStatus.IN_PROGRESS),
    ])
