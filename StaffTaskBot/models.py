from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from utils import parse_datetime


class AssignmentStatus(str, Enum):
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"


class TaskType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    NEW_USER = "new_user"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


DEFAULT_REFERRAL_TIMER_MINUTES = 1440


@dataclass(frozen=True)
class TaskDefinition:
    """Шаблон задачи. Принадлежит планировщику, для сотрудника только чтение."""
    id: int
    title: str
    task_type: TaskType
    priority: TaskPriority = TaskPriority.MEDIUM
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    deadline: Optional[datetime] = None
    referral_timer_minutes: Optional[int] = DEFAULT_REFERRAL_TIMER_MINUTES
    target_count: int = 1
    current_count: int = 0
    last_referral_at: Optional[datetime] = None
    is_active: bool = True

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "TaskDefinition":
        return cls(
            id=int(data["id"]),
            title=data.get("title") or "",
            task_type=TaskType(data.get("taskType", TaskType.DAILY.value)),
            priority=TaskPriority(data.get("priority") or TaskPriority.MEDIUM.value),
            description=data.get("description"),
            due_date=parse_datetime(data.get("dueDate")),
            deadline=parse_datetime(data.get("deadline")),
            referral_timer_minutes=data.get("referralTimerMinutes", DEFAULT_REFERRAL_TIMER_MINUTES),
            target_count=int(data.get("targetCount", 1) or 0),
            current_count=int(data.get("currentCount") or 0),
            last_referral_at=parse_datetime(data.get("lastReferralAt")),
            is_active=bool(data.get("isActive", True)),
        )


@dataclass(frozen=True)
class CountdownSnapshot:
    """Снимок таймера, пришедший вместе с назначением"""
    remaining_ms: int
    is_expired: bool
    display: str = "00:00:00"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "CountdownSnapshot":
        return cls(
            remaining_ms=int(data.get("remainingMs") or 0),
            is_expired=bool(data.get("isExpired")),
            display=data.get("display") or "00:00:00",
        )


@dataclass(frozen=True)
class Assignment:
    """Назначение задачи конкретному сотруднику"""
    id: int
    task_id: int
    staff_id: int
    status: AssignmentStatus = AssignmentStatus.ASSIGNED
    task: Optional[TaskDefinition] = None
    notes: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    referral_count: int = 0
    progress: int = 0
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    countdown: Optional[CountdownSnapshot] = None

    def __post_init__(self):
        if self.referral_count < 0:
            raise ValueError("referral_count must be non-negative")
        if not 0 <= self.progress <= 100:
            raise ValueError("progress must be between 0 and 100")

    @property
    def title(self) -> str:
        return self.task.title if self.task else f"Task #{self.task_id}"

    @property
    def due_date(self) -> Optional[datetime]:
        return self.task.due_date if self.task else None

    @property
    def is_terminal(self) -> bool:
        return self.status in (AssignmentStatus.COMPLETED, AssignmentStatus.REJECTED)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Assignment":
        task_data = data.get("task")
        countdown_data = data.get("countdown")
        return cls(
            id=int(data["id"]),
            task_id=int(data.get("taskId") or (task_data or {}).get("id") or 0),
            staff_id=int(data.get("doctorId") or 0),
            status=AssignmentStatus(data.get("status") or AssignmentStatus.ASSIGNED.value),
            task=TaskDefinition.from_api(task_data) if task_data else None,
            notes=data.get("notes"),
            started_at=parse_datetime(data.get("startedAt")),
            completed_at=parse_datetime(data.get("completedAt")),
            referral_count=int(data.get("referralCount") or 0),
            progress=max(0, min(100, int(data.get("progress") or 0))),
            is_active=bool(data.get("isActive", True)),
            created_at=parse_datetime(data.get("createdAt") or data.get("created_at")),
            updated_at=parse_datetime(data.get("updatedAt") or data.get("updated_at")),
            countdown=CountdownSnapshot.from_api(countdown_data) if countdown_data else None,
        )


@dataclass(frozen=True)
class ReferralRecord:
    """Человек, зарегистрировавшийся по коду сотрудника"""
    id: int
    name: str
    email: Optional[str]
    phone: Optional[str]
    joined_at: Optional[datetime]
    referral_code: Optional[str]

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ReferralRecord":
        return cls(
            id=int(data["id"]),
            name=data.get("name") or "",
            email=data.get("email"),
            phone=data.get("phone") or None,
            joined_at=parse_datetime(data.get("joinedAt")),
            referral_code=data.get("referralCode"),
        )


@dataclass(frozen=True)
class Statistics:
    """Сводка по назначениям. Только вычисляется, никогда не хранится."""
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    overdue: int = 0

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Statistics":
        return cls(
            total=int(data.get("total") or 0),
            pending=int(data.get("pending") or 0),
            in_progress=int(data.get("inProgress") or 0),
            completed=int(data.get("completed") or 0),
            overdue=int(data.get("overdue") or 0),
        )


@dataclass(frozen=True)
class StaffSession:
    """Контекст вошедшего сотрудника (врач или диетолог)"""
    staff_id: int
    display_name: str
    category: Optional[str] = None
    api_token: Optional[str] = None


@dataclass
class AssignmentPage:
    """Одна страница назначений от планировщика"""
    items: List[Assignment] = field(default_factory=list)
    total_pages: int = 1
    page: int = 1
    total: int = 0

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "AssignmentPage":
        pagination = data.get("pagination") or {}
        items = [Assignment.from_api(item) for item in data.get("data") or []]
        return cls(
            items=items,
            total_pages=max(1, int(pagination.get("pages") or 1)),
            page=int(pagination.get("page") or 1),
            total=int(pagination.get("total") or len(items)),
        )
