from datetime import datetime, date, timezone
from typing import Optional, Union


STATUS_LABELS = {
    'assigned': 'Assigned',
    'accepted': 'Accepted',
    'in_progress': 'In Progress',
    'completed': 'Completed',
    'rejected': 'Rejected',
}

STATUS_EMOJI = {
    'assigned': '📥',
    'accepted': '👌',
    'in_progress': '⏳',
    'completed': '✅',
    'rejected': '❌',
}

PRIORITY_EMOJI = {
    'low': '🟢',
    'medium': '🟡',
    'high': '🟠',
    'urgent': '🔴',
}

TASK_TYPE_LABELS = {
    'daily': 'Daily',
    'weekly': 'Weekly',
    'monthly': 'Monthly',
    'new_user': 'New User',
}


def utcnow() -> datetime:
    """Текущее время в UTC (aware)"""
    return datetime.now(timezone.utc)


def parse_datetime(value: Union[str, datetime, date, None]) -> Optional[datetime]:
    """Разбирает дату из ответа API. Наивные даты считаются UTC."""
    if value is None or value == '':
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_date(value: Optional[datetime]) -> str:
    """Дата в виде 'Jan 5, 2024'"""
    if not value:
        return 'N/A'
    return f"{value.strftime('%b')} {value.day}, {value.year}"


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, getattr(status, 'value', status))


def task_type_label(task_type: str) -> str:
    return TASK_TYPE_LABELS.get(task_type, getattr(task_type, 'value', task_type))
