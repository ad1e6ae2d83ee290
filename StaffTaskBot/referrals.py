import asyncio
import logging
import re
from typing import List, Optional, Tuple

from errors import ApiError, Unauthorized
from models import Assignment, ReferralRecord, StaffSession, TaskType

logger = logging.getLogger(__name__)

REFERRAL_TITLE_MARKERS: Tuple[str, ...] = ("referral", "new user")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def is_referral_eligible(assignment: Assignment) -> bool:
    """Показывать ли реферальные кнопки. На переходы статуса не влияет."""
    if assignment.referral_count > 0:
        return True
    task = assignment.task
    if task is None:
        return False
    title = (task.title or "").lower()
    return task.task_type == TaskType.NEW_USER or any(marker in title for marker in REFERRAL_TITLE_MARKERS)


def referral_progress_text(assignment: Assignment) -> str:
    if not is_referral_eligible(assignment):
        return ""
    count = assignment.referral_count
    return f"{count} referral{'' if count == 1 else 's'}"


def calculate_progress(assignment: Assignment) -> int:
    """Для задач new_user прогресс считается по рефералам относительно цели"""
    task = assignment.task
    if task is not None and task.task_type == TaskType.NEW_USER and task.target_count > 0:
        return min(100, round(assignment.referral_count / task.target_count * 100))
    return assignment.progress


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email.strip()))


class ReferralTracker:
    """
    Реферальный код сотрудника и список его рефералов.
    Код запрашивается один раз за сессию и дальше берется из кэша.
    """

    def __init__(self, api, session: StaffSession):
        self._api = api
        self.session = session
        self._code: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def cached_code(self) -> Optional[str]:
        return self._code

    async def referral_code(self) -> Optional[str]:
        """None, если код получить не удалось (реферальные кнопки скрываются)"""
        if self._code is not None:
            return self._code

        async with self._lock:
            if self._code is None:
                try:
                    self._code = await asyncio.to_thread(self._api.fetch_referral_code, self.session.staff_id)
                except Unauthorized:
                    raise
                except ApiError as e:
                    logger.warning(f"Failed to fetch referral code for staff {self.session.staff_id}: {e}")
                    return None
        return self._code

    async def referrals(self) -> Optional[List[ReferralRecord]]:
        try:
            return await asyncio.to_thread(self._api.fetch_referrals, self.session.staff_id)
        except Unauthorized:
            raise
        except ApiError as e:
            logger.warning(f"Failed to fetch referrals for staff {self.session.staff_id}: {e}")
            return None

    async def invite(self, name: str, email: str, task_id: Optional[int] = None) -> Tuple[bool, str]:
        """Отправляет приглашение по email"""
        name = name.strip()
        email = email.strip()
        if not name or not is_valid_email(email):
            return False, "❌ Name and a valid email are required"

        try:
            result = await asyncio.to_thread(
                self._api.create_referral_invite, self.session.staff_id, name, email, task_id
            )
        except Unauthorized:
            raise
        except ApiError as e:
            logger.error(f"Failed to send referral invite: {e}")
            return False, f"❌ Failed to send referral invitation: {e.message}"

        if result.get("referralCode") and self._code is None:
            self._code = result["referralCode"]
        return True, f"✅ Referral invitation sent to {name}!"
