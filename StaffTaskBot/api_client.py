import requests
import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

import config
from errors import ApiError, Conflict, NetworkError, NotFound, Unauthorized
from models import Assignment, AssignmentPage, AssignmentStatus, ReferralRecord, Statistics

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SchedulerAPI:
    """
    HTTP клиент планировщика задач (назначения, рефералы, статистика).
    Методы синхронные - из асинхронного кода вызываются через asyncio.to_thread.
    """

    def __init__(self,
                 token: Optional[str] = None,
                 base_url: Optional[str] = None,
                 timeout: Optional[int] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or config.config.API_BASE_URL).rstrip("/")
        self.timeout = timeout or config.config.REQUEST_TIMEOUT
        self.token = token
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json; charset=utf-8"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"

        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(),
                timeout=self.timeout,
                **kwargs
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"❌ Scheduler API network error ({method} {endpoint}): {e}")
            raise NetworkError(f"Network error: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        message = data.get("message") if isinstance(data, dict) else None
        status_code = response.status_code

        if status_code in (401, 403):
            raise Unauthorized(message or "Session expired, please sign in again", status_code)
        if status_code == 404:
            raise NotFound(message or "Not found", status_code)
        if status_code == 409:
            raise Conflict(message or "Status was changed elsewhere", status_code)
        if status_code >= 400:
            logger.warning(f"⚠️ Scheduler API responded {status_code} for {method} {endpoint}")
            raise ApiError(message or f"HTTP {status_code}", status_code)

        if not isinstance(data, dict) or data.get("success") is False:
            raise ApiError(message or "API request failed", status_code)

        return data

    @staticmethod
    def _parse(parser: Callable[[Any], T], payload: Any, endpoint: str) -> T:
        """Некорректный ответ (дата, enum, нет id) - это ошибка API, а не падение бота"""
        try:
            return parser(payload)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"❌ Malformed {endpoint} payload from Scheduler API: {e}")
            raise ApiError(f"Malformed {endpoint} response from the server") from e

    def fetch_assignments(self,
                          staff_id: int,
                          status_filter: Union[AssignmentStatus, str, None] = None,
                          page: int = 1,
                          limit: int = 20) -> AssignmentPage:
        """GET /tasks/doctor/:staffId"""
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if status_filter:
            params["status"] = getattr(status_filter, "value", status_filter)

        data = self._request("GET", f"/tasks/doctor/{staff_id}", params=params)
        return self._parse(AssignmentPage.from_api, data, endpoint="assignments")

    def persist_transition(self,
                           assignment_id: int,
                           new_status: Union[AssignmentStatus, str],
                           notes: Optional[str] = None) -> Optional[Assignment]:
        """PUT /tasks/doctor/:assignmentId/status"""
        body: Dict[str, Any] = {"status": getattr(new_status, "value", new_status)}
        if notes is not None:
            body["notes"] = notes

        data = self._request("PUT", f"/tasks/doctor/{assignment_id}/status", json=body)
        payload = data.get("data")
        return self._parse(Assignment.from_api, payload, endpoint="status update") if payload else None

    def fetch_referral_code(self, staff_id: int) -> str:
        data = self._request("GET", f"/tasks/doctor/{staff_id}/referral-code")
        code = (data.get("data") or {}).get("referralCode")
        if not code:
            raise ApiError("Referral code is missing in response")
        return code

    def fetch_referrals(self, staff_id: int) -> List[ReferralRecord]:
        data = self._request("GET", f"/tasks/doctor/{staff_id}/referrals")
        referrals = (data.get("data") or {}).get("referrals") or []
        return [self._parse(ReferralRecord.from_api, item, endpoint="referrals") for item in referrals]

    def fetch_statistics(self, staff_id: int) -> Statistics:
        """Сводка по всем назначениям сотрудника, а не только по текущей странице"""
        data = self._request("GET", f"/tasks/doctor/{staff_id}/stats")
        return self._parse(Statistics.from_api, data.get("data") or {}, endpoint="stats")

    def create_referral_invite(self,
                               staff_id: int,
                               name: str,
                               email: str,
                               task_id: Optional[int] = None) -> Dict[str, Any]:
        body = {"name": name, "email": email, "taskId": task_id}
        data = self._request("POST", f"/tasks/doctor/{staff_id}/referral-invite", json=body)
        return data.get("data") or {}
