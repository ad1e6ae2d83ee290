"""Tests for the scheduler HTTP client."""

from unittest.mock import MagicMock

import pytest
import requests

from api_client import SchedulerAPI
from errors import ApiError, Conflict, NetworkError, NotFound, Unauthorized
from models import AssignmentStatus

ASSIGNMENT_JSON = {
    "id": 11,
    "taskId": 5,
    "doctorId": 7,
    "status": "accepted",
    "referralCount": 2,
    "progress": 20,
    "createdAt": "2024-05-01T10:00:00.000Z",
    "task": {
        "id": 5,
        "title": "Refer a new user",
        "taskType": "new_user",
        "priority": "high",
        "dueDate": "2024-06-10",
        "referralTimerMinutes": 60,
        "targetCount": 3,
    },
}


def make_response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    if payload is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def http():
    return MagicMock()


@pytest.fixture
def client(http):
    return SchedulerAPI(token="secret", base_url="https://api.example/api/", timeout=5, session=http)


class TestRequest:

    def test_fetch_assignments(self, client, http):
        http.request.return_value = make_response(200, {
            "success": True,
            "data": [ASSIGNMENT_JSON],
            "pagination": {"page": 2, "pages": 3, "total": 41},
        })

        page = client.fetch_assignments(7, AssignmentStatus.ACCEPTED, page=2, limit=20)

        http.request.assert_called_once()
        args, kwargs = http.request.call_args
        assert args == ("GET", "https://api.example/api/tasks/doctor/7")
        assert kwargs["params"] == {"page": 2, "limit": 20, "status": "accepted"}
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["timeout"] == 5

        assert page.total_pages == 3
        assert page.total == 41
        assignment = page.items[0]
        assert assignment.status == AssignmentStatus.ACCEPTED
        assert assignment.task.target_count == 3
        assert assignment.referral_count == 2

    def test_persist_transition(self, client, http):
        http.request.return_value = make_response(200, {"success": True, "data": ASSIGNMENT_JSON})

        result = client.persist_transition(11, AssignmentStatus.ACCEPTED, notes="done")

        args, kwargs = http.request.call_args
        assert args == ("PUT", "https://api.example/api/tasks/doctor/11/status")
        assert kwargs["json"] == {"status": "accepted", "notes": "done"}
        assert result.id == 11

    def test_persist_transition_without_body(self, client, http):
        http.request.return_value = make_response(200, {"success": True})

        assert client.persist_transition(11, "rejected") is None
        assert http.request.call_args[1]["json"] == {"status": "rejected"}

    @pytest.mark.parametrize("status_code,error", [
        (401, Unauthorized),
        (403, Unauthorized),
        (404, NotFound),
        (409, Conflict),
        (500, ApiError),
    ])
    def test_error_mapping(self, client, http, status_code, error):
        http.request.return_value = make_response(status_code, {"success": False, "message": "nope"})

        with pytest.raises(error) as exc_info:
            client.fetch_statistics(7)

        assert exc_info.value.status_code == status_code
        assert exc_info.value.message == "nope"

    def test_unsuccessful_body(self, client, http):
        http.request.return_value = make_response(200, {"success": False, "message": "Doctor not found"})

        with pytest.raises(ApiError, match="Doctor not found"):
            client.fetch_referrals(7)

    def test_network_error(self, client, http):
        http.request.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(NetworkError):
            client.fetch_statistics(7)

    def test_non_json_error(self, client, http):
        http.request.return_value = make_response(502)

        with pytest.raises(ApiError, match="HTTP 502"):
            client.fetch_statistics(7)

    @pytest.mark.parametrize("row", [
        {**ASSIGNMENT_JSON, "createdAt": "01/02/2024"},
        {**ASSIGNMENT_JSON, "status": "archived"},
        {key: value for key, value in ASSIGNMENT_JSON.items() if key != "id"},
    ])
    def test_malformed_assignment_row(self, client, http, row):
        http.request.return_value = make_response(200, {"success": True, "data": [row]})

        with pytest.raises(ApiError, match="Malformed assignments response") as exc_info:
            client.fetch_assignments(7)

        assert isinstance(exc_info.value.__cause__, (ValueError, KeyError))


class TestEndpoints:

    def test_referral_code(self, client, http):
        http.request.return_value = make_response(200, {"success": True, "data": {"referralCode": "DOC123"}})

        assert client.fetch_referral_code(7) == "DOC123"

    def test_missing_referral_code(self, client, http):
        http.request.return_value = make_response(200, {"success": True, "data": {}})

        with pytest.raises(ApiError):
            client.fetch_referral_code(7)

    def test_referrals(self, client, http):
        http.request.return_value = make_response(200, {"success": True, "data": {"referrals": [
            {"id": 1, "name": "Ann", "email": "ann@example.com", "phone": "", "joinedAt": "2024-05-02"},
        ]}})

        referrals = client.fetch_referrals(7)

        assert referrals[0].name == "Ann"
        assert referrals[0].phone is None
        assert referrals[0].joined_at.year == 2024

    def test_statistics(self, client, http):
        http.request.return_value = make_response(200, {"success": True, "data": {
            "total": 10, "pending": 4, "inProgress": 3, "completed": 2, "overdue": 1,
        }})

        stats = client.fetch_statistics(7)

        assert (stats.total, stats.pending, stats.in_progress, stats.completed, stats.overdue) == (10, 4, 3, 2, 1)
        assert http.request.call_args[0][1] == "https://api.example/api/tasks/doctor/7/stats"

    def test_referral_invite(self, client, http):
        http.request.return_value = make_response(201, {"success": True, "data": {"referralCode": "DOC123"}})

        result = client.create_referral_invite(7, "Ann", "ann@example.com", task_id=5)

        assert result == {"referralCode": "DOC123"}
        assert http.request.call_args[1]["json"] == {"name": "Ann", "email": "ann@example.com", "taskId": 5}
