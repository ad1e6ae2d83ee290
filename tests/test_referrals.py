"""Tests for referral progress and the referral tracker."""

from unittest.mock import MagicMock

import pytest

from conftest import make_assignment, make_task
from errors import ApiError, Unauthorized
from models import StaffSession, TaskType
from referrals import (
    ReferralTracker, calculate_progress, is_referral_eligible, is_valid_email, referral_progress_text,
)


@pytest.fixture
def staff():
    return StaffSession(staff_id=7, display_name="Dr. Smith")


class TestReferralProgress:

    def test_new_user_task_is_eligible(self):
        assignment = make_assignment(task=make_task(task_type=TaskType.NEW_USER))
        assert is_referral_eligible(assignment)

    def test_title_marks_referral_task(self):
        assignment = make_assignment(task=make_task(title="Bring a New User this week"))
        assert is_referral_eligible(assignment)

    def test_existing_referrals_make_task_eligible(self):
        assert is_referral_eligible(make_assignment(referral_count=2))

    def test_plain_task_is_not_eligible(self):
        assignment = make_assignment(task=make_task(title="Review diet plans"))

        assert not is_referral_eligible(assignment)
        assert referral_progress_text(assignment) == ""

    def test_progress_text(self):
        task = make_task(task_type=TaskType.NEW_USER)

        assert referral_progress_text(make_assignment(task=task, referral_count=0)) == "0 referrals"
        assert referral_progress_text(make_assignment(task=task, referral_count=1)) == "1 referral"
        assert referral_progress_text(make_assignment(task=task, referral_count=3)) == "3 referrals"

    def test_progress_from_target(self):
        task = make_task(task_type=TaskType.NEW_USER, target_count=4)

        assert calculate_progress(make_assignment(task=task, referral_count=2)) == 50
        assert calculate_progress(make_assignment(task=task, referral_count=9)) == 100

    def test_progress_for_regular_task(self):
        assert calculate_progress(make_assignment(progress=30)) == 30

    def test_email_validation(self):
        assert is_valid_email("ann@example.com")
        assert not is_valid_email("ann@example")
        assert not is_valid_email("not an email")


class TestReferralTracker:

    @pytest.mark.asyncio
    async def test_code_is_cached(self, staff):
        api = MagicMock()
        api.fetch_referral_code.return_value = "DOC123"
        tracker = ReferralTracker(api, staff)

        assert await tracker.referral_code() == "DOC123"
        assert await tracker.referral_code() == "DOC123"

        api.fetch_referral_code.assert_called_once_with(7)
        assert tracker.cached_code == "DOC123"

    @pytest.mark.asyncio
    async def test_code_failure_returns_none(self, staff):
        api = MagicMock()
        api.fetch_referral_code.side_effect = ApiError("boom", 500)
        tracker = ReferralTracker(api, staff)

        assert await tracker.referral_code() is None

        api.fetch_referral_code.side_effect = None
        api.fetch_referral_code.return_value = "LATER"
        assert await tracker.referral_code() == "LATER"

    @pytest.mark.asyncio
    async def test_unauthorized_propagates(self, staff):
        api = MagicMock()
        api.fetch_referral_code.side_effect = Unauthorized("expired", 401)
        tracker = ReferralTracker(api, staff)

        with pytest.raises(Unauthorized):
            await tracker.referral_code()

    @pytest.mark.asyncio
    async def test_referrals_failure_returns_none(self, staff):
        api = MagicMock()
        api.fetch_referrals.side_effect = ApiError("boom", 500)

        assert await ReferralTracker(api, staff).referrals() is None

    @pytest.mark.asyncio
    async def test_invite_validates_before_request(self, staff):
        api = MagicMock()
        tracker = ReferralTracker(api, staff)

        ok, message = await tracker.invite("Ann", "broken")

        assert not ok
        assert "valid email" in message
        api.create_referral_invite.assert_not_called()

    @pytest.mark.asyncio
    async def test_invite_sends_request(self, staff):
        api = MagicMock()
        api.create_referral_invite.return_value = {"referralCode": "DOC123"}
        tracker = ReferralTracker(api, staff)

        ok, message = await tracker.invite(" Ann ", "ann@example.com", task_id=3)

        assert ok
        assert message == "✅ Referral invitation sent to Ann!"
        api.create_referral_invite.assert_called_once_with(7, "Ann", "ann@example.com", 3)
        assert tracker.cached_code == "DOC123"
