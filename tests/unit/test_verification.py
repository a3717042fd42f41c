"""Unit tests for the verification state machine."""

import pytest

from citizen_registry.errors import ConflictError, NotFoundError
from citizen_registry.models.user import VerificationStatus
from citizen_registry.services.verification import (
    apply_status_transition,
    can_transition,
    ensure_transition,
)
from helpers import MockConnection

NONE = VerificationStatus.NONE
PENDING = VerificationStatus.PENDING
APPROVED = VerificationStatus.APPROVED
REJECTED = VerificationStatus.REJECTED
NEEDS_INFO = VerificationStatus.NEEDS_INFO


class TestTransitionTable:
    """Tests for can_transition / ensure_transition."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (NONE, PENDING),
            (PENDING, PENDING),
            (PENDING, APPROVED),
            (PENDING, REJECTED),
            (PENDING, NEEDS_INFO),
            (NEEDS_INFO, PENDING),
            (NEEDS_INFO, APPROVED),
            (NEEDS_INFO, REJECTED),
            (REJECTED, PENDING),
        ],
    )
    def test_legal_transitions(self, current, target):
        assert can_transition(current, target) is True

    @pytest.mark.parametrize(
        "current,target",
        [
            (NONE, APPROVED),
            (APPROVED, PENDING),
            (APPROVED, REJECTED),
            (REJECTED, APPROVED),
            (REJECTED, NEEDS_INFO),
            (NEEDS_INFO, NEEDS_INFO),
        ],
    )
    def test_illegal_transitions(self, current, target):
        assert can_transition(current, target) is False

    def test_approved_reopens_only_with_override(self):
        assert can_transition(APPROVED, PENDING, override=True) is True
        assert can_transition(REJECTED, APPROVED, override=True) is False

    def test_ensure_transition_raises_conflict(self):
        with pytest.raises(ConflictError, match="approved"):
            ensure_transition(APPROVED, REJECTED)

    def test_ensure_transition_uses_custom_message(self):
        with pytest.raises(ConflictError, match="Only an admin"):
            ensure_transition(APPROVED, PENDING, message="Only an admin can do that")


class TestApplyStatusTransition:
    """Tests for the single two-row status write."""

    async def test_refuses_to_run_outside_transaction(self):
        conn = MockConnection()

        with pytest.raises(RuntimeError, match="transaction"):
            await apply_status_transition(
                conn, user_id=1, application_id=10, status=PENDING
            )
        conn.execute.assert_not_called()

    async def test_writes_application_then_user(self):
        conn = MockConnection()

        async with conn.transaction():
            written_at = await apply_status_transition(
                conn, user_id=1, application_id=10, status=APPROVED
            )

        assert conn.execute.call_count == 2
        app_call, user_call = conn.execute.call_args_list
        assert "UPDATE applications" in app_call.args[0]
        assert app_call.args[1:] == ("approved", written_at, 10, 1)
        assert "UPDATE users" in user_call.args[0]
        assert user_call.args[1] == "approved"
        # rejection fields are cleared on anything but a rejection
        assert user_call.args[2] is None
        assert user_call.args[3] is None

    async def test_rejection_stamps_reason_and_date(self):
        conn = MockConnection()

        async with conn.transaction():
            written_at = await apply_status_transition(
                conn,
                user_id=1,
                application_id=10,
                status=REJECTED,
                rejection_reason="ID photo is blurry",
            )

        user_call = conn.execute.call_args_list[1]
        assert user_call.args[2] == "ID photo is blurry"
        assert user_call.args[3] == written_at

    async def test_rejection_requires_reason(self):
        conn = MockConnection()

        async with conn.transaction():
            with pytest.raises(ValueError):
                await apply_status_transition(
                    conn, user_id=1, application_id=10, status=REJECTED, rejection_reason="  "
                )
        conn.execute.assert_not_called()

    async def test_application_not_owned_by_user(self):
        conn = MockConnection()
        conn.execute.return_value = "UPDATE 0"

        with pytest.raises(NotFoundError):
            async with conn.transaction():
                await apply_status_transition(
                    conn, user_id=1, application_id=99, status=PENDING
                )

        # the user row is never touched
        assert conn.execute.call_count == 1
        assert conn.rollbacks == 1

    async def test_name_passed_through(self):
        conn = MockConnection()

        async with conn.transaction():
            await apply_status_transition(
                conn, user_id=1, application_id=10, status=PENDING, name="Maria Clara"
            )

        assert conn.execute.call_args_list[1].args[4] == "Maria Clara"
