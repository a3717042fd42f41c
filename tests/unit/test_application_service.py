"""Unit tests for ApplicationService with a mocked asyncpg database."""

import json
from datetime import date, datetime, timezone

import pytest

from citizen_registry.models.user import VerificationStatus
from citizen_registry.services.application_service import (
    ApplicationService,
    row_to_application,
)
from helpers import MockConnection, application_row, make_application


@pytest.fixture
def service():
    return ApplicationService()


class TestRowMapping:
    """Tests for row_to_application."""

    def test_decodes_text_jsonb(self):
        row = application_row(make_application())
        row["ai_analysis_json"] = json.dumps({"liveness": 0.5})

        application = row_to_application(row)

        assert application.ai_analysis == {"liveness": 0.5}

    def test_missing_email_column(self):
        row = application_row(make_application())
        del row["user_email"]

        assert row_to_application(row).user_email is None


class TestCreate:
    """Tests for ApplicationService.create."""

    async def test_inserts_pending_application(self, service):
        conn = MockConnection()
        conn.fetchrow.return_value = application_row(
            make_application(application_id=11, id_card_front=None, id_card_back=None,
                             selfie_image=None, ai_analysis=None)
        )

        application = await service.create(
            conn,
            user_id=1,
            full_name="Juan Santos Dela Cruz",
            address="12 Rizal St, Manila",
            phone="+639171234567",
            dob=date(1990, 5, 17),
        )

        assert application.id == 11
        assert application.status == VerificationStatus.PENDING
        args = conn.fetchrow.call_args.args
        assert "INSERT INTO applications" in args[0]
        assert args[6] == "pending"


class TestReads:
    """Tests for current / queue / history reads."""

    async def test_current_is_newest_with_tiebreak(self, service, db):
        db.fetchrow.return_value = application_row(make_application())

        await service.get_current(1)

        query = db.fetchrow.call_args.args[0]
        assert "ORDER BY a.created_at DESC, a.id DESC" in query
        assert "LIMIT 1" in query

    async def test_current_none_when_never_applied(self, service, db):
        db.fetchrow.return_value = None

        assert await service.get_current(1) is None

    async def test_lock_current_uses_for_update(self, service):
        conn = MockConnection()
        conn.fetchrow.return_value = None

        await service.lock_current(conn, 1)

        assert "FOR UPDATE" in conn.fetchrow.call_args.args[0]

    async def test_queue_is_fifo_pending_only(self, service, db):
        db.fetch.return_value = [
            application_row(make_application(application_id=1)),
            application_row(make_application(application_id=2)),
        ]

        queue = await service.list_pending()

        assert [a.id for a in queue] == [1, 2]
        query, status = db.fetch.call_args.args
        assert "ORDER BY a.created_at ASC" in query
        assert status == "pending"

    async def test_history_defaults_to_all_decided_statuses(self, service, db):
        await service.list_decided()

        statuses = db.fetch.call_args.args[1]
        assert sorted(statuses) == ["approved", "needs_info", "rejected"]

    async def test_history_ordered_by_latest_decision(self, service, db):
        decided = datetime(2024, 3, 1, tzinfo=timezone.utc)
        row = application_row(make_application(status=VerificationStatus.NEEDS_INFO))
        row["decided_at"] = decided
        db.fetch.return_value = [row]

        history = await service.list_decided()

        query = db.fetch.call_args.args[0]
        assert "FROM validator_actions va" in query
        assert "ORDER BY decided_at DESC" in query
        assert "a.updated_at DESC" not in query
        assert history[0].decided_at == decided

    async def test_history_filters_one_status(self, service, db):
        await service.list_decided(VerificationStatus.REJECTED)

        assert db.fetch.call_args.args[1] == ["rejected"]

    async def test_for_user_returns_full_history(self, service, db):
        db.fetch.return_value = [
            application_row(make_application(application_id=1, status=VerificationStatus.REJECTED)),
            application_row(make_application(application_id=2)),
        ]

        history = await service.list_for_user(1)

        assert [a.status for a in history] == [VerificationStatus.REJECTED, VerificationStatus.PENDING]


class TestWrites:
    """Tests for evidence writes."""

    async def test_update_biometrics_serialises_analysis(self, service):
        conn = MockConnection()

        await service.update_biometrics(conn, 10, "selfie", {"score": 1})

        args = conn.execute.call_args.args
        assert args[1] == "selfie"
        assert json.loads(args[2]) == {"score": 1}
        assert args[4] == 10

    async def test_update_biometrics_without_analysis(self, service):
        conn = MockConnection()

        await service.update_biometrics(conn, 10, "selfie")

        assert conn.execute.call_args.args[2] is None

    async def test_update_evidence_keeps_images_when_blank(self, service):
        conn = MockConnection()

        await service.update_evidence(
            conn,
            10,
            full_name="Juan Dela Cruz",
            address="New address",
            phone="+639170000000",
            dob=date(1990, 5, 17),
            id_card_front="",
            id_card_back=None,
            selfie_image="new-selfie",
        )

        query, *args = conn.execute.call_args.args
        assert "COALESCE($5, id_card_front)" in query
        assert args[4] is None
        assert args[5] is None
        assert args[6] == "new-selfie"

    async def test_update_evidence_keeps_images_when_whitespace(self, service):
        conn = MockConnection()

        await service.update_evidence(
            conn,
            10,
            full_name="Juan Dela Cruz",
            address="New address",
            phone="+639170000000",
            dob=date(1990, 5, 17),
            id_card_front="   ",
            id_card_back="\n",
            selfie_image=" \t ",
        )

        args = conn.execute.call_args.args[1:]
        assert args[4:7] == (None, None, None)

    async def test_record_action(self, service):
        conn = MockConnection()

        await service.record_action(conn, 10, 3, "reject", "Blurry")

        args = conn.execute.call_args.args
        assert "INSERT INTO validator_actions" in args[0]
        assert args[1:5] == (10, 3, "reject", "Blurry")
