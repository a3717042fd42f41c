"""Unit tests for validator API endpoints."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from citizen_registry.errors import ConflictError, NotFoundError
from citizen_registry.models.application import ValidatorActionRecord
from citizen_registry.models.user import Role, VerificationStatus
from citizen_registry.models.validator import ValidatorAction
from helpers import make_application, make_claims


@pytest.fixture
def validator(as_user):
    return as_user(make_claims(user_id=3, role=Role.VALIDATOR, status=VerificationStatus.APPROVED))


# ---------------------------------------------------------------------------
# Role guard
# ---------------------------------------------------------------------------

class TestRoleGuard:
    def test_citizen_forbidden(self, client, as_user):
        as_user(make_claims(role=Role.CITIZEN))

        response = client.get("/validator/queue")

        assert response.status_code == 403
        assert response.json()["error"] == "FORBIDDEN"

    def test_anonymous_unauthorized(self, client):
        response = client.get("/validator/queue")

        assert response.status_code == 401

    def test_admin_allowed(self, client, as_user):
        as_user(make_claims(user_id=4, role=Role.ADMIN, status=VerificationStatus.APPROVED))

        with patch("citizen_registry.api.validator.ValidatorService") as MockService:
            MockService.return_value.list_queue = AsyncMock(return_value=[])

            response = client.get("/validator/queue")

        assert response.status_code == 200


# ---------------------------------------------------------------------------
# Queue, detail and history
# ---------------------------------------------------------------------------

class TestReads:
    def test_queue_order_preserved(self, client, validator):
        queue = [make_application(application_id=1), make_application(application_id=2)]

        with patch("citizen_registry.api.validator.ValidatorService") as MockService:
            MockService.return_value.list_queue = AsyncMock(return_value=queue)

            response = client.get("/validator/queue")

        assert response.status_code == 200
        data = response.json()
        assert [entry["id"] for entry in data] == [1, 2]
        assert data[0]["fullName"] == "Juan Santos Dela Cruz"
        assert data[0]["email"] == "juan@example.com"
        assert "submittedAt" in data[0]

    def test_application_detail(self, client, validator):
        action = ValidatorActionRecord(
            id=1,
            application_id=10,
            validator_id=3,
            action="request_info",
            notes="Back of ID missing",
            created_at=datetime.now(timezone.utc),
        )

        with patch("citizen_registry.api.validator.ValidatorService") as MockService:
            MockService.return_value.get_application = AsyncMock(
                return_value=(
                    make_application(),
                    [action],
                    [make_application(application_id=7, status=VerificationStatus.REJECTED)],
                )
            )

            response = client.get("/validator/application/10")

        assert response.status_code == 200
        data = response.json()
        assert data["idCardFront"] == "data:image/png;base64,FRONT"
        assert data["selfieImage"] == "data:image/png;base64,SELFIE"
        assert data["aiAnalysisJson"] == {"liveness": 0.98}
        assert data["actions"][0]["notes"] == "Back of ID missing"
        assert data["otherApplications"] == [
            {
                "id": 7,
                "fullName": "Juan Santos Dela Cruz",
                "status": "rejected",
                "createdAt": data["otherApplications"][0]["createdAt"],
                "updatedAt": data["otherApplications"][0]["updatedAt"],
            }
        ]

    @pytest.mark.parametrize("application_id", ["0", "9223372036854775808"])
    def test_application_id_out_of_range(self, client, validator, application_id):
        with patch("citizen_registry.api.validator.ValidatorService") as MockService:
            MockService.return_value.get_application = AsyncMock()

            response = client.get(f"/validator/application/{application_id}")

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"
        assert response.json()["fields"][0]["field"] == "application_id"
        MockService.return_value.get_application.assert_not_called()

    def test_application_detail_not_found(self, client, validator):
        with patch("citizen_registry.api.validator.ValidatorService") as MockService:
            MockService.return_value.get_application = AsyncMock(
                side_effect=NotFoundError("Application not found")
            )

            response = client.get("/validator/application/999")

        assert response.status_code == 404

    def test_history_filter(self, client, validator):
        decided = [make_application(status=VerificationStatus.REJECTED)]

        with patch("citizen_registry.api.validator.ValidatorService") as MockService:
            MockService.return_value.history = AsyncMock(return_value=decided)

            response = client.get("/validator/history", params={"status": "rejected"})

        assert response.status_code == 200
        assert response.json()[0]["status"] == "rejected"
        assert "decidedAt" in response.json()[0]
        MockService.return_value.history.assert_awaited_once_with(VerificationStatus.REJECTED)

    def test_history_reports_decision_time(self, client, validator):
        decided = datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc)
        resubmitted = datetime(2024, 3, 5, 9, 0, tzinfo=timezone.utc)
        entry = make_application(
            status=VerificationStatus.NEEDS_INFO, updated_at=resubmitted, decided_at=decided
        )

        with patch("citizen_registry.api.validator.ValidatorService") as MockService:
            MockService.return_value.history = AsyncMock(return_value=[entry])

            response = client.get("/validator/history")

        assert response.json()[0]["decidedAt"].startswith("2024-03-01T08:30")

    def test_history_unknown_status(self, client, validator):
        response = client.get("/validator/history", params={"status": "archived"})

        assert response.status_code == 400
        assert response.json()["fields"][0]["field"] == "status"


# ---------------------------------------------------------------------------
# POST /validator/action
# ---------------------------------------------------------------------------

class TestAction:
    def test_approve(self, client, validator):
        with patch("citizen_registry.api.validator.ValidatorService") as MockService:
            MockService.return_value.decide = AsyncMock(return_value=VerificationStatus.APPROVED)

            response = client.post(
                "/validator/action",
                json={"applicationId": 10, "action": "approve", "notes": ""},
            )

        assert response.status_code == 200
        assert response.json() == {"message": "Action recorded successfully", "newStatus": "approved"}
        args = MockService.return_value.decide.call_args.args
        assert args[0] == 10
        assert args[1] == ValidatorAction.APPROVE
        assert args[3].id == 3

    def test_reject_without_notes_never_reaches_service(self, client, validator):
        with patch("citizen_registry.api.validator.ValidatorService") as MockService:
            MockService.return_value.decide = AsyncMock()

            response = client.post(
                "/validator/action",
                json={"applicationId": 10, "action": "reject"},
            )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert body["fields"][0]["field"] == "notes"
        MockService.return_value.decide.assert_not_called()

    def test_unknown_action(self, client, validator):
        response = client.post(
            "/validator/action",
            json={"applicationId": 10, "action": "escalate"},
        )

        assert response.status_code == 400

    def test_application_id_beyond_bigint(self, client, validator):
        with patch("citizen_registry.api.validator.ValidatorService") as MockService:
            MockService.return_value.decide = AsyncMock()

            response = client.post(
                "/validator/action",
                json={"applicationId": 2**63, "action": "approve"},
            )

        assert response.status_code == 400
        assert response.json()["fields"][0]["field"] == "applicationId"
        MockService.return_value.decide.assert_not_called()

    def test_conflict(self, client, validator):
        with patch("citizen_registry.api.validator.ValidatorService") as MockService:
            MockService.return_value.decide = AsyncMock(
                side_effect=ConflictError("Application is not awaiting a decision")
            )

            response = client.post(
                "/validator/action",
                json={"applicationId": 10, "action": "approve"},
            )

        assert response.status_code == 409


# ---------------------------------------------------------------------------
# POST /validator/application/{id}/reopen
# ---------------------------------------------------------------------------

class TestReopen:
    def test_reopen(self, client, validator):
        with patch("citizen_registry.api.validator.ValidatorService") as MockService:
            MockService.return_value.reopen = AsyncMock(return_value=10)

            response = client.post("/validator/application/10/reopen")

        assert response.status_code == 200
        assert response.json()["applicationId"] == 10

    def test_reopen_id_beyond_bigint(self, client, validator):
        with patch("citizen_registry.api.validator.ValidatorService") as MockService:
            MockService.return_value.reopen = AsyncMock()

            response = client.post("/validator/application/9223372036854775808/reopen")

        assert response.status_code == 400
        MockService.return_value.reopen.assert_not_called()

    def test_reopen_approved_as_validator(self, client, validator):
        with patch("citizen_registry.api.validator.ValidatorService") as MockService:
            MockService.return_value.reopen = AsyncMock(
                side_effect=ConflictError("Only an admin can reopen an approved application")
            )

            response = client.post("/validator/application/10/reopen")

        assert response.status_code == 409
