"""Shared fakes and model factories for unit tests."""

from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

from citizen_registry.models.application import Application
from citizen_registry.models.user import AuthenticatedUser, Role, User, VerificationStatus


# ---------------------------------------------------------------------------
# asyncpg fakes
# ---------------------------------------------------------------------------

class MockTransaction:
    """Records whether the block committed or rolled back."""

    def __init__(self, conn: "MockConnection"):
        self._conn = conn

    async def __aenter__(self):
        self._conn.in_transaction = True
        self._conn.transactions_started += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self._conn.in_transaction = False
        if exc_type is None:
            self._conn.commits += 1
        else:
            self._conn.rollbacks += 1
        return False


class MockConnection:
    """Mock asyncpg connection with common query methods."""

    def __init__(self):
        self.execute = AsyncMock(return_value="UPDATE 1")
        self.fetchrow = AsyncMock()
        self.fetchval = AsyncMock()
        self.fetch = AsyncMock(return_value=[])
        self.in_transaction = False
        self.transactions_started = 0
        self.commits = 0
        self.rollbacks = 0

    def transaction(self):
        return MockTransaction(self)

    def is_in_transaction(self) -> bool:
        return self.in_transaction


class MockPool:
    """Mock asyncpg pool with acquire() context manager."""

    def __init__(self, conn: MockConnection):
        self._conn = conn

    def acquire(self):
        return _MockPoolAcquire(self._conn)


class _MockPoolAcquire:
    def __init__(self, conn):
        self._conn = conn

    async def __aenter__(self):
        return self._conn

    async def __aexit__(self, *args):
        pass


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------

def make_user(
    user_id: int = 1,
    email: str = "juan@example.com",
    name: str = "Juan Dela Cruz",
    role: Role = Role.CITIZEN,
    status: VerificationStatus = VerificationStatus.PENDING,
    rejection_reason=None,
) -> User:
    now = datetime.now(timezone.utc)
    return User(
        id=user_id,
        email=email,
        name=name,
        role=role,
        verification_status=status,
        rejection_reason=rejection_reason,
        rejection_date=now if rejection_reason else None,
        created_at=now,
        updated_at=now,
    )


def make_application(
    application_id: int = 10,
    user_id: int = 1,
    status: VerificationStatus = VerificationStatus.PENDING,
    full_name: str = "Juan Santos Dela Cruz",
    **overrides,
) -> Application:
    now = datetime.now(timezone.utc)
    fields = dict(
        id=application_id,
        user_id=user_id,
        full_name=full_name,
        address="12 Rizal St, Manila",
        phone="+639171234567",
        dob=date(1990, 5, 17),
        id_card_front="data:image/png;base64,FRONT",
        id_card_back="data:image/png;base64,BACK",
        selfie_image="data:image/png;base64,SELFIE",
        ai_analysis={"liveness": 0.98},
        status=status,
        created_at=now,
        updated_at=now,
        user_email="juan@example.com",
    )
    fields.update(overrides)
    return Application(**fields)


def user_row(user: User) -> dict:
    """A users row as asyncpg would return it."""
    row = user.model_dump()
    row["role"] = user.role.value
    row["verification_status"] = user.verification_status.value
    return row


def application_row(application: Application) -> dict:
    """An applications row as asyncpg would return it."""
    row = application.model_dump(exclude={"ai_analysis"})
    row["status"] = application.status.value
    row["ai_analysis_json"] = application.ai_analysis
    return row


def make_claims(
    user_id: int = 1,
    role: Role = Role.CITIZEN,
    status: VerificationStatus = VerificationStatus.PENDING,
) -> AuthenticatedUser:
    return AuthenticatedUser(
        id=user_id,
        email="juan@example.com" if role == Role.CITIZEN else "staff@example.com",
        name="Juan Dela Cruz" if role == Role.CITIZEN else "Staff Member",
        role=role,
        verification_status=status,
    )


def mock_service(*async_methods: str):
    """An object whose named methods are AsyncMocks."""
    service = type("MockService", (), {})()
    for name in async_methods:
        setattr(service, name, AsyncMock())
    return service
