"""Pytest configuration and fixtures for the profile service tests.

API tests run against a throwaway SQLite database (aiosqlite) per test;
Redis-backed token revocation is replaced by an in-memory set.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DEBUG", "false")

from typing import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from app.auth.jwt import create_access_token  # noqa: E402
from app.auth.password import hash_password  # noqa: E402
from app.auth.revocation import TokenRevocation  # noqa: E402
from app.config import settings  # noqa: E402
from app.database import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models.user import User, UserRole  # noqa: E402
from app.schemas.profile import UploadedDocument  # noqa: E402
from app.services.profile_gateway import ProfileGateway, ProfileRecord, UserIdentity  # noqa: E402


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Test client; every request gets its own session, like production."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


class FakeBucket:
    """In-memory stand-in for the boto3 S3 client calls the store makes."""

    def __init__(self):
        self.objects: dict[str, dict] = {}

    def put_object(self, Bucket, Key, Body, ContentType):
        self.objects[Key] = {"bucket": Bucket, "body": Body, "content_type": ContentType}
        return {"ETag": "test"}

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        return f"https://s3.test/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"


@pytest.fixture(autouse=True)
def document_bucket(monkeypatch):
    bucket = FakeBucket()
    monkeypatch.setattr(settings, "s3_bucket", "test-documents")
    monkeypatch.setattr("app.services.document_storage.get_s3_client", lambda: bucket)
    return bucket


@pytest.fixture(autouse=True)
def revoked_tokens(monkeypatch) -> set:
    """In-memory stand-in for the Redis revocation list."""
    revoked: set[str] = set()

    async def revoke_token(token: str, expires_at: float) -> bool:
        revoked.add(token)
        return True

    async def is_revoked(token: str) -> bool:
        return token in revoked

    monkeypatch.setattr(TokenRevocation, "revoke_token", staticmethod(revoke_token))
    monkeypatch.setattr(TokenRevocation, "is_revoked", staticmethod(is_revoked))
    return revoked


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    user = User(
        email="ada@example.com",
        full_name="Ada King Lovelace",
        hashed_password=hash_password("testpassword123"),
        role=UserRole.PHYSICIAN,
        is_active=True,
        user_metadata={"full_name": "Ada King Lovelace"},
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def facility_user(db_session: AsyncSession) -> User:
    user = User(
        email="staffing@mercy.example.com",
        full_name="Mercy Staffing",
        hashed_password=hash_password("testpassword123"),
        role=UserRole.FACILITY,
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
def test_token(test_user: User) -> str:
    return create_access_token(user_id=test_user.id, role=test_user.role.value)


@pytest.fixture
def auth_headers(test_token: str) -> dict:
    return {"Authorization": f"Bearer {test_token}"}


@pytest.fixture
def facility_headers(facility_user: User) -> dict:
    token = create_access_token(user_id=facility_user.id, role=facility_user.role.value)
    return {"Authorization": f"Bearer {token}"}


# ── Section data ─────────────────────────────────────────────────

def _document(doc_id: str, name: str) -> dict:
    return {
        "id": doc_id,
        "name": name,
        "size": 2048,
        "upload_date": "2026-01-05T12:00:00+00:00",
        "url": f"/api/profile/documents/cv/{doc_id}",
    }


@pytest.fixture
def valid_sections() -> dict[str, dict]:
    """One complete value for every section, in canonical shape."""
    return {
        "personal_identifiers": {
            "legal_first_name": "Ada",
            "legal_last_name": "Lovelace",
            "email": "ada@example.com",
            "phone": "(555) 123-4567",
            "address": "1 Main St",
            "city": "Boston",
            "state": "MA",
            "zip_code": "02118",
        },
        "professional_information": {
            "npi_number": "1234567890",
            "specialty": "Emergency Medicine",
            "years_experience": "12",
            "board_certified": False,
        },
        "licensure": {
            "licenses": [
                {
                    "id": "lic-1",
                    "state": "CA",
                    "license_number": "MD1",
                    "issue_date": "2015-06-01",
                    "expiration_date": "2099-01-01",
                    "status": "Active",
                }
            ]
        },
        "document_uploads": {
            "cv": _document("1", "cv.pdf"),
            "npdb_report": _document("2", "npdb.pdf"),
        },
        "questionnaires": {
            "facility_questionnaire": [
                {"question_id": qid, "answer": "No"}
                for qid in (
                    "malpractice-history", "license-discipline", "hospital-privileges",
                    "dea-action", "criminal-history", "health-limitations", "peer-review",
                )
            ],
            "insurance_questionnaire": [
                {"question_id": "current-coverage", "answer": "Yes"},
                {"question_id": "coverage-type", "answer": "Occurrence"},
                {"question_id": "coverage-limits", "answer": "$1M / $3M"},
                {"question_id": "claims-history", "answer": "0"},
                {"question_id": "tail-coverage-needed", "answer": "No"},
            ],
        },
        "digital_signature": {
            "full_legal_name": "Ada Lovelace",
            "agreed": True,
            "timestamp": "2026-01-05T12:00:00+00:00",
            "attestation_date": "January 05, 2026 12:00:00 PM UTC",
            "ip_address": "203.0.113.7",
            "device_info": "pytest",
        },
    }


# ── In-memory gateway ────────────────────────────────────────────

class RecordingGateway(ProfileGateway):
    """Gateway double that records every call and can be told to fail."""

    def __init__(self, identity: UserIdentity, record: ProfileRecord | None = None):
        super().__init__(identity)
        self.record = record
        self.calls: list[tuple] = []
        self.fail_with: Exception | None = None
        self.write_result = True

    def _call(self, *call):
        self.calls.append(call)
        if self.fail_with is not None and call[0] != "read_profile":
            raise self.fail_with

    def calls_named(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    async def read_profile(self, user_id):
        self._call("read_profile", user_id)
        return self.record

    async def create_profile(self, user_id):
        self._call("create_profile", user_id)
        return True

    async def write_profile_section(self, user_id, section_id, data):
        self._call("write_profile_section", user_id, section_id, data)
        return self.write_result

    async def set_completion_flag(self, user_id, section_id, is_complete):
        self._call("set_completion_flag", user_id, section_id, is_complete)
        return self.write_result

    async def save_position(self, user_id, section_id):
        self._call("save_position", user_id, section_id)
        return True

    async def upload_document(self, user_id, category, filename, content):
        self._call("upload_document", user_id, category, filename)
        return UploadedDocument(
            id="99",
            name=filename,
            size=len(content),
            upload_date="2026-01-05T12:00:00+00:00",
            url=f"/api/profile/documents/{category}/99",
        )

    async def finalize_profile(self, user_id):
        self._call("finalize_profile", user_id)
        if self.record is not None:
            self.record.is_complete = True
        return True


@pytest.fixture
def identity() -> UserIdentity:
    return UserIdentity(
        id="user-1",
        email="ada@example.com",
        display_name="Ada Lovelace",
        metadata={"full_name": "Ada King Lovelace"},
    )


@pytest.fixture
def make_gateway(identity):
    def _make(record: ProfileRecord | None = None) -> RecordingGateway:
        return RecordingGateway(identity, record)
    return _make


@pytest.fixture
def make_record(identity):
    def _make(sections: dict | None = None, **kwargs) -> ProfileRecord:
        return ProfileRecord(
            user_id=identity.id,
            sections={
                key: None
                for key in (
                    "personal_identifiers", "professional_information", "licensure",
                    "document_uploads", "questionnaires", "digital_signature",
                    "optional_preferences",
                )
            } | (sections or {}),
            completion={},
            **kwargs,
        )
    return _make


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
    config.addinivalue_line("markers", "auth: Authentication tests")
