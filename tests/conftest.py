"""
Test configuration and fixtures.

Provides:
- Per-test SQLite file (aiosqlite) for the relational store
- In-memory detail gateway with failure injection in place of MongoDB
- Seeded users: student S1 (sp1, advised by ap1), student S2 (sp2, advised
  by ap2), advisors A1 (ap1) and A2 (ap2), and an admin
- HTTPX AsyncClient over ASGITransport with dependency overrides
"""
import os
from collections import Counter
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

# settings are read at import time
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["AUTO_CREATE_TABLES"] = "False"

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from pydantic import Field
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from achievement_api.core.database import Base, get_db, get_session_factory
from achievement_api.core.deps import get_detail_gateway, get_envelope, get_integrity, get_storage
from achievement_api.core.errors import NotFound, StoreUnavailable, ValidationFailed
from achievement_api.core.identity import IdentityEnvelope
from achievement_api.core.integrity import IntegrityChannel
from achievement_api.core.revocation import RevocationSet
from achievement_api.core.security import get_password_hash
from achievement_api.models import achievement, user  # noqa: F401
from achievement_api.models.achievement_detail import AchievementContent, Attachment
from achievement_api.models.user import AdvisorProfile, StudentProfile, User
from achievement_api.seed import seed_roles
from achievement_api.services.achievement_service import AchievementService
from achievement_api.services.attachment_storage import AttachmentStorage
from achievement_api.services.authorization import DEFAULT_ROLE_PERMISSIONS, Actor, RoleName
from achievement_api.services.detail_gateway import REPLACEABLE_FIELDS
from achievement_api.services.reference_gateway import ReferenceGateway
from achievement_api.utils.dates import utcnow

PASSWORD = "correct-horse-battery"


# =============================================================================
# Detail store stand-in
# =============================================================================

class StoredDetail(AchievementContent):
    id: str
    attachments: Optional[List[Attachment]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None


class FakeDetailGateway:
    """Same interface as DetailGateway, backed by a dict. Names in ``failing`` raise StoreUnavailable."""

    def __init__(self):
        self.docs: Dict[str, StoredDetail] = {}
        self.failing: set = set()

    def _check(self, name: str) -> None:
        if name in self.failing:
            raise StoreUnavailable(f"{name} failed")

    def _scoped(self, student_ids: Optional[Iterable[str]]) -> List[StoredDetail]:
        ids = None if student_ids is None else set(student_ids)
        return [
            d for d in self.docs.values()
            if d.deleted_at is None and (ids is None or d.student_id in ids)
        ]

    async def insert(self, content: AchievementContent) -> str:
        self._check("insert")
        detail_id = str(ObjectId())
        self.docs[detail_id] = StoredDetail(id=detail_id, **content.model_dump())
        return detail_id

    async def get_by_id(self, detail_id: str) -> Optional[StoredDetail]:
        self._check("get_by_id")
        return self.docs.get(detail_id)

    async def get_by_ids(self, detail_ids: Iterable[str]) -> List[StoredDetail]:
        self._check("get_by_ids")
        return [
            self.docs[i] for i in detail_ids
            if i in self.docs and self.docs[i].deleted_at is None
        ]

    async def replace_fields(self, detail_id: str, patch: Dict[str, Any]) -> None:
        self._check("replace_fields")
        unknown = set(patch) - REPLACEABLE_FIELDS
        if unknown:
            raise ValidationFailed("fields cannot be updated")
        doc = self.docs.get(detail_id)
        if doc is None or doc.deleted_at is not None:
            raise NotFound("achievement not found")
        merged = doc.model_dump()
        merged.update(patch)
        merged["updated_at"] = utcnow()
        self.docs[detail_id] = StoredDetail(**merged)

    async def soft_delete(self, detail_id: str) -> None:
        self._check("soft_delete")
        doc = self.docs.get(detail_id)
        if doc is None or doc.deleted_at is not None:
            raise NotFound("achievement not found")
        doc.deleted_at = doc.updated_at = utcnow()

    async def restore(self, detail_id: str) -> None:
        self._check("restore")
        doc = self.docs.get(detail_id)
        if doc is None:
            raise NotFound("achievement not found")
        doc.deleted_at = None
        doc.updated_at = utcnow()

    async def hard_delete(self, detail_id: str) -> bool:
        self._check("hard_delete")
        return self.docs.pop(detail_id, None) is not None

    async def append_attachment(self, detail_id: str, attachment: Attachment) -> None:
        self._check("append_attachment")
        doc = self.docs.get(detail_id)
        if doc is None or doc.deleted_at is not None:
            raise NotFound("achievement not found")
        if doc.attachments is None:
            doc.attachments = []
        doc.attachments.append(attachment)
        doc.updated_at = utcnow()

    async def count(self, student_ids: Optional[Iterable[str]] = None) -> int:
        self._check("count")
        return len(self._scoped(student_ids))

    async def type_distribution(self, student_ids=None) -> Dict[str, int]:
        self._check("type_distribution")
        return dict(Counter(d.type for d in self._scoped(student_ids)))

    async def event_year_distribution(self, student_ids=None) -> Dict[str, int]:
        self._check("event_year_distribution")
        return dict(Counter(
            d.details.event_date[:4] for d in self._scoped(student_ids) if d.details.event_date
        ))

    async def competition_level_distribution(self, student_ids=None) -> Dict[str, int]:
        self._check("competition_level_distribution")
        return dict(Counter(
            d.details.competition_level for d in self._scoped(student_ids) if d.details.competition_level
        ))


class RecordingIntegrity(IntegrityChannel):
    def __init__(self):
        super().__init__()
        self.events: List[tuple] = []

    def compensation_failed(self, operation, reference_id, detail_id, original, compensation_error):
        self.events.append(("compensation_failed", operation, reference_id, detail_id))
        super().compensation_failed(operation, reference_id, detail_id, original, compensation_error)

    def detail_missing(self, reference_id, detail_id, soft_deleted):
        self.events.append(("detail_missing", reference_id, detail_id))
        super().detail_missing(reference_id, detail_id, soft_deleted)

    def admin_override(self, actor_id, reference_id, prior_status, action):
        self.events.append(("admin_override", actor_id, reference_id, prior_status))
        super().admin_override(actor_id, reference_id, prior_status, action)

    def kinds(self) -> List[str]:
        return [event[0] for event in self.events]


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
async def engine(tmp_path):
    # file-backed so concurrent aggregation sessions get their own connections
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'achievements.db'}",
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="session")
def password_hash() -> str:
    return get_password_hash(PASSWORD)


@pytest.fixture
async def world(session_factory, password_hash):
    """Roles, users and profiles shared by most tests."""
    async with session_factory() as session:
        roles = await seed_roles(session)

        def add_user(user_id, username, full_name, role):
            session.add(User(
                id=user_id,
                username=username,
                email=f"{username}@campus.test",
                password_hash=password_hash,
                full_name=full_name,
                role_id=roles[role.value].id,
            ))

        add_user("u-s1", "s1", "Siti Aminah", RoleName.STUDENT)
        add_user("u-s2", "s2", "Budi Santoso", RoleName.STUDENT)
        add_user("u-a1", "a1", "Dr. Rahma", RoleName.ADVISOR)
        add_user("u-a2", "a2", "Dr. Hadi", RoleName.ADVISOR)
        add_user("u-admin", "admin", "Administrator", RoleName.ADMIN)
        await session.flush()

        session.add(AdvisorProfile(id="ap1", user_id="u-a1", lecturer_number="L001", department="Informatics"))
        session.add(AdvisorProfile(id="ap2", user_id="u-a2", lecturer_number="L002", department="Mathematics"))
        await session.flush()
        session.add(StudentProfile(id="sp1", user_id="u-s1", student_number="2021001", program="CS", year="2021", advisor_id="ap1"))
        session.add(StudentProfile(id="sp2", user_id="u-s2", student_number="2021002", program="Math", year="2021", advisor_id="ap2"))
        await session.commit()
    return roles


# =============================================================================
# Actors
# =============================================================================

def make_actor(user_id, role, student=None, advisor=None, advisees=()):
    return Actor(
        user_id=user_id,
        role=role,
        permissions=frozenset(DEFAULT_ROLE_PERMISSIONS[role]),
        student_profile_id=student,
        advisor_profile_id=advisor,
        advisee_ids=frozenset(advisees),
    )


@pytest.fixture
def s1():
    return make_actor("u-s1", RoleName.STUDENT, student="sp1")


@pytest.fixture
def s2():
    return make_actor("u-s2", RoleName.STUDENT, student="sp2")


@pytest.fixture
def a1():
    return make_actor("u-a1", RoleName.ADVISOR, advisor="ap1", advisees={"sp1"})


@pytest.fixture
def a2():
    return make_actor("u-a2", RoleName.ADVISOR, advisor="ap2", advisees={"sp2"})


@pytest.fixture
def admin():
    return make_actor("u-admin", RoleName.ADMIN)


# =============================================================================
# Services
# =============================================================================

@pytest.fixture
def details():
    return FakeDetailGateway()


@pytest.fixture
def integrity():
    return RecordingIntegrity()


@pytest.fixture
def storage(tmp_path):
    return AttachmentStorage(root=str(tmp_path / "uploads"))


@pytest.fixture
def references(session):
    return ReferenceGateway(session)


@pytest.fixture
def service(world, references, details, integrity, storage):
    return AchievementService(references, details, integrity=integrity, storage=storage, compensation_timeout=1.0)


@pytest.fixture
def competition_payload():
    return {
        "type": "competition",
        "title": "Regional Coding 2025",
        "details": {"eventDate": "2025-09-01", "competitionLevel": "regional", "rank": 1},
    }


# =============================================================================
# HTTP client
# =============================================================================

@pytest.fixture
def revocations():
    return RevocationSet()


@pytest.fixture
def envelope(revocations):
    return IdentityEnvelope(revocations=revocations)


@pytest.fixture
async def client(world, session_factory, details, integrity, storage, envelope):
    from achievement_api.main import app

    async def override_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_detail_gateway] = lambda: details
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_integrity] = lambda: integrity
    app.dependency_overrides[get_envelope] = lambda: envelope

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def login(client: AsyncClient, username: str) -> Dict[str, Any]:
    response = await client.post("/api/v1/auth/login", json={"username": username, "password": PASSWORD})
    assert response.status_code == 200, response.text
    return response.json()["data"]


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
