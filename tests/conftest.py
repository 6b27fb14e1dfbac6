import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from typing import AsyncGenerator, Dict, List, Optional  # noqa: E402
from uuid import UUID  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.auth.models import StudentProfile, TeacherProfile, User  # noqa: E402
from app.auth.permissions import default_permissions  # noqa: E402
from app.auth.schemas import CurrentUser  # noqa: E402
from app.auth.security import create_access_token  # noqa: E402
from app.core.models import SchoolClass  # noqa: E402
from app.core.notifications import NotificationEvent, get_notifier  # noqa: E402
from app.db.session import Base, build_sessionmaker, get_db  # noqa: E402
from app.main import app  # noqa: E402


TEST_DATABASE_URL = "sqlite+aiosqlite://"


class RecordingNotifier:
    """Collects dispatched events; set fail=True to simulate a broken channel."""

    def __init__(self) -> None:
        self.events: List[NotificationEvent] = []
        self.fail = False

    async def dispatch(self, event: NotificationEvent) -> None:
        if self.fail:
            raise RuntimeError("notification channel down")
        self.events.append(event)


@pytest.fixture()
async def sessionmaker():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_sessionmaker(engine)
    await engine.dispose()


@pytest.fixture()
async def db_session(sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Session for seeding data and calling services directly."""
    async with sessionmaker() as session:
        yield session


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
async def client(sessionmaker, notifier) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app. Each request gets its own session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with sessionmaker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


class Factory:
    """Seeds users, profiles and classes."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._n = 0

    def _email(self, prefix: str) -> str:
        self._n += 1
        return f"{prefix}{self._n}@example.com"

    async def user(self, role: str, full_name: Optional[str] = None) -> User:
        user = User(
            full_name=full_name or f"{role.title()} {self._n + 1}",
            email=self._email(role.lower()),
            role=role,
            user_type=role.lower() if role in ("TEACHER", "STUDENT") else None,
            status="ACTIVE",
        )
        self.db.add(user)
        await self.db.commit()
        return user

    async def admin(self) -> User:
        return await self.user("ADMIN", "Admin User")

    async def teacher(self, full_name: Optional[str] = None) -> TeacherProfile:
        user = await self.user("TEACHER", full_name)
        profile = TeacherProfile(user_id=user.id, employee_id=f"EMP{self._n}")
        self.db.add(profile)
        await self.db.commit()
        return profile

    async def school_class(
        self,
        class_teacher: Optional[TeacherProfile] = None,
        grade: int = 5,
        section: str = "A",
        capacity: int = 40,
    ) -> SchoolClass:
        cls = SchoolClass(
            name=f"{grade}-{section}",
            grade=grade,
            section=section,
            capacity=capacity,
            class_teacher_id=class_teacher.id if class_teacher else None,
        )
        self.db.add(cls)
        await self.db.commit()
        return cls

    async def student(
        self,
        school_class: Optional[SchoolClass] = None,
        full_name: Optional[str] = None,
        roll_number: Optional[int] = None,
    ) -> StudentProfile:
        user = await self.user("STUDENT", full_name)
        profile = StudentProfile(
            user_id=user.id,
            class_id=school_class.id if school_class else None,
            roll_number=roll_number,
        )
        self.db.add(profile)
        await self.db.commit()
        return profile


@pytest.fixture()
def factory(db_session) -> Factory:
    return Factory(db_session)


def auth_headers(user_id: UUID) -> Dict[str, str]:
    token = create_access_token(subject={"user_id": str(user_id)})
    return {"Authorization": f"Bearer {token}"}


def actor(
    user_id: UUID,
    role: str,
    teacher_id: Optional[UUID] = None,
    student_id: Optional[UUID] = None,
) -> CurrentUser:
    """CurrentUser for calling services directly, with the role's default permissions."""
    return CurrentUser(
        id=user_id,
        full_name=role.title(),
        role=role,
        permissions=default_permissions(role),
        teacher_id=teacher_id,
        student_id=student_id,
    )


@pytest.fixture()
def headers():
    return auth_headers


@pytest.fixture()
def make_actor():
    return actor
