"""Pytest configuration and shared fixtures.

Settings are read from the environment when ``learnsync.config.settings`` is
first imported, so the test environment is set up before any project import.
"""

import os
import tempfile
from pathlib import Path

_TEST_DIR = tempfile.mkdtemp(prefix="learnsync-tests-")

os.environ.update({
    "DATABASE_URL": f"sqlite:///{Path(_TEST_DIR) / 'app.db'}",
    "LOCK_BACKEND": "local",
    "LOCK_BLOCKING_TIMEOUT_SECONDS": "5",
    "CELERY_BROKER_URL": "memory://",
    "CELERY_RESULT_BACKEND": "cache+memory://",
    "TASK_RETRY_COUNTDOWN": "0",
    "DEBUG": "false",
    "LOG_LEVEL": "DEBUG",
})

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from learnsync.core.database import build_engine, create_tables, drop_tables  # noqa: E402
from learnsync.core.locks import LocalTenantLockManager  # noqa: E402
from learnsync.mocks import InMemoryGroupStore  # noqa: E402
from learnsync.models import School, User, SchoolMember, SchoolRole  # noqa: E402
from learnsync.services.domain import GroupService, SchoolMemberService  # noqa: E402

SCHOOL_ID = "school-1"
OTHER_SCHOOL_ID = "school-2"

# user id -> role in SCHOOL_ID
SCHOOL_USERS = {
    1: SchoolRole.SUPER_ADMIN,
    2: SchoolRole.ADMIN,
    3: SchoolRole.TEACHER,
    4: SchoolRole.STUDENT,
    5: SchoolRole.STUDENT,
    6: SchoolRole.STUDENT,
}
OUTSIDER_ID = 99


# =============================================================================
# In-memory fixtures
# =============================================================================


@pytest.fixture
def store() -> InMemoryGroupStore:
    """In-memory store with two schools and their members."""
    store = InMemoryGroupStore()
    for user_id, role in SCHOOL_USERS.items():
        store.add_school_member(SCHOOL_ID, user_id, role)
    store.add_school_member(OTHER_SCHOOL_ID, OUTSIDER_ID, SchoolRole.ADMIN)
    return store


@pytest.fixture
def lock_manager() -> LocalTenantLockManager:
    return LocalTenantLockManager(blocking_timeout=5)


@pytest.fixture
def service(store, lock_manager) -> GroupService:
    """Initialized GroupService over the in-memory store."""
    service = GroupService(store, lock_manager)
    service.initialize({"hierarchy_max_depth": 64})
    return service


@pytest.fixture
def member_service(store) -> SchoolMemberService:
    service = SchoolMemberService(store)
    service.initialize()
    return service


@pytest.fixture
def make_group(service):
    """Create a group in SCHOOL_ID and return its record."""

    def _make(name: str, parent=None, school_id: str = SCHOOL_ID):
        parent_id = parent.id if parent is not None else None
        return service.create_group(school_id, name, parent_id).unwrap()

    return _make


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """SQLite engine on a fresh file with all tables created."""
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    create_tables(bind=engine)
    yield engine
    drop_tables(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    db = factory()
    db.add_all([School(id=SCHOOL_ID, name="Riverside"), School(id=OTHER_SCHOOL_ID, name="Hillside")])
    for user_id in list(SCHOOL_USERS) + [OUTSIDER_ID]:
        db.add(User(id=user_id, full_name=f"User {user_id}", email=f"user{user_id}@example.com"))
    db.flush()
    for user_id, role in SCHOOL_USERS.items():
        db.add(SchoolMember(user_id=user_id, school_id=SCHOOL_ID, role=role))
    db.add(SchoolMember(user_id=OUTSIDER_ID, school_id=OTHER_SCHOOL_ID, role=SchoolRole.ADMIN))
    db.commit()
    db.close()

    return factory


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()
