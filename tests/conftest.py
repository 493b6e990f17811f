import os
import tempfile

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DOCUMENT_STORAGE_DIR", tempfile.mkdtemp(prefix="pep-docs-"))
os.environ.setdefault("PUBLIC_BASE_URL", "http://testserver")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from pep_portal.main import app
from pep_portal.db.base import Base
from pep_portal.db.session import get_db


@pytest.fixture()
def db_engine(tmp_path):
    """
    File-backed SQLite per test. Every request gets its own connection and
    transaction, so concurrent requests behave the way they do in production.
    """
    db_engine = create_engine(
        f"sqlite:///{tmp_path / 'pep_test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def override_get_db(session_factory):
    def _get_db_override():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db_override
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client():
    with TestClient(app) as c:
        yield c


# ---------------------------------------------------------------------------
# Client engine fixtures
# ---------------------------------------------------------------------------
from pep_portal.client.documents import DocumentPublisher  # noqa: E402
from pep_portal.client.error_log import ErrorLogger  # noqa: E402
from pep_portal.client.identity import IdentityProvider  # noqa: E402
from pep_portal.client.lifecycle import LifecycleStateMachine  # noqa: E402
from pep_portal.client.persistence import PersistenceEngine  # noqa: E402
from pep_portal.client.storage import LocalStorage  # noqa: E402
from pep_portal.core.security import create_access_token  # noqa: E402

from tests.fakes import BOSS_ID, GRAND_ID, OWNER_ID, FakeRemote, directory_record  # noqa: E402


@pytest.fixture()
def storage(tmp_path):
    return LocalStorage(tmp_path / "storage")


@pytest.fixture()
def identity():
    provider = IdentityProvider()
    provider.acquire(create_access_token({"employee_id": OWNER_ID, "name": "Ada Tester", "reports_to": BOSS_ID}))
    return provider


@pytest.fixture()
def remote():
    return FakeRemote(
        OWNER_ID,
        [
            directory_record(GRAND_ID, "Grace"),
            directory_record(BOSS_ID, "Boss", reports_to=GRAND_ID),
            directory_record(OWNER_ID, "Ada", reports_to=BOSS_ID),
        ],
    )


@pytest.fixture()
def error_log(storage):
    return ErrorLogger(storage)


@pytest.fixture()
def engine(remote, identity, storage, error_log):
    return PersistenceEngine(remote, identity, storage, error_log, period_year=2025)


@pytest.fixture()
def publisher(remote, error_log, tmp_path):
    return DocumentPublisher(remote, error_log, downloads_dir=tmp_path / "downloads")


@pytest.fixture()
def lifecycle(engine, publisher):
    return LifecycleStateMachine(engine, publisher)
