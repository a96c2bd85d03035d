"""Shared pytest fixtures for engui tests."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from engui.db.schema import Base
from engui.db.session import create_sqlite_engine


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Point the public dir at a temp dir and drop any real secret key."""
    monkeypatch.setenv("ENGUI_PUBLIC_DIR", str(tmp_path / "public"))
    monkeypatch.delenv("ENGUI_SECRET_KEY", raising=False)
    monkeypatch.delenv("ENGUI_DEFAULT_USER_ID", raising=False)
    return tmp_path


@pytest.fixture
def engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_sqlite_engine("sqlite://")
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def session(engine):
    """Create a database session for testing."""
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


def create_test_app_and_client(engine):
    """Create app backed by the given engine and return its client."""
    from engui.api.app import create_app, get_db_session

    app = create_app(resume_jobs=False)
    Session = sessionmaker(bind=engine)

    def override_get_db():
        session = Session()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db_session] = override_get_db
    return TestClient(app)


@pytest.fixture
def client(engine):
    return create_test_app_and_client(engine)
