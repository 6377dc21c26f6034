import os

os.environ.setdefault("DB_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.backend.config import IngestConfig, OpenCall
from app.backend.pipeline.intake import UploadHandle
from app.backend.pipeline.notifications import SubmissionEvents
from app.backend.tools.storage import LocalStorage
from app.database import models  # noqa: F401  registers tables on Base.metadata
from app.database.db import Base, get_db

TARGET_FORM = "42"


@pytest.fixture(autouse=True)
def audit_dir(tmp_path, monkeypatch):
    """Keep audit JSONL files out of the working tree."""
    path = tmp_path / "audit"
    monkeypatch.setenv("AUDIT_LOG_DIR", str(path))
    return path


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.sqlite'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(tmp_path / "uploads", "https://example.org/uploads")


@pytest.fixture
def config(tmp_path):
    return IngestConfig(
        target_form_id=TARGET_FORM,
        open_calls=[
            OpenCall(title="Spring Show", form_id="7", slug="spring-show"),
            OpenCall(title="Winter Show", form_id="8", status="inactive"),
        ],
        store_files=True,
        upload_dir=str(tmp_path / "uploads"),
        public_base_url="https://example.org/uploads",
        icon_base_url="https://example.org/icons",
    )


@pytest.fixture
def events():
    """An isolated event dispatcher recording every emitted id."""
    dispatcher = SubmissionEvents()
    dispatcher.received = []
    dispatcher.subscribe(dispatcher.received.append)
    return dispatcher


@pytest.fixture
def make_upload(tmp_path):
    """Write bytes to a temp file and return an UploadHandle pointing at it."""
    spool = tmp_path / "spool"
    spool.mkdir()
    counter = {"n": 0}

    def _make(original_name: str, content: bytes = b"data", content_type=None) -> UploadHandle:
        counter["n"] += 1
        source = spool / f"upload-{counter['n']}"
        source.write_bytes(content)
        return UploadHandle(source_path=str(source), original_name=original_name, content_type=content_type)

    return _make


@pytest.fixture
def client(session_factory, config, storage):
    from app.backend.main import app
    from app.backend.routers.submit import get_config, get_storage

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_config] = lambda: config
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
