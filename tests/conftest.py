import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="sps-tests-")

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["RATE_LIMIT"] = "100000/minute"
os.environ["STORAGE_DIR"] = os.path.join(_TMP, "storage")
os.environ["JWT_SECRET"] = "test-secret"
os.environ["TZ_DEFAULT"] = "Europe/Paris"
os.environ.pop("VISITS_API_URL", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sps_dashboard.db import Base, get_db
from sps_dashboard.main import app
from sps_dashboard.storage.local_provider import LocalStorageProvider, get_storage

from .factories import make_user

engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def storage(tmp_path):
    return LocalStorageProvider(str(tmp_path / "storage"))


@pytest.fixture()
def client(db, storage):
    def override_get_db():
        s = TestingSessionLocal()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def admin(db):
    return make_user(db, "admin@sps-coord.fr", role="admin", first_name="Alice", last_name="Admin")


@pytest.fixture()
def coordinator(db):
    return make_user(db, "jean.martin@sps-coord.fr", first_name="Jean", last_name="Martin")


@pytest.fixture()
def other_coordinator(db):
    return make_user(db, "paul.durand@sps-coord.fr", first_name="Paul", last_name="Durand")
