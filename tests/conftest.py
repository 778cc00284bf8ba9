from __future__ import annotations

import os

import pytest

import shiftboard.db as app_db

os.environ.setdefault("ADMIN_TOKEN", "test-admin-token")


@pytest.fixture(autouse=True)
def reset_database(tmp_path, monkeypatch):
    db_file = tmp_path / "test_shiftboard.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")

    # Rebind per test so every test gets its own writable SQLite file.
    app_db.engine.dispose()
    app_db.DATABASE_URL = app_db.get_database_url()
    app_db.engine = app_db.build_engine(app_db.DATABASE_URL)
    app_db.SessionLocal = app_db.build_session_factory(app_db.engine)

    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.Base.metadata.create_all(bind=app_db.engine)
    yield
    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.engine.dispose()
