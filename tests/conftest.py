"""Pytest environment isolation for backend tests.

These tests must never touch the runtime database.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

import pytest
from sqlalchemy import delete

# Configure an isolated filesystem root before app settings are imported.
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="arstudio-pytest-")).resolve()
_TEST_DB = _TEST_ROOT / "test.db"

os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DB}"
os.environ["SESSION_STORE"] = "sql"
os.environ["PROGRESS_TICK_SECONDS"] = "0.01"
os.environ["PROGRESS_MAX_STEP"] = "25"
os.environ["PROGRESS_SEED"] = "7"
os.environ["TRAINING_EPOCH_DELAY_SECONDS"] = "0.001"
os.environ["DATA_COLLECTION_SEED"] = "11"

from arstudio.config import get_settings

get_settings.cache_clear()


@pytest.fixture(scope="session", autouse=True)
def _bootstrap_test_environment() -> None:
    """Prepare the database schema once per test session."""
    import arstudio.models  # noqa: F401
    from arstudio.database import Base, engine

    Base.metadata.create_all(bind=engine)
    yield

    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    shutil.rmtree(_TEST_ROOT, ignore_errors=True)


@pytest.fixture(autouse=True)
def _isolate_each_test() -> None:
    """Clear persisted rows and rate-limit windows for every test."""
    from arstudio.api.deps import rate_limiter
    from arstudio.database import Base, SessionLocal

    with SessionLocal() as db:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(delete(table))
        db.commit()

    rate_limiter.reset()
    yield
    rate_limiter.reset()
