from __future__ import annotations

import os
import tempfile
from pathlib import Path

_TEST_DATA_DIR = Path(tempfile.mkdtemp(prefix="kestrel-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TEST_DATA_DIR / 'kestrel.db'}")
os.environ.setdefault("DATA_DIR", str(_TEST_DATA_DIR))
os.environ.setdefault("PROFILE_PATH", str(_TEST_DATA_DIR / "profile.json"))
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("OPENAI_API_KEY", "")
os.environ.setdefault("LOCAL_LLM_ENABLED", "false")

import pytest  # noqa: E402

from kestrel.config import get_settings  # noqa: E402
from kestrel.db.base import Base  # noqa: E402
from kestrel.db import models  # noqa: E402,F401
from kestrel.db.session import engine  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    profile_path = get_settings().profile_path
    if profile_path.exists():
        profile_path.unlink()
    yield
