from __future__ import annotations

from pathlib import Path

from kestrel.config import get_settings
from kestrel.db.base import Base
from kestrel.db.session import engine
from kestrel.db import models  # noqa: F401


def ensure_data_directories() -> None:
    settings = get_settings()
    paths: list[Path] = [
        settings.data_dir,
        settings.profile_path.parent,
    ]
    database_path = _sqlite_path(settings.database_url)
    if database_path is not None:
        paths.append(database_path.parent)
    for path in paths:
        path.mkdir(parents=True, exist_ok=True)


def init_database() -> dict[str, list[str]]:
    ensure_data_directories()
    Base.metadata.create_all(bind=engine)
    return {"tables": sorted(Base.metadata.tables)}


def _sqlite_path(database_url: str) -> Path | None:
    prefix = "sqlite:///"
    if not database_url.startswith(prefix):
        return None
    raw = database_url[len(prefix):]
    if not raw or raw == ":memory:":
        return None
    return Path(raw)
