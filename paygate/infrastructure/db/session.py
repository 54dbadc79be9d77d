from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from paygate.shared.config import Settings

_ENGINE: Engine | None = None


def init_db(settings: Settings) -> sessionmaker[Session]:
    global _ENGINE
    _ENGINE = create_engine(settings.database_url, pool_pre_ping=True)
    return sessionmaker(bind=_ENGINE, expire_on_commit=False, class_=Session)


def get_engine() -> Engine:
    if _ENGINE is None:
        raise RuntimeError("DB not initialized. Call init_db() first.")
    return _ENGINE
