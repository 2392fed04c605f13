# ticker/storage/db.py
from sqlmodel import SQLModel, create_engine, Session

from core.settings import DB_PATH

# Ensure SQLModel metadata is populated
import models.task  # noqa: F401
import models.task_sync  # noqa: F401


_engine = create_engine(f"sqlite:///{DB_PATH.as_posix()}", echo=False)


def init_db(engine=None):
    target = engine or _engine
    if engine is None:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(target)


def get_session() -> Session:
    return Session(_engine)
