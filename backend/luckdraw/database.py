from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from .config import get_settings


def _build_engine(database_url: str) -> Engine:
    connect_args: dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        # Request threads share the engine; writes are serialized per user key in the store.
        connect_args["check_same_thread"] = False
    return create_engine(database_url, echo=False, connect_args=connect_args)


settings = get_settings()
engine = _build_engine(settings.database_url)


def set_engine() -> None:
    """Rebuild the global engine from freshly loaded settings (tests point it at a temp file)."""

    global engine, settings

    get_settings.cache_clear()
    settings = get_settings()
    engine.dispose()
    engine = _build_engine(settings.database_url)


def init_db() -> None:
    from . import models  # noqa: F401  # register draw_states on the metadata

    SQLModel.metadata.create_all(engine)


@contextmanager
def get_session() -> Iterator[Session]:
    with Session(engine) as session:
        yield session
