from __future__ import annotations

import datetime as dt
import json
import logging
import threading
import weakref
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select

from .database import get_session, init_db
from .engine import default_state
from .entities import DrawState
from .errors import InvalidStateError, StorageFailure
from .models import DrawStateRecord, utcnow

logger = logging.getLogger(__name__)

_locks_guard = threading.Lock()
# Entries vanish once no caller holds or waits on the lock.
_user_locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()


@dataclass(slots=True)
class StateSummary:
    user_key: str
    updated_at: dt.datetime
    prize_count: int
    winner_count: int


@contextmanager
def user_lock(user_key: str) -> Iterator[None]:
    """Serialize load-transform-save cycles for one user key within this process."""
    with _locks_guard:
        lock = _user_locks.get(user_key)
        if lock is None:
            lock = threading.Lock()
            _user_locks[user_key] = lock
    with lock:
        yield


def _decode(user_key: str, state_json: str) -> DrawState:
    try:
        return DrawState.from_payload(json.loads(state_json))
    except (json.JSONDecodeError, InvalidStateError) as exc:
        logger.exception("Stored draw state is unreadable", extra={"user_key": user_key})
        raise StorageFailure(f"stored draw state for '{user_key}' is unreadable") from exc


def _encode(state: DrawState) -> str:
    return json.dumps(state.to_payload(), ensure_ascii=False)


def get_or_create(user_key: str) -> DrawState:
    try:
        with get_session() as session:
            record = session.get(DrawStateRecord, user_key)
            if record is not None:
                return _decode(user_key, record.state_json)

            state = default_state()
            session.add(DrawStateRecord(user_key=user_key, state_json=_encode(state)))
            try:
                session.commit()
            except IntegrityError:
                # Another writer installed the document first; theirs wins.
                session.rollback()
                record = session.get(DrawStateRecord, user_key)
                if record is None:
                    raise
                return _decode(user_key, record.state_json)
            logger.info("Created default draw state", extra={"user_key": user_key})
            return state
    except SQLAlchemyError as exc:
        logger.exception("Failed to load draw state", extra={"user_key": user_key})
        raise StorageFailure("draw state storage is unavailable") from exc


def save(user_key: str, state: DrawState) -> None:
    try:
        with get_session() as session:
            record = session.get(DrawStateRecord, user_key)
            if record is None:
                record = DrawStateRecord(user_key=user_key, state_json=_encode(state))
            else:
                record.state_json = _encode(state)
                record.updated_at = utcnow()
            session.add(record)
            session.commit()
    except SQLAlchemyError as exc:
        logger.exception("Failed to save draw state", extra={"user_key": user_key})
        raise StorageFailure("draw state could not be saved") from exc


def list_summaries() -> list[StateSummary]:
    with get_session() as session:
        records = session.exec(select(DrawStateRecord).order_by(DrawStateRecord.user_key)).all()
    summaries: list[StateSummary] = []
    for record in records:
        try:
            payload = json.loads(record.state_json)
        except json.JSONDecodeError:
            payload = None
        if not isinstance(payload, dict):
            logger.warning("Skipping unreadable draw state", extra={"user_key": record.user_key})
            continue
        summaries.append(
            StateSummary(
                user_key=record.user_key,
                updated_at=record.updated_at,
                prize_count=len(payload.get("prizes", [])),
                winner_count=len(payload.get("winners", [])),
            )
        )
    return summaries


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    init_db()
    summaries = list_summaries()
    if not summaries:
        logger.info("No draw states stored yet")
    for summary in summaries:
        logger.info(
            "%s: %d prizes, %d winners (updated %s)",
            summary.user_key,
            summary.prize_count,
            summary.winner_count,
            summary.updated_at.isoformat(timespec="seconds"),
        )
