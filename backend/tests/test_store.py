import dataclasses
import datetime as dt
import gc
import logging
import threading

import pytest
from sqlalchemy.exc import OperationalError

from luckdraw import store
from luckdraw.database import get_session
from luckdraw.engine import default_state
from luckdraw.errors import StorageFailure
from luckdraw.models import DrawStateRecord

from .factories import make_state


def test_get_or_create_installs_default_once() -> None:
    first = store.get_or_create("alice")
    assert first == default_state()

    custom = make_state()
    store.save("alice", custom)

    assert store.get_or_create("alice") == custom
    assert store.get_or_create("bob") == default_state()


def test_save_overwrites_and_bumps_updated_at() -> None:
    store.get_or_create("alice")
    with get_session() as session:
        before = session.get(DrawStateRecord, "alice").updated_at

    store.save("alice", make_state())

    with get_session() as session:
        record = session.get(DrawStateRecord, "alice")
    assert record.updated_at >= before
    assert '"id-A"' in record.state_json


def test_save_creates_missing_document() -> None:
    state = dataclasses.replace(make_state(), background_image="/bg.png")

    store.save("carol", state)

    assert store.get_or_create("carol") == state


def test_unreadable_document_is_a_storage_failure() -> None:
    with get_session() as session:
        session.add(DrawStateRecord(user_key="broken", state_json="{not json"))
        session.commit()

    with pytest.raises(StorageFailure):
        store.get_or_create("broken")


def test_database_errors_surface_as_storage_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def failing_session():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    monkeypatch.setattr(store, "get_session", failing_session)

    with pytest.raises(StorageFailure):
        store.get_or_create("alice")
    with pytest.raises(StorageFailure):
        store.save("alice", make_state())


def test_list_summaries_reports_each_user() -> None:
    store.get_or_create("alice")
    store.save("bob", make_state())

    summaries = {s.user_key: s for s in store.list_summaries()}

    assert set(summaries) == {"alice", "bob"}
    assert summaries["alice"].prize_count == 4
    assert summaries["bob"].prize_count == 1
    assert summaries["bob"].winner_count == 0


def test_user_lock_serializes_same_key() -> None:
    entered = threading.Event()
    release = threading.Event()
    order: list[str] = []

    def holder() -> None:
        with store.user_lock("alice"):
            order.append("holder")
            entered.set()
            release.wait(timeout=5)

    thread = threading.Thread(target=holder)
    thread.start()
    entered.wait(timeout=5)

    with store.user_lock("bob"):
        order.append("other user")

    release.set()
    with store.user_lock("alice"):
        order.append("waiter")
    thread.join(timeout=5)

    assert order == ["holder", "other user", "waiter"]


def test_user_lock_entries_are_released_after_use() -> None:
    with store.user_lock("transient"):
        assert "transient" in store._user_locks
    gc.collect()

    assert "transient" not in store._user_locks


def test_list_summaries_skips_unreadable_documents(caplog: pytest.LogCaptureFixture) -> None:
    store.save("alice", make_state())
    with get_session() as session:
        session.add(DrawStateRecord(user_key="broken", state_json="{not json"))
        session.add(DrawStateRecord(user_key="scalar", state_json="42"))
        session.commit()

    with caplog.at_level(logging.WARNING, logger="luckdraw.store"):
        summaries = store.list_summaries()

    assert [s.user_key for s in summaries] == ["alice"]
    assert sum("Skipping unreadable draw state" in r.getMessage() for r in caplog.records) == 2


def test_new_records_carry_aware_timestamps() -> None:
    record = DrawStateRecord(user_key="dana", state_json="{}")

    assert record.created_at.tzinfo is not None
    assert record.updated_at.utcoffset() == dt.timedelta(0)
