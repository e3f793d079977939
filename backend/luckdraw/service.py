"""Load-transform-save cycles for each operator action.

Each function holds the user's write lock for the whole cycle so two
near-simultaneous requests cannot both draw from the same ``remaining``.
A transition only counts as committed once :func:`store.save` returns; if
saving fails the computed state is dropped and the error propagates.
"""

from __future__ import annotations

import datetime as dt
import logging
import random

from . import engine, store
from .config import get_settings
from .engine import ConfigurationUpdate, DrawOutcome
from .entities import DrawState, validate_state

logger = logging.getLogger(__name__)


def _draw_time() -> str:
    return dt.datetime.now().strftime(get_settings().draw_time_format)


def current_state(user_key: str) -> DrawState:
    return store.get_or_create(user_key)


def replace_state(user_key: str, state: DrawState) -> DrawState:
    validate_state(state)
    with store.user_lock(user_key):
        store.save(user_key, state)
    logger.info("Draw state overwritten", extra={"user_key": user_key})
    return state


def perform_draw(
    user_key: str,
    prize_id: str,
    *,
    extra: bool | None = None,
    requested_count: int | None = None,
    rng: random.Random | None = None,
) -> DrawOutcome:
    with store.user_lock(user_key):
        state = store.get_or_create(user_key)
        outcome = engine.draw(
            state,
            prize_id,
            extra=extra,
            requested_count=requested_count,
            draw_time=_draw_time(),
            rng=rng,
        )
        store.save(user_key, outcome.state)
    logger.info(
        "Draw committed",
        extra={
            "user_key": user_key,
            "prize_id": prize_id,
            "winners": len(outcome.winners),
            "is_extra": outcome.winners[0].is_extra,
        },
    )
    return outcome


def toggle_mode(user_key: str) -> DrawState:
    with store.user_lock(user_key):
        state = engine.toggle_mode(store.get_or_create(user_key))
        store.save(user_key, state)
    return state


def update_configuration(user_key: str, update: ConfigurationUpdate, *, confirm_reset: bool = False) -> DrawState:
    with store.user_lock(user_key):
        result = engine.update_configuration(store.get_or_create(user_key), update, confirm_reset=confirm_reset)
        store.save(user_key, result.state)
    if result.structural:
        logger.warning("Configuration changed structurally; draw progress reset", extra={"user_key": user_key})
    return result.state


def reset_progress(user_key: str) -> DrawState:
    with store.user_lock(user_key):
        state = engine.reset_progress(store.get_or_create(user_key))
        store.save(user_key, state)
    logger.warning("Draw progress reset", extra={"user_key": user_key})
    return state


def reset_to_default(user_key: str) -> DrawState:
    with store.user_lock(user_key):
        state = engine.reset_to_default()
        store.save(user_key, state)
    logger.warning("Draw state restored to defaults", extra={"user_key": user_key})
    return state
