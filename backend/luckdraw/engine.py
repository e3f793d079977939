"""State transitions for a user's draw event.

Every function here takes a :class:`DrawState` and returns a new one; the
input is never modified. Persistence and locking live in
:mod:`luckdraw.store`, request handling in :mod:`luckdraw.service`.
"""

from __future__ import annotations

import dataclasses
import random
import secrets
from collections import Counter
from typing import Iterable, Mapping, Sequence
from urllib.parse import quote

from .entities import (
    MEDIA_FIELDS,
    DrawState,
    Participant,
    Prize,
    Winner,
    validate_participant_list,
    validate_prize_list,
)
from .errors import ConfirmationRequired, Exhausted, ExtraModeDisabled, InvalidPrize, InvalidStateError, NoCandidates
from .selection import select_winners

DEFAULT_PRIZES: tuple[Prize, ...] = (
    Prize("p1", "一等奖 (iPhone 16 Pro Max)", 1, 1, 1, "https://picsum.photos/seed/iphone/400/400"),
    Prize("p2", "二等奖 (iPad Air)", 2, 3, 3, "https://picsum.photos/seed/ipad/400/400"),
    Prize("p3", "三等奖 (AirPods Pro)", 3, 5, 5, "https://picsum.photos/seed/airpods/400/400"),
    Prize("p4", "参与奖 (幸运礼盒)", 4, 10, 10, "https://picsum.photos/seed/box/400/400"),
)

DEFAULT_PARTICIPANTS: tuple[Participant, ...] = tuple(
    Participant(f"user-{i}", f"员工 {i + 1}", f"https://picsum.photos/seed/user{i}/100/100")
    for i in range(60)
)


@dataclasses.dataclass(frozen=True)
class DrawOutcome:
    winners: tuple[Winner, ...]
    state: DrawState


@dataclasses.dataclass(frozen=True)
class ConfigurationUpdate:
    prizes: tuple[Prize, ...]
    extra_prizes: tuple[Prize, ...]
    roster: tuple[str, ...]
    extra_enabled: bool
    # None keeps the stored reference, an empty string clears it.
    media: Mapping[str, str | None] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass(frozen=True)
class ConfigurationResult:
    state: DrawState
    structural: bool


def default_state() -> DrawState:
    return DrawState(
        participants=DEFAULT_PARTICIPANTS,
        all_participants=DEFAULT_PARTICIPANTS,
        prizes=DEFAULT_PRIZES,
        extra_prizes=(),
        winners=(),
        current_prize_id=first_prize_id(DEFAULT_PRIZES),
        is_extra_mode=False,
        extra_mode_enabled=False,
    )


def first_prize_id(prizes: Sequence[Prize]) -> str | None:
    return prizes[0].id if prizes else None


def candidate_pool(state: DrawState, extra: bool) -> tuple[Participant, ...]:
    """Participants eligible to win in the given mode.

    The regular pool is stored. The extra pool is derived from the roster
    and the ``is_extra`` winner records so the two can never drift apart.
    """

    if not extra:
        return state.participants
    extra_winner_ids = {w.participant.id for w in state.winners if w.is_extra}
    return tuple(p for p in state.all_participants if p.id not in extra_winner_ids)


def toggle_mode(state: DrawState) -> DrawState:
    next_mode = not state.is_extra_mode
    if next_mode and not state.extra_mode_enabled:
        raise ExtraModeDisabled("extra draw is not enabled in the settings")
    return dataclasses.replace(
        state,
        is_extra_mode=next_mode,
        current_prize_id=first_prize_id(state.prizes_for(next_mode)),
    )


def draw(
    state: DrawState,
    prize_id: str,
    *,
    extra: bool | None = None,
    requested_count: int | None = None,
    draw_time: str,
    rng: random.Random | None = None,
) -> DrawOutcome:
    """Award up to ``remaining`` slots of a prize to randomly chosen candidates.

    ``extra`` defaults to the state's active mode. Exactly
    ``min(remaining, pool size, requested_count)`` winners are recorded,
    the prize's ``remaining`` drops by that amount and, in regular mode,
    the winners leave ``participants``.
    """

    if extra is None:
        extra = state.is_extra_mode
    if extra and not state.extra_mode_enabled:
        raise ExtraModeDisabled("extra draw is not enabled in the settings")
    if requested_count is not None and requested_count < 1:
        raise InvalidStateError("count must be at least 1")

    prize = state.find_prize(prize_id, extra)
    if prize is None:
        mode = "extra" if extra else "regular"
        raise InvalidPrize(f"prize '{prize_id}' does not exist in the {mode} prize list")
    if prize.remaining <= 0:
        raise Exhausted(f"prize '{prize.name}' has no slots left")
    pool = candidate_pool(state, extra)
    if not pool:
        raise NoCandidates("no eligible participants left for this draw")

    n = min(prize.remaining, len(pool))
    if requested_count is not None:
        n = min(n, requested_count)
    chosen = select_winners(pool, n, rng=rng)

    # The prize snapshot is taken before the decrement; frozen dataclasses
    # keep history records independent from later edits.
    new_winners = tuple(
        Winner(participant=participant, prize=prize, draw_time=draw_time, is_extra=extra)
        for participant in chosen
    )
    updated_prize = prize.with_remaining(prize.remaining - n)
    updated_list = tuple(updated_prize if p.id == prize.id else p for p in state.prizes_for(extra))

    changes: dict[str, object] = {"winners": new_winners + state.winners}
    if extra:
        changes["extra_prizes"] = updated_list
    else:
        changes["prizes"] = updated_list
        chosen_ids = {p.id for p in chosen}
        changes["participants"] = tuple(p for p in state.participants if p.id not in chosen_ids)

    return DrawOutcome(winners=new_winners, state=dataclasses.replace(state, **changes))


def build_roster(
    names: str | Iterable[str],
    existing: Sequence[Participant],
    *,
    token: str | None = None,
) -> tuple[Participant, ...]:
    """Turn raw roster input into participants, keeping known identities.

    A name that exactly matches an existing participant reuses that
    participant's id and avatar. Each existing participant is claimed at
    most once, so repeated names stay distinct people. Unknown names get a
    fresh id.
    """

    available: dict[str, list[Participant]] = {}
    for participant in existing:
        available.setdefault(participant.name, []).append(participant)
    taken = {p.id for p in existing}
    token = token or secrets.token_hex(4)

    roster: list[Participant] = []
    for idx, name in enumerate(validate_participant_list(names)):
        matches = available.get(name)
        if matches:
            roster.append(matches.pop(0))
            continue
        new_id = f"p-{idx}-{token}"
        while new_id in taken:
            new_id = f"p-{idx}-{secrets.token_hex(4)}"
        taken.add(new_id)
        roster.append(
            Participant(
                id=new_id,
                name=name,
                avatar=f"https://picsum.photos/seed/{quote(f'p{idx}-{name}')}/100/100",
            )
        )
    return tuple(roster)


def is_structural_change(
    state: DrawState,
    prizes: Sequence[Prize],
    extra_prizes: Sequence[Prize],
    roster: Sequence[Participant],
) -> bool:
    """True when the roster names or any prize (id, name, count) differ, ignoring order."""

    if Counter(p.name for p in roster) != Counter(p.name for p in state.all_participants):
        return True
    if Counter(p.identity() for p in prizes) != Counter(p.identity() for p in state.prizes):
        return True
    return Counter(p.identity() for p in extra_prizes) != Counter(p.identity() for p in state.extra_prizes)


def _merged_media(state: DrawState, media: Mapping[str, str | None]) -> dict[str, str | None]:
    merged = state.media()
    for name, value in media.items():
        if name not in MEDIA_FIELDS:
            raise InvalidStateError(f"unknown media field '{name}'")
        if value is None:
            continue
        merged[name] = value.strip() or None
    return merged


def _carry_remaining(new_prizes: Sequence[Prize], stored: Sequence[Prize]) -> tuple[Prize, ...]:
    remaining = {p.id: p.remaining for p in stored}
    return tuple(p.with_remaining(remaining.get(p.id, p.count)) for p in new_prizes)


def update_configuration(
    state: DrawState,
    update: ConfigurationUpdate,
    *,
    confirm_reset: bool = False,
) -> ConfigurationResult:
    """Install new settings, resetting progress when the change is structural.

    A structural change (roster names or prize id/name/count) clears the
    winners and refills every prize, and is refused with
    :class:`ConfirmationRequired` unless ``confirm_reset`` is set. Anything
    else (ranks, images, media, the extra toggle) is applied in place and
    keeps the draw history.
    """

    if not update.prizes:
        raise InvalidStateError("at least one regular prize is required")
    validate_prize_list(tuple(p.replenished() for p in update.prizes), label="prizes")
    validate_prize_list(tuple(p.replenished() for p in update.extra_prizes), label="extraPrizes")
    media = _merged_media(state, update.media)
    roster = build_roster(update.roster, state.all_participants)
    structural = is_structural_change(state, update.prizes, update.extra_prizes, roster)
    if structural and not confirm_reset:
        raise ConfirmationRequired(
            "the prize configuration or roster changed; saving will clear all winners and reset progress"
        )

    if structural:
        prizes = tuple(p.replenished() for p in update.prizes)
        extra_prizes = tuple(p.replenished() for p in update.extra_prizes)
    else:
        prizes = _carry_remaining(update.prizes, state.prizes)
        extra_prizes = _carry_remaining(update.extra_prizes, state.extra_prizes)
    validate_prize_list(prizes, label="prizes")
    validate_prize_list(extra_prizes, label="extraPrizes")

    is_extra_mode = update.extra_enabled and bool(extra_prizes)
    active = extra_prizes if is_extra_mode else prizes

    if structural:
        next_state = DrawState(
            participants=roster,
            all_participants=roster,
            prizes=prizes,
            extra_prizes=extra_prizes,
            winners=(),
            current_prize_id=first_prize_id(active),
            is_extra_mode=is_extra_mode,
            extra_mode_enabled=update.extra_enabled,
            **media,
        )
    else:
        current = state.current_prize_id
        if not any(p.id == current for p in active):
            current = first_prize_id(active)
        next_state = dataclasses.replace(
            state,
            all_participants=roster,
            prizes=prizes,
            extra_prizes=extra_prizes,
            current_prize_id=current,
            is_extra_mode=is_extra_mode,
            extra_mode_enabled=update.extra_enabled,
            **media,
        )
    return ConfigurationResult(state=next_state, structural=structural)


def reset_progress(state: DrawState) -> DrawState:
    prizes = tuple(p.replenished() for p in state.prizes)
    extra_prizes = tuple(p.replenished() for p in state.extra_prizes)
    return dataclasses.replace(
        state,
        prizes=prizes,
        extra_prizes=extra_prizes,
        winners=(),
        participants=state.all_participants,
        current_prize_id=first_prize_id(extra_prizes if state.is_extra_mode else prizes),
    )


def reset_to_default() -> DrawState:
    return default_state()
