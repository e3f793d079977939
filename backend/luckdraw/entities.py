from __future__ import annotations

import dataclasses
from collections import Counter
from typing import Any, Iterable, Mapping, Sequence

from .errors import InvalidStateError

MEDIA_FIELDS = {
    "background_image": "backgroundImage",
    "background_music": "backgroundMusic",
    "draw_music": "drawMusic",
    "winner_sound": "winnerSound",
}


def _require(payload: Mapping[str, Any], key: str, kind: type) -> Any:
    if key not in payload:
        raise InvalidStateError(f"missing field '{key}'")
    value = payload[key]
    if kind is int and isinstance(value, bool):
        raise InvalidStateError(f"field '{key}' must be an integer")
    if kind is int and isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, kind):
        raise InvalidStateError(f"field '{key}' must be of type {kind.__name__}")
    return value


def _optional_str(payload: Mapping[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidStateError(f"field '{key}' must be a string")
    return value


def _sequence(payload: Mapping[str, Any], key: str, default: Sequence[Any] | None = None) -> Sequence[Any]:
    value = payload.get(key, default)
    if value is None:
        raise InvalidStateError(f"missing field '{key}'")
    if not isinstance(value, (list, tuple)):
        raise InvalidStateError(f"field '{key}' must be a list")
    return value


@dataclasses.dataclass(frozen=True)
class Participant:
    id: str
    name: str
    avatar: str | None = None

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {"id": self.id, "name": self.name}
        if self.avatar is not None:
            payload["avatar"] = self.avatar
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Participant:
        if not isinstance(payload, Mapping):
            raise InvalidStateError("participant must be an object")
        return cls(
            id=_require(payload, "id", str),
            name=_require(payload, "name", str),
            avatar=_optional_str(payload, "avatar"),
        )


@dataclasses.dataclass(frozen=True)
class Prize:
    id: str
    name: str
    rank: int
    count: int
    remaining: int
    image: str | None = None

    def with_remaining(self, remaining: int) -> Prize:
        return dataclasses.replace(self, remaining=remaining)

    def replenished(self) -> Prize:
        return self.with_remaining(self.count)

    def identity(self) -> tuple[str, str, int]:
        """The (id, name, count) triple whose change forces a progress reset."""
        return (self.id, self.name, self.count)

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": self.id,
            "name": self.name,
            "rank": self.rank,
            "count": self.count,
            "remaining": self.remaining,
        }
        if self.image is not None:
            payload["image"] = self.image
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Prize:
        if not isinstance(payload, Mapping):
            raise InvalidStateError("prize must be an object")
        count = _require(payload, "count", int)
        remaining = payload.get("remaining")
        return cls(
            id=_require(payload, "id", str),
            name=_require(payload, "name", str),
            rank=_require(payload, "rank", int) if "rank" in payload else 0,
            count=count,
            remaining=count if remaining is None else _require(payload, "remaining", int),
            image=_optional_str(payload, "image"),
        )


@dataclasses.dataclass(frozen=True)
class Winner:
    participant: Participant
    prize: Prize
    draw_time: str
    is_extra: bool = False

    def to_payload(self) -> dict[str, object]:
        return {
            "participant": self.participant.to_payload(),
            "prize": self.prize.to_payload(),
            "drawTime": self.draw_time,
            "isExtra": self.is_extra,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Winner:
        if not isinstance(payload, Mapping):
            raise InvalidStateError("winner must be an object")
        return cls(
            participant=Participant.from_payload(_require(payload, "participant", dict)),
            prize=Prize.from_payload(_require(payload, "prize", dict)),
            draw_time=_optional_str(payload, "drawTime") or "",
            is_extra=bool(payload.get("isExtra", False)),
        )


@dataclasses.dataclass(frozen=True)
class DrawState:
    """Root aggregate persisted once per user key.

    ``participants`` is the regular-mode pool and shrinks as people win;
    ``all_participants`` is the full roster. The extra-mode pool is never
    stored, see :func:`luckdraw.engine.candidate_pool`. ``winners`` is
    newest-first across both modes.
    """

    participants: tuple[Participant, ...]
    all_participants: tuple[Participant, ...]
    prizes: tuple[Prize, ...]
    extra_prizes: tuple[Prize, ...] = ()
    winners: tuple[Winner, ...] = ()
    current_prize_id: str | None = None
    is_extra_mode: bool = False
    extra_mode_enabled: bool = False
    background_image: str | None = None
    background_music: str | None = None
    draw_music: str | None = None
    winner_sound: str | None = None

    def prizes_for(self, extra: bool) -> tuple[Prize, ...]:
        return self.extra_prizes if extra else self.prizes

    @property
    def active_prizes(self) -> tuple[Prize, ...]:
        return self.prizes_for(self.is_extra_mode)

    def find_prize(self, prize_id: str, extra: bool) -> Prize | None:
        for prize in self.prizes_for(extra):
            if prize.id == prize_id:
                return prize
        return None

    def media(self) -> dict[str, str | None]:
        return {name: getattr(self, name) for name in MEDIA_FIELDS}

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "participants": [p.to_payload() for p in self.participants],
            "allParticipants": [p.to_payload() for p in self.all_participants],
            "prizes": [p.to_payload() for p in self.prizes],
            "extraPrizes": [p.to_payload() for p in self.extra_prizes],
            "winners": [w.to_payload() for w in self.winners],
            "currentPrizeId": self.current_prize_id,
            "isExtraMode": self.is_extra_mode,
            "extraModeEnabled": self.extra_mode_enabled,
        }
        for attr, key in MEDIA_FIELDS.items():
            payload[key] = getattr(self, attr)
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> DrawState:
        """Decode a stored or submitted document, filling fields older documents lack."""
        if not isinstance(payload, Mapping):
            raise InvalidStateError("draw state must be an object")
        participants = tuple(Participant.from_payload(p) for p in _sequence(payload, "participants"))
        if payload.get("allParticipants") is None:
            all_participants = participants
        else:
            all_participants = tuple(Participant.from_payload(p) for p in _sequence(payload, "allParticipants"))
        is_extra_mode = bool(payload.get("isExtraMode", False))
        extra_mode_enabled = payload.get("extraModeEnabled")
        current_prize_id = payload.get("currentPrizeId")
        if current_prize_id is not None and not isinstance(current_prize_id, str):
            raise InvalidStateError("field 'currentPrizeId' must be a string or null")
        return cls(
            participants=participants,
            all_participants=all_participants,
            prizes=tuple(Prize.from_payload(p) for p in _sequence(payload, "prizes")),
            extra_prizes=tuple(Prize.from_payload(p) for p in _sequence(payload, "extraPrizes", [])),
            winners=tuple(Winner.from_payload(w) for w in _sequence(payload, "winners", [])),
            current_prize_id=current_prize_id,
            is_extra_mode=is_extra_mode,
            extra_mode_enabled=is_extra_mode if extra_mode_enabled is None else bool(extra_mode_enabled),
            **{attr: _optional_str(payload, key) for attr, key in MEDIA_FIELDS.items()},
        )


def validate_prize(prize: Prize) -> Prize:
    if not prize.id.strip():
        raise InvalidStateError("prize id must not be blank")
    if not prize.name.strip():
        raise InvalidStateError(f"prize '{prize.id}' must have a name")
    if prize.count < 1:
        raise InvalidStateError(f"prize '{prize.id}' must have at least one slot")
    if not 0 <= prize.remaining <= prize.count:
        raise InvalidStateError(
            f"prize '{prize.id}' remaining {prize.remaining} is outside 0..{prize.count}"
        )
    return prize


def validate_prize_list(prizes: Iterable[Prize], *, label: str = "prizes") -> tuple[Prize, ...]:
    validated = tuple(validate_prize(prize) for prize in prizes)
    duplicates = sorted(pid for pid, seen in Counter(p.id for p in validated).items() if seen > 1)
    if duplicates:
        raise InvalidStateError(f"duplicate prize ids in {label}: {', '.join(duplicates)}")
    return validated


def validate_participant_list(raw: str | Iterable[str]) -> list[str]:
    """Normalize roster input into names.

    Accepts pasted text (one name per line) or an iterable of names. Names
    are trimmed and blank entries dropped; duplicate names are kept since
    identity is carried by participant ids.
    """

    lines = raw.splitlines() if isinstance(raw, str) else list(raw)
    names: list[str] = []
    for line in lines:
        if not isinstance(line, str):
            raise InvalidStateError("roster entries must be strings")
        name = line.strip()
        if name:
            names.append(name)
    return names


def validate_state(state: DrawState) -> DrawState:
    validate_prize_list(state.prizes, label="prizes")
    validate_prize_list(state.extra_prizes, label="extraPrizes")

    roster_ids = [p.id for p in state.all_participants]
    duplicates = sorted(pid for pid, seen in Counter(roster_ids).items() if seen > 1)
    if duplicates:
        raise InvalidStateError(f"duplicate participant ids: {', '.join(duplicates)}")

    known = set(roster_ids)
    pool_ids = [p.id for p in state.participants]
    strangers = [pid for pid in pool_ids if pid not in known]
    if strangers:
        raise InvalidStateError(f"participants not in roster: {', '.join(strangers)}")
    if len(set(pool_ids)) != len(pool_ids):
        raise InvalidStateError("participants contains the same person twice")
    regular_winners = {w.participant.id for w in state.winners if not w.is_extra}
    already_won = sorted(regular_winners.intersection(pool_ids))
    if already_won:
        raise InvalidStateError(f"regular winners still in the pool: {', '.join(already_won)}")

    if state.is_extra_mode and not state.extra_mode_enabled:
        raise InvalidStateError("extra mode is active but not enabled")
    active = state.active_prizes
    if state.current_prize_id is None:
        if active:
            raise InvalidStateError("currentPrizeId must select a prize of the active mode")
    elif state.find_prize(state.current_prize_id, state.is_extra_mode) is None:
        raise InvalidStateError(f"currentPrizeId '{state.current_prize_id}' is not in the active prize list")
    return state
