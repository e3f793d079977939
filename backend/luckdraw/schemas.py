from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ParticipantSchema(CamelModel):
    id: str
    name: str
    avatar: str | None = None


class PrizeSchema(CamelModel):
    id: str
    name: str
    rank: int = 0
    count: int
    remaining: int | None = None
    image: str | None = None


class WinnerSchema(CamelModel):
    participant: ParticipantSchema
    prize: PrizeSchema
    draw_time: str
    is_extra: bool = False


class DrawStateSchema(CamelModel):
    participants: list[ParticipantSchema]
    all_participants: list[ParticipantSchema] | None = None
    prizes: list[PrizeSchema]
    extra_prizes: list[PrizeSchema] = Field(default_factory=list)
    winners: list[WinnerSchema] = Field(default_factory=list)
    current_prize_id: str | None = None
    is_extra_mode: bool = False
    extra_mode_enabled: bool | None = None
    background_image: str | None = None
    background_music: str | None = None
    draw_music: str | None = None
    winner_sound: str | None = None


DrawMode = Literal["regular", "extra"]


class DrawRequest(CamelModel):
    prize_id: str = Field(min_length=1)
    mode: DrawMode | None = None
    count: int | None = Field(default=None, ge=1)
    # Display-only copy from the client; inventory always comes from the stored state.
    prize_snapshot: PrizeSchema | None = None


class DrawResponse(CamelModel):
    winners: list[WinnerSchema]
    state: DrawStateSchema


class SettingsRequest(CamelModel):
    prizes: list[PrizeSchema] = Field(min_length=1)
    extra_prizes: list[PrizeSchema] = Field(default_factory=list)
    roster: str | list[str]
    extra_mode_enabled: bool = False
    background_image: str | None = None
    background_music: str | None = None
    draw_music: str | None = None
    winner_sound: str | None = None
    confirm_reset: bool = False


class CandidatesResponse(CamelModel):
    mode: DrawMode
    total: int
    participants: list[ParticipantSchema]


class OkResponse(BaseModel):
    ok: bool = True
