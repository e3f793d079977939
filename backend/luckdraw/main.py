from __future__ import annotations

import datetime as dt
import logging

from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

from . import engine, exports, service
from .config import get_settings
from .database import init_db
from .engine import ConfigurationUpdate
from .entities import MEDIA_FIELDS, DrawState, Prize, Winner
from .errors import DrawError, Unauthenticated
from .schemas import (
    CandidatesResponse,
    DrawMode,
    DrawRequest,
    DrawResponse,
    DrawStateSchema,
    OkResponse,
    ParticipantSchema,
    SettingsRequest,
    WinnerSchema,
)

logger = logging.getLogger(__name__)

settings = get_settings()
app = FastAPI(
    title="Lucky Draw API",
    description="Prize tiers, participant pools and randomized draws for live events",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    logging.basicConfig(level=settings.log_level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    init_db()


@app.exception_handler(DrawError)
async def draw_error_handler(request: Request, exc: DrawError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", extra={"path": request.url.path, "error": exc.code})
    return JSONResponse(status_code=exc.status_code, content={"detail": {"error": exc.code, "message": str(exc)}})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    detail = {"error": "ValidationError", "message": "request is invalid", "errors": jsonable_encoder(exc.errors())}
    return JSONResponse(status_code=422, content={"detail": detail})


def get_user_key(request: Request) -> str:
    """Identity established upstream by the session layer."""
    user_key = request.headers.get(get_settings().user_key_header, "").strip()
    if not user_key:
        raise Unauthenticated("login required")
    return user_key


def serialize_winner(winner: Winner) -> WinnerSchema:
    return WinnerSchema.model_validate(winner.to_payload())


def serialize_state(state: DrawState) -> DrawStateSchema:
    return DrawStateSchema.model_validate(state.to_payload())


def parse_state(payload: DrawStateSchema) -> DrawState:
    return DrawState.from_payload(payload.model_dump(by_alias=True))


def _mode_flag(mode: DrawMode | None) -> bool | None:
    if mode is None:
        return None
    return mode == "extra"


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/draw-state", response_model=DrawStateSchema)
def get_draw_state(user_key: str = Depends(get_user_key)) -> DrawStateSchema:
    return serialize_state(service.current_state(user_key))


@app.put("/api/draw-state", response_model=OkResponse)
def put_draw_state(
    payload: DrawStateSchema = Body(...),
    user_key: str = Depends(get_user_key),
) -> OkResponse:
    service.replace_state(user_key, parse_state(payload))
    return OkResponse()


@app.put("/api/draw-settings", response_model=DrawStateSchema)
def put_draw_settings(
    request: SettingsRequest = Body(...),
    user_key: str = Depends(get_user_key),
) -> DrawStateSchema:
    update = ConfigurationUpdate(
        prizes=tuple(Prize.from_payload(p.model_dump(by_alias=True)) for p in request.prizes),
        extra_prizes=tuple(Prize.from_payload(p.model_dump(by_alias=True)) for p in request.extra_prizes),
        roster=tuple(request.roster.splitlines()) if isinstance(request.roster, str) else tuple(request.roster),
        extra_enabled=request.extra_mode_enabled,
        media={name: getattr(request, name) for name in MEDIA_FIELDS},
    )
    state = service.update_configuration(user_key, update, confirm_reset=request.confirm_reset)
    return serialize_state(state)


@app.post("/api/draw", response_model=DrawResponse)
def post_draw(
    request: DrawRequest = Body(...),
    user_key: str = Depends(get_user_key),
) -> DrawResponse:
    outcome = service.perform_draw(
        user_key,
        request.prize_id,
        extra=_mode_flag(request.mode),
        requested_count=request.count,
    )
    return DrawResponse(
        winners=[serialize_winner(winner) for winner in outcome.winners],
        state=serialize_state(outcome.state),
    )


@app.post("/api/draw-mode/toggle", response_model=DrawStateSchema)
def post_toggle_mode(user_key: str = Depends(get_user_key)) -> DrawStateSchema:
    return serialize_state(service.toggle_mode(user_key))


@app.post("/api/draw-reset", response_model=DrawStateSchema)
def post_draw_reset(user_key: str = Depends(get_user_key)) -> DrawStateSchema:
    return serialize_state(service.reset_progress(user_key))


@app.post("/api/draw-reset-to-default", response_model=DrawStateSchema)
def post_reset_to_default(user_key: str = Depends(get_user_key)) -> DrawStateSchema:
    return serialize_state(service.reset_to_default(user_key))


@app.get("/api/default-config", response_model=DrawStateSchema)
def get_default_config(user_key: str = Depends(get_user_key)) -> DrawStateSchema:
    return serialize_state(engine.default_state())


@app.get("/api/candidates", response_model=CandidatesResponse)
def get_candidates(
    mode: DrawMode | None = Query(None, description="regular | extra; defaults to the active mode"),
    user_key: str = Depends(get_user_key),
) -> CandidatesResponse:
    state = service.current_state(user_key)
    extra = _mode_flag(mode)
    if extra is None:
        extra = state.is_extra_mode
    pool = engine.candidate_pool(state, extra)
    return CandidatesResponse(
        mode="extra" if extra else "regular",
        total=len(pool),
        participants=[ParticipantSchema.model_validate(p.to_payload()) for p in pool],
    )


@app.get("/api/winners/export/text", response_class=PlainTextResponse)
def export_winners_text(user_key: str = Depends(get_user_key)) -> PlainTextResponse:
    state = service.current_state(user_key)
    return PlainTextResponse(exports.winners_as_text(state.winners))


@app.get("/api/winners/export/excel")
def export_winners_excel(user_key: str = Depends(get_user_key)) -> StreamingResponse:
    state = service.current_state(user_key)
    buffer = exports.winners_as_excel(state.winners)
    headers = {
        "Content-Disposition": f"attachment; filename=winners_{dt.date.today().isoformat()}.xlsx"
    }
    return StreamingResponse(buffer, media_type=exports.EXCEL_MEDIA_TYPE, headers=headers)
