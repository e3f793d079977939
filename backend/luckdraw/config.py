from pathlib import Path
from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings


BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR.parent / "data"
DEFAULT_DB_PATH = DATA_DIR / "luckdraw.sqlite3"

DATA_DIR.mkdir(parents=True, exist_ok=True)


class Settings(BaseSettings):
    database_url: str = f"sqlite:///{DEFAULT_DB_PATH.as_posix()}"
    cors_allowed_origins: list[str] = Field(default_factory=lambda: ["*"])
    # Set by the upstream auth layer once a session is established.
    user_key_header: str = "X-User-Key"
    draw_time_format: str = "%H:%M:%S"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "LUCKDRAW_"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
