import json
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from gator.intervals import parse_interval


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # App
    app_env: str = Field(default="development")
    log_level: str = Field(default="info")

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///gator.db")

    # Fetching
    fetch_timeout: float = Field(default=10.0, gt=0)
    fetch_user_agent: str = Field(default="gator/1.0")

    # Poll interval for service mode (duration string, e.g. "30s", "1m")
    poll_interval: str = Field(default="1m")

    # Current-user file written by `register` / `login`
    user_config_path: Path = Field(default=Path(".gatorconfig.json"))

    @field_validator("poll_interval")
    @classmethod
    def _check_poll_interval(cls, value: str) -> str:
        parse_interval(value)
        return value

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


class UserConfig(BaseModel):
    """The small JSON file that remembers who is logged in."""

    current_user_name: str | None = None

    @classmethod
    def load(cls, path: Path) -> "UserConfig":
        if not path.exists():
            return cls()
        return cls.model_validate(json.loads(path.read_text(encoding="utf-8")))

    def save(self, path: Path) -> None:
        path.write_text(self.model_dump_json(), encoding="utf-8")

    def set_user(self, name: str, path: Path) -> None:
        self.current_user_name = name
        self.save(path)


settings = Settings()
