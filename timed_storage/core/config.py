"""Environment-driven configuration with Pydantic v2."""

from pathlib import Path
from typing import Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Storage settings driven by TIMED_STORAGE_* environment variables."""

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./fast_storage.sqlite")
    database_echo: bool = Field(default=False)

    # Expiration (seconds, 0 disables)
    sliding_expiration: float = Field(default=0.0, ge=0)
    absolute_expiration: float = Field(default=0.0, ge=0)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="console")
    log_file: Optional[str] = Field(default=None)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite") and ":///" in v and ":memory:" not in v:
            db_path = v.split("///")[1]
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @property
    def is_memory_database(self) -> bool:
        return ":memory:" in self.database_url

    @property
    def expiration_enabled(self) -> bool:
        return self.sliding_expiration > 0 or self.absolute_expiration > 0

    model_config = {
        "env_prefix": "TIMED_STORAGE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }
