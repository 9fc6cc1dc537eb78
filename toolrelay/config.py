from __future__ import annotations

import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

load_dotenv()


class Settings(BaseModel):
    HOST: str = Field(default="127.0.0.1")
    PORT: int = Field(default=3000, ge=0, le=65535)
    LOG_LEVEL: str = Field(default="INFO")
    CORS_ALLOW_ORIGINS: str = Field(default="*")
    SEND_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    KEEPALIVE_SECONDS: float = Field(default=15.0, ge=0)  # 0 disables keepalive comments
    SHUTDOWN_GRACE_SECONDS: int = Field(default=5, ge=0)


def _load_settings(existing: Settings | None = None) -> Settings:
    values: dict[str, Any] = {}
    for name, field in Settings.model_fields.items():
        env_value = os.getenv(name)
        if env_value is None:
            if existing is not None and hasattr(existing, name):
                values[name] = getattr(existing, name)
                continue
            values[name] = field.get_default(call_default_factory=True)
        else:
            values[name] = env_value

    try:
        return Settings(**values)
    except ValidationError as exc:
        invalid = [str(error["loc"][0]) for error in exc.errors() if error.get("loc")]
        joined = ", ".join(sorted(set(invalid)))
        raise RuntimeError(f"Invalid environment variables: {joined}") from exc


settings = _load_settings()


def reload_settings() -> Settings:
    global settings
    fresh = _load_settings(settings)
    settings.__dict__.update(fresh.__dict__)
    return settings
