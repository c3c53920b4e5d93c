"""Library configuration loaded from environment variables."""

from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    log_level: str = "INFO"

    # Strategy used by Store.when() when none is given (HEAD, TAIL, COMPOUND)
    default_strategy: str = "TAIL"

    # Clear an Action's audit cache every N invocations (None keeps everything)
    action_flush_frequency: Optional[int] = Field(default=None, ge=1)

    model_config = {"env_prefix": "RESTATE_"}


settings = Settings()
