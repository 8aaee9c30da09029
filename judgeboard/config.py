"""Application settings, read from JUDGEBOARD_* environment variables or .env."""
import os
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Persisted file next to the package unless overridden
DEFAULT_DB_PATH = os.path.join(os.path.dirname(__file__), "judging.sqlite")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="JUDGEBOARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    APP_NAME: str = "Judgeboard"
    DB_PATH: str = DEFAULT_DB_PATH
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Judge agreement bands over the population stddev of judge totals
    CONSENSUS_HIGH_BELOW: float = Field(default=5.0, gt=0)
    CONSENSUS_LOW_FROM: float = Field(default=10.0, gt=0)

    UNASSIGNED_AWARD_LABEL: str = "(Not Assigned)"
    UNKNOWN_JUDGE_NAME: str = "Unknown"
    DEFAULT_SPONSOR_NAME: str = "Meloy Program"

    @model_validator(mode="after")
    def _check_consensus_bands(self) -> "Settings":
        if self.CONSENSUS_HIGH_BELOW > self.CONSENSUS_LOW_FROM:
            raise ValueError("CONSENSUS_HIGH_BELOW must not exceed CONSENSUS_LOW_FROM")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
