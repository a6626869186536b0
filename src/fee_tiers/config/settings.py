"""Runtime settings — backend location, credentials, timeout, log level.

Values come from the process environment; a ``.env`` file in the working
directory is loaded first when present.
"""

from __future__ import annotations

import logging
import os
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from fee_tiers.config.category import DEFAULT_CATEGORIES, CategoryConfig


class Settings(BaseModel):
    """Client-side settings shared by the store, the dashboard and the server."""

    api_url: str = Field(default="http://localhost:8000", min_length=1, description="Backend base URL")
    api_token: str = Field(default="", description="Bearer token for the admin API (empty = none)")
    timeout_seconds: float = Field(default=10.0, gt=0, le=300, description="Per-request network timeout")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    categories: list[CategoryConfig] = Field(default_factory=lambda: list(DEFAULT_CATEGORIES))

    @classmethod
    def from_env(cls) -> Settings:
        load_dotenv()
        return cls(
            api_url=os.getenv("FEE_TIERS_API_URL", "http://localhost:8000").rstrip("/"),
            api_token=os.getenv("FEE_TIERS_API_TOKEN", ""),
            timeout_seconds=os.getenv("FEE_TIERS_TIMEOUT", "10"),
            log_level=os.getenv("FEE_TIERS_LOG_LEVEL", "INFO").upper(),
        )

    def category(self, key: str) -> CategoryConfig:
        for cat in self.categories:
            if cat.key == key:
                return cat
        raise KeyError(f"Unknown category '{key}'")


def configure_logging(level: str = "INFO") -> None:
    """Root logging setup for entry points (dashboard, server)."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
