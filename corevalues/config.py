"""
Core Values configuration: all environment variables in one place.

Read from environment at import time. Nothing here is required: without
DATABASE_URL the engine runs on in-memory storage.
"""

from __future__ import annotations

import os


class Settings:
    """Application settings from environment variables."""

    # Database
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "")
    DB_POOL_MIN_SIZE: int = int(os.environ.get("DB_POOL_MIN_SIZE", "1"))
    DB_POOL_MAX_SIZE: int = int(os.environ.get("DB_POOL_MAX_SIZE", "10"))

    # Game
    MAX_CARDS: int = int(os.environ.get("MAX_CARDS", "35"))
    NUM_CORE_VALUES: int = int(os.environ.get("NUM_CORE_VALUES", "5"))
    MIN_NOT_IMPORTANT: int = int(os.environ.get("MIN_NOT_IMPORTANT", "1"))

    # Category scheduling: active cards / target at or below each ratio
    RATIO_FINAL: float = float(os.environ.get("RATIO_FINAL", "1.5"))  # 2 categories
    RATIO_REDUCED: float = float(os.environ.get("RATIO_REDUCED", "2"))  # 3 categories
    RATIO_STANDARD: float = float(os.environ.get("RATIO_STANDARD", "3"))  # 4 categories


# Singleton instance
settings = Settings()

if not settings.RATIO_FINAL <= settings.RATIO_REDUCED <= settings.RATIO_STANDARD:
    raise RuntimeError("RATIO_FINAL <= RATIO_REDUCED <= RATIO_STANDARD must hold")
