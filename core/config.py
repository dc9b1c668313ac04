"""
Engine configuration.

All tunables are centralized here and read from the environment
(a .env file is loaded by the CLI entry point).
Import from this module: from core.config import config
"""

import os
from pathlib import Path
from typing import List, Optional
from dataclasses import dataclass


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class EngineConfig:
    """Unified engine configuration."""

    # === Paths ===
    DATA_DIR: str = os.getenv("DATA_DIR", "./data")
    DATABASE_PATH: str = os.getenv("DATABASE_PATH", "./data/job_engine.db")
    LOG_DIR: str = os.getenv("LOG_DIR", "./logs")
    HINTS_DIR: str = os.getenv("HINTS_DIR", "./data/hints")
    USER_DATA_DIR: str = os.getenv("USER_DATA_DIR", "./data/browser-profile")

    # === AI Service (OpenAI-compatible chat completions) ===
    AI_API_KEY: Optional[str] = (
        os.getenv("AI_API_KEY")
        or os.getenv("OPENAI_API_KEY")
        or os.getenv("MOONSHOT_API_KEY")
    )
    AI_BASE_URL: str = os.getenv("AI_BASE_URL", "https://api.openai.com/v1")
    AI_MODEL: str = os.getenv("AI_MODEL", "gpt-4o-mini")
    AI_MAX_RETRIES: int = int(os.getenv("AI_MAX_RETRIES", "3"))
    AI_TIMEOUT_SECONDS: int = int(os.getenv("AI_TIMEOUT_SECONDS", "30"))

    # === Browser ===
    HEADLESS: bool = _env_bool("HEADLESS", "false")
    BROWSER_TIMEOUT_MS: int = int(os.getenv("BROWSER_TIMEOUT_MS", "60000"))

    # === Session limits ===
    MAX_ACTIONS_PER_MINUTE: int = int(os.getenv("MAX_ACTIONS_PER_MINUTE", "8"))
    MAX_APPLICATIONS_PER_SESSION: int = int(os.getenv("MAX_APPLICATIONS_PER_SESSION", "15"))
    MAX_EXTRACTIONS_PER_SESSION: int = int(os.getenv("MAX_EXTRACTIONS_PER_SESSION", "75"))
    SESSION_DURATION_MAX_MINUTES: int = int(os.getenv("SESSION_DURATION_MAX_MINUTES", "45"))
    MAX_SEARCH_PAGES: int = int(os.getenv("MAX_SEARCH_PAGES", "5"))

    # === Circuit breaker ===
    CIRCUIT_FAILURE_THRESHOLD: int = int(os.getenv("CIRCUIT_FAILURE_THRESHOLD", "3"))
    CIRCUIT_RESET_TIMEOUT_SECONDS: float = float(os.getenv("CIRCUIT_RESET_TIMEOUT_SECONDS", "60"))

    # === Login / question waits ===
    LOGIN_POLL_INTERVAL_SECONDS: float = float(os.getenv("LOGIN_POLL_INTERVAL_SECONDS", "3"))
    LOGIN_TIMEOUT_SECONDS: float = float(os.getenv("LOGIN_TIMEOUT_SECONDS", "300"))
    QUESTION_TIMEOUT_SECONDS: float = float(os.getenv("QUESTION_TIMEOUT_SECONDS", "300"))

    # === Analysis ===
    HIGH_MATCH_THRESHOLD: float = float(os.getenv("HIGH_MATCH_THRESHOLD", "0.8"))
    ANSWER_MIN_CONFIDENCE: float = float(os.getenv("ANSWER_MIN_CONFIDENCE", "0.6"))

    # === Human-like timing (seconds) ===
    MIN_HUMAN_DELAY: float = float(os.getenv("MIN_HUMAN_DELAY", "0.8"))
    MAX_HUMAN_DELAY: float = float(os.getenv("MAX_HUMAN_DELAY", "2.5"))
    MIN_TYPING_DELAY_MS: int = int(os.getenv("MIN_TYPING_DELAY_MS", "50"))
    MAX_TYPING_DELAY_MS: int = int(os.getenv("MAX_TYPING_DELAY_MS", "150"))
    READING_PAUSE_PER_SENTENCE: float = 0.35
    BETWEEN_LISTINGS: tuple = (5.0, 15.0)
    BETWEEN_APPLICATIONS: tuple = (30.0, 90.0)
    IDLE_CHANCE: float = 0.1
    IDLE_RANGE: tuple = (3.0, 10.0)

    # === Site hints ===
    HINT_CONFIDENCE_THRESHOLD: float = 0.7
    HINT_CONFIDENCE_BOOST: float = 0.05
    HINT_CONFIDENCE_PENALTY: float = 0.15

    # === Selector healing ===
    SELECTOR_SNAPSHOT_MAX_LENGTH: int = 8000
    SELECTOR_CACHE_MIN_CONFIDENCE: float = 0.6
    SELECTOR_CACHE_MAX_FAILURES: int = 5
    SELECTOR_CONFIDENCE_BOOST: float = 0.05
    SELECTOR_CONFIDENCE_PENALTY: float = 0.15

    # === Notifications ===
    SLACK_WEBHOOK_URL: str = os.getenv("SLACK_WEBHOOK_URL", "")
    DISCORD_WEBHOOK_URL: str = os.getenv("DISCORD_WEBHOOK_URL", "")

    @property
    def selector_cache_dir(self) -> Path:
        return Path(self.HINTS_DIR) / "selector-cache"

    def validate(self) -> List[str]:
        """Validate configuration and return list of missing optional settings."""
        missing = []

        # Analysis, answer generation and selector repair all need a model key
        if not self.AI_API_KEY:
            missing.append("AI_API_KEY (or OPENAI_API_KEY / MOONSHOT_API_KEY)")

        if not (self.SLACK_WEBHOOK_URL or self.DISCORD_WEBHOOK_URL):
            missing.append("SLACK_WEBHOOK_URL or DISCORD_WEBHOOK_URL (notifications disabled)")

        return missing


# Global config instance
config = EngineConfig()


def get_config() -> EngineConfig:
    """Get the engine configuration."""
    return config
