"""
Core components of the job-board automation engine.

Modules:
- config: Environment-driven engine configuration
- models: Shared dataclasses and enums
- errors: Exception taxonomy
- database: aiosqlite persistence for profiles, jobs, answers, settings
- human_behavior: Randomized human-like pacing
- rate_limiter: Sliding-window action limiter
- circuit_breaker: Stops work after repeated failures
- selector_healer / page_reader: Selector fallback and LLM repair
- hints: Per-site selector hint files
- events: In-process event bus
- extraction_runner: The automation state machine (import directly;
  it depends on the adapters package)
"""

from .config import EngineConfig, config, get_config
from .errors import (
    EngineError,
    AutomationError,
    ProfileNotFoundError,
    PlatformError,
    AuthenticationError,
    AIServiceError,
    DatabaseError,
    CircuitOpenError,
)
from .models import AutomationState, JobStatus, PlatformType

__all__ = [
    "EngineConfig",
    "config",
    "get_config",
    "EngineError",
    "AutomationError",
    "ProfileNotFoundError",
    "PlatformError",
    "AuthenticationError",
    "AIServiceError",
    "DatabaseError",
    "CircuitOpenError",
    "AutomationState",
    "JobStatus",
    "PlatformType",
]
