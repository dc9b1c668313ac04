"""
Exception taxonomy for the automation engine.

Every engine error carries a machine-readable ``code``, a ``context`` dict
for logging, and a ``recoverable`` flag telling callers whether a later
run could succeed without code changes.
"""

from typing import Any, Dict, Optional


class EngineError(Exception):
    """Base class for all engine errors."""

    code = "ENGINE_ERROR"
    recoverable = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.context = context or {}
        if recoverable is not None:
            self.recoverable = recoverable

    def __str__(self) -> str:
        return self.message


class AutomationError(EngineError):
    code = "AUTOMATION_ERROR"


class ProfileNotFoundError(AutomationError):
    code = "PROFILE_NOT_FOUND"

    def __init__(self, profile_id: str):
        super().__init__(f"Profile not found: {profile_id}", context={"profile_id": profile_id})
        self.profile_id = profile_id


class PlatformError(EngineError):
    """Adapter requested for a site the engine does not support."""

    code = "PLATFORM_ERROR"

    def __init__(self, message: str, platform: str):
        super().__init__(message, context={"platform": platform})
        self.platform = platform


class AuthenticationError(EngineError):
    """The site requires a login the user never completed."""

    code = "AUTH_REQUIRED"
    recoverable = True

    def __init__(self, message: str, platform: str):
        super().__init__(message, context={"platform": platform})
        self.platform = platform


class AIServiceError(EngineError):
    code = "AI_SERVICE_ERROR"
    recoverable = True


class DatabaseError(EngineError):
    code = "DATABASE_ERROR"


class CircuitOpenError(EngineError):
    """The circuit breaker refused to attempt an operation."""

    code = "CIRCUIT_OPEN"
    recoverable = True

    def __init__(self, message: str = "Circuit breaker is open, requests are blocked"):
        super().__init__(message)
