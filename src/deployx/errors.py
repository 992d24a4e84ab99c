"""Error taxonomy shared across deployx subsystems."""

from __future__ import annotations

CONFIG_REASON_MISSING = "CONFIG_MISSING"
CONFIG_REASON_PARSE_ERROR = "CONFIG_PARSE_ERROR"
CONFIG_REASON_INVALID = "CONFIG_INVALID"
CONFIG_REASON_SCOPE_INVALID = "SCOPE_INVALID"
CONFIG_REASON_IDENTIFIER_MISSING = "IDENTIFIER_MISSING"

REFUSAL_REASON_BRANCH = "BRANCH_NOT_ALLOWED"


class ConfigurationError(ValueError):
    """Fatal configuration problem detected before any stage runs."""

    reason_code: str

    def __init__(self, message: str, reason_code: str = CONFIG_REASON_INVALID) -> None:
        super().__init__(message)
        self.reason_code = reason_code


class PromotionRefusal(RuntimeError):
    """Raised when an environment may not run for the given source branch."""

    reason_code: str

    def __init__(self, message: str, reason_code: str = REFUSAL_REASON_BRANCH) -> None:
        super().__init__(message)
        self.reason_code = reason_code


class DispatchError(RuntimeError):
    """Raised when the next environment's run could not be dispatched."""
