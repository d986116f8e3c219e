"""
Error taxonomy for analysis runs.

Integrity and configuration errors abort the whole run. Insufficient data is a
warning: the affected group is dropped from its section and counted.
"""

from typing import Any, Dict, Optional


class SalesIntelError(Exception):
    """Base class for all analysis errors"""


class DataIntegrityError(SalesIntelError):
    """A record violates a stated invariant of the fact model"""

    def __init__(self, check: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.check = check
        self.details = details or {}
        super().__init__(f"{check}: {message}")


class ConfigurationError(SalesIntelError):
    """An analysis parameter is missing or out of range"""

    def __init__(self, parameter: str, message: str):
        self.parameter = parameter
        super().__init__(f"Invalid configuration '{parameter}': {message}")


class InsufficientDataWarning(UserWarning):
    """A group failed a minimum sample-size gate and was omitted"""


def is_transient(error: BaseException) -> bool:
    """Whether a failed step may succeed on retry; analysis errors never do"""
    return not isinstance(error, SalesIntelError)
