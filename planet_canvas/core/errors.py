"""Stamp pipeline errors."""

from typing import Any, Dict, Optional


class StampError(Exception):
    """Base class for errors reported to stamp callers."""
    code = "stamp_error"
    retryable = False

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.code,
            "detail": self.detail,
            "retryable": self.retryable,
        }


class InvalidInput(StampError):
    """Malformed or out-of-range request field. Never mutates state."""
    code = "invalid_input"

    def __init__(self, field: str, detail: str):
        super().__init__(detail)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data


class RateLimited(StampError):
    """Rejected by the per-user rate limit."""
    code = "rate_limited"
    retryable = True

    def __init__(self, retry_after: float, detail: str = "Rate limit exceeded"):
        super().__init__(detail)
        self.retry_after = retry_after

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["retry_after"] = round(self.retry_after, 1)
        return data


class Busy(StampError):
    """The mutation lock could not be acquired in time."""
    code = "busy"
    retryable = True

    def __init__(self, timeout: float):
        super().__init__(f"World texture is busy, gave up after {timeout:g}s")
        self.timeout = timeout


class StorageFailure(StampError):
    """A tile or record store read/write failed."""
    code = "storage_failure"
    retryable = True

    def __init__(self, operation: str, target: Optional[str] = None, reason: str = ""):
        detail = f"{operation} failed"
        if target:
            detail += f" for {target}"
        if reason:
            detail += f": {reason}"
        super().__init__(detail)
        self.operation = operation
        self.target = target
