"""Exception types raised across the allocation engine."""

from typing import Any, Dict, Optional


class AllocationInputError(Exception):
    """Fatal error for malformed top-level inputs to an allocation run."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with context."""
        msg = f"Allocation Input Error: {self.message}"
        if self.context:
            msg += "\n\nContext:"
            for key, value in self.context.items():
                msg += f"\n  {key}: {value}"
        return msg


class ExternalServiceError(Exception):
    """An optional external collaborator failed, timed out or answered garbage.

    Callers inside the engine catch this and continue without the feature.
    """

    def __init__(self, message: str, status: Optional[int] = None):
        self.message = message
        self.status = status
        super().__init__(message if status is None else f"{message} (HTTP {status})")
