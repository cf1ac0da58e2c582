"""Appointment domain errors"""

from typing import Optional


class IllegalTransitionError(ValueError):
    """Raised when a status change is not allowed from the current status"""

    def __init__(self, current_status: str, target_status: str, reason: Optional[str] = None):
        self.current_status = current_status
        self.target_status = target_status
        message = f"Cannot move appointment from {current_status} to {target_status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class CollaboratorError(Exception):
    """Raised when a call to the core backend fails (network or HTTP error)"""

    def __init__(self, operation: str, status_code: Optional[int] = None, detail: str = ""):
        self.operation = operation
        self.status_code = status_code
        self.detail = detail
        label = f"HTTP {status_code}" if status_code else "request failed"
        super().__init__(f"{operation}: {label} {detail}".strip())

    @property
    def is_unavailable(self) -> bool:
        """True when the backend does not offer the operation at all"""
        return self.status_code in (404, 405, 501)
