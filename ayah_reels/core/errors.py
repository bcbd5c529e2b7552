"""Error taxonomy shared by every pipeline stage.

Each error carries the HTTP status the API layer answers with, so routes never
map exceptions by hand.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InputValidationError(AppError):
    status_code = 400


class NotFoundError(AppError):
    status_code = 404

    def __init__(self, resource: str, details: Any = None) -> None:
        super().__init__(f"{resource} not found", details)
        self.resource = resource


class UpstreamError(AppError):
    status_code = 502

    def __init__(self, service: str, reason: str) -> None:
        super().__init__(f"Upstream error from {service}: {reason}")
        self.service = service
        self.reason = reason


class FileOperationError(AppError):
    def __init__(self, operation: str, path: str, reason: str = "") -> None:
        message = f"File {operation} failed: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.operation = operation
        self.path = path


class CompositionError(AppError):
    def __init__(self, message: str, stage: str = "render", stderr_tail: str = "") -> None:
        super().__init__(message, details={"stage": stage, "stderr": stderr_tail} if stderr_tail else {"stage": stage})
        self.stage = stage
        self.stderr_tail = stderr_tail
