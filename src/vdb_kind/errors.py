"""Exceptions raised by the provisioning workflow."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .provision.diagnostics import DiagnosticSection


class VdbKindError(Exception):
    """Base exception for all vdb-kind errors."""

    def __init__(self, message: str, details: str | None = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Additional details or suggestions
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message."""
        if self.details:
            return f"{self.message}\n\nDetails: {self.details}"
        return self.message


class ProvisionError(VdbKindError):
    """A stage of the up workflow failed."""

    def __init__(self, stage: str, message: str, details: str | None = None):
        self.stage = stage
        super().__init__(message, details)


class FatalPreconditionError(ProvisionError):
    """Raised before anything is mutated."""


class InsufficientMemoryError(FatalPreconditionError):
    """Not enough available memory for even a single node."""

    def __init__(self, available_mib: int, required_mib: int):
        self.available_mib = available_mib
        self.required_mib = required_mib
        super().__init__(
            "sizing",
            f"Insufficient RAM available ({available_mib} MiB). "
            f"More than {required_mib} MiB is required to create the cluster.",
        )


class MissingToolError(FatalPreconditionError):
    """A required command-line tool or daemon is unavailable."""

    def __init__(self, tool: str, details: str | None = None):
        self.tool = tool
        super().__init__("tools", f"{tool} is not available", details)


class StepFailureError(ProvisionError):
    """A create/apply call returned an error."""


class _WaitError(ProvisionError):
    def __init__(
        self,
        stage: str,
        message: str,
        details: str | None = None,
        diagnostics: list[DiagnosticSection] | None = None,
    ):
        self.diagnostics = diagnostics or []
        super().__init__(stage, message, details)


class WaitTimeoutError(_WaitError):
    """A condition was not satisfied within its timeout."""


class WaitTerminalFailureError(_WaitError):
    """A polled resource reached a state it cannot recover from."""
