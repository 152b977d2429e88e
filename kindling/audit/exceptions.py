"""Audit-layer exceptions. Typed, no HTTP."""


class AuditError(Exception):
    """Base for all audit-layer errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AuditWriteError(AuditError):
    """Raised by a repository when an audit record cannot be persisted."""
