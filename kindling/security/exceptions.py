"""Security-layer exceptions. Typed, no HTTP."""


class SecurityError(Exception):
    """Base for all security-layer errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AuthenticationError(SecurityError):
    """Raised when credentials or a session token do not identify an active user."""


class AccountLockedError(AuthenticationError):
    """Raised on login while locked_until lies in the future."""


class AccountNotActiveError(AuthenticationError):
    """Raised on login for pending, suspended or inactive accounts."""


class AuthorizationError(SecurityError):
    """Raised when a user does not hold the permission for a resource action."""


class DuplicateEmailError(SecurityError):
    """Raised when registering an email that already has an account."""


class InvalidTokenError(SecurityError):
    """Raised for unknown, expired or already used one-time tokens."""


class UserNotFoundError(SecurityError):
    """Raised when a user id does not resolve."""


class RoleNotFoundError(SecurityError):
    """Raised when an admin operation targets a role that does not exist."""


class PermissionNotFoundError(SecurityError):
    """Raised when an admin operation targets a permission that does not exist."""


class DuplicateRoleError(SecurityError):
    """Raised when creating a role whose name is taken."""


class DuplicatePermissionError(SecurityError):
    """Raised when creating a permission whose (resource, action) already exists."""


class EncryptionError(SecurityError):
    """Raised when encryption/decryption fails (e.g. missing key, wrong key)."""


class InvalidStatusTransitionError(SecurityError):
    """Raised when an administrative account status change is not allowed."""
