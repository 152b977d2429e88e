"""Security: RBAC, accounts, sessions, encryption. No FastAPI."""

from kindling.security.accounts import AccountService
from kindling.security.encryption import EncryptionService
from kindling.security.models import Permission, Role, Session, User, UserStatus
from kindling.security.rbac import RBACService
from kindling.security.sessions import SessionService, SessionSweeper

__all__ = [
    "AccountService",
    "EncryptionService",
    "Permission",
    "RBACService",
    "Role",
    "Session",
    "SessionService",
    "SessionSweeper",
    "User",
    "UserStatus",
]
