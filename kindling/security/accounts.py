"""User accounts: registration, email verification, login with temporary lockout,
status administration, password reset and MFA secret storage. No FastAPI.

Status lifecycle:
    pending_verification --verify_email--> active
    active <--admin--> suspended / inactive
Temporary lockout is orthogonal to status: failed_login_attempts reaching the
threshold sets locked_until, and a past locked_until simply means unlocked.
"""

import logging
import secrets
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, FrozenSet, Optional, Tuple

from kindling.security.encryption import EncryptionService
from kindling.security.exceptions import (
    AccountLockedError,
    AccountNotActiveError,
    AuthenticationError,
    DuplicateEmailError,
    EncryptionError,
    InvalidStatusTransitionError,
    InvalidTokenError,
    UserNotFoundError,
)
from kindling.security.models import (
    TOKEN_PURPOSE_EMAIL_VERIFICATION,
    TOKEN_PURPOSE_PASSWORD_RESET,
    OneTimeToken,
    User,
    UserStatus,
)
from kindling.security.passwords import hash_password, verify_password
from kindling.security.repository import TokenRepository, UserRepository
from kindling.security.sessions import SessionService

INVALID_CREDENTIALS = "Invalid email or password"

# Administrative transitions only; pending -> active happens through verify_email.
_ADMIN_TRANSITIONS: Dict[UserStatus, FrozenSet[UserStatus]] = {
    UserStatus.PENDING_VERIFICATION: frozenset({UserStatus.SUSPENDED, UserStatus.INACTIVE}),
    UserStatus.ACTIVE: frozenset({UserStatus.SUSPENDED, UserStatus.INACTIVE}),
    UserStatus.SUSPENDED: frozenset({UserStatus.ACTIVE, UserStatus.INACTIVE}),
    UserStatus.INACTIVE: frozenset({UserStatus.ACTIVE, UserStatus.SUSPENDED}),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AccountService:
    def __init__(
        self,
        users: UserRepository,
        tokens: TokenRepository,
        sessions: SessionService,
        *,
        max_failed_attempts: int = 5,
        lockout: timedelta = timedelta(minutes=15),
        verification_ttl: timedelta = timedelta(hours=48),
        reset_ttl: timedelta = timedelta(hours=1),
        encryption: Optional[EncryptionService] = None,
        clock: Callable[[], datetime] = _utcnow,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._users = users
        self._tokens = tokens
        self._sessions = sessions
        self._max_failed_attempts = max_failed_attempts
        self._lockout = lockout
        self._verification_ttl = verification_ttl
        self._reset_ttl = reset_ttl
        self._encryption = encryption
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    async def get_user(self, user_id: str) -> User:
        user = await self._users.get_user(user_id)
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    async def _issue_token(self, user_id: str, purpose: str, ttl: timedelta) -> OneTimeToken:
        now = self._clock()
        return await self._tokens.add_token(
            OneTimeToken(
                id=str(uuid.uuid4()),
                user_id=user_id,
                token=secrets.token_hex(32),
                purpose=purpose,
                expires_at=now + ttl,
                created_at=now,
            )
        )

    async def _consume_token(self, token: str, purpose: str) -> OneTimeToken:
        record = await self._tokens.get_token(token, purpose)
        now = self._clock()
        if record is None or not record.is_usable(now):
            raise InvalidTokenError("Token is invalid, expired or already used")
        await self._tokens.mark_token_used(token, now)
        return record

    # ------------------------------------------------------------------
    # Registration and verification
    # ------------------------------------------------------------------

    async def register(self, email: str, password: str) -> Tuple[User, OneTimeToken]:
        """Create a pending account and its email verification token."""
        email = normalize_email(email)
        if await self._users.get_user_by_email(email) is not None:
            raise DuplicateEmailError("Email already in use")
        now = self._clock()
        user = await self._users.add_user(
            User(
                id=str(uuid.uuid4()),
                email=email,
                password_hash=hash_password(password),
                status=UserStatus.PENDING_VERIFICATION,
                created_at=now,
                updated_at=now,
            )
        )
        token = await self._issue_token(
            user.id, TOKEN_PURPOSE_EMAIL_VERIFICATION, self._verification_ttl
        )
        self._logger.info("user_registered", extra={"user_id": user.id})
        return user, token

    async def verify_email(self, token: str) -> User:
        record = await self._consume_token(token, TOKEN_PURPOSE_EMAIL_VERIFICATION)
        user = await self.get_user(record.user_id)
        status = user.status
        if status is UserStatus.PENDING_VERIFICATION:
            status = UserStatus.ACTIVE
        return await self._users.update_user(
            replace(user, email_verified=True, status=status, updated_at=self._clock())
        )

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    async def authenticate(self, email: str, password: str) -> User:
        """
        Verify credentials. Raises AuthenticationError (or a subclass) on any failure;
        the message never reveals whether the email exists.
        """
        user = await self._users.get_user_by_email(normalize_email(email))
        if user is None:
            raise AuthenticationError(INVALID_CREDENTIALS)

        now = self._clock()
        if user.is_locked(now):
            raise AccountLockedError("Account is temporarily locked")

        if not verify_password(password, user.password_hash):
            attempts = user.failed_login_attempts + 1
            if attempts >= self._max_failed_attempts:
                await self._users.update_user(
                    replace(
                        user,
                        failed_login_attempts=0,
                        locked_until=now + self._lockout,
                        updated_at=now,
                    )
                )
                self._logger.warning("account_locked", extra={"user_id": user.id})
                raise AccountLockedError("Account is temporarily locked")
            await self._users.update_user(
                replace(user, failed_login_attempts=attempts, updated_at=now)
            )
            raise AuthenticationError(INVALID_CREDENTIALS)

        if user.status is not UserStatus.ACTIVE:
            raise AccountNotActiveError(f"Account is {user.status.value}")

        return await self._users.update_user(
            replace(
                user,
                failed_login_attempts=0,
                locked_until=None,
                last_login_at=now,
                updated_at=now,
            )
        )

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def set_status(self, user_id: str, status: UserStatus) -> User:
        """Suspend, deactivate or reactivate. Leaving ACTIVE revokes all sessions."""
        user = await self.get_user(user_id)
        if user.status is status:
            return user
        if status not in _ADMIN_TRANSITIONS[user.status]:
            raise InvalidStatusTransitionError(
                f"Cannot change status from {user.status.value} to {status.value}"
            )
        updated = await self._users.update_user(
            replace(user, status=status, updated_at=self._clock())
        )
        if status is not UserStatus.ACTIVE:
            await self._sessions.revoke_user_sessions(user_id)
        return updated

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    async def request_password_reset(self, email: str) -> Optional[OneTimeToken]:
        """Issue a reset token, or None for an unknown email (callers respond identically)."""
        user = await self._users.get_user_by_email(normalize_email(email))
        if user is None:
            return None
        return await self._issue_token(user.id, TOKEN_PURPOSE_PASSWORD_RESET, self._reset_ttl)

    async def reset_password(self, token: str, new_password: str) -> User:
        """Single-use token. Clears any lockout and revokes every session of the user."""
        record = await self._consume_token(token, TOKEN_PURPOSE_PASSWORD_RESET)
        user = await self.get_user(record.user_id)
        updated = await self._users.update_user(
            replace(
                user,
                password_hash=hash_password(new_password),
                failed_login_attempts=0,
                locked_until=None,
                updated_at=self._clock(),
            )
        )
        await self._sessions.revoke_user_sessions(user.id)
        return updated

    async def change_password(self, user_id: str, current_password: str, new_password: str) -> User:
        user = await self.get_user(user_id)
        if not verify_password(current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")
        return await self._users.update_user(
            replace(user, password_hash=hash_password(new_password), updated_at=self._clock())
        )

    # ------------------------------------------------------------------
    # MFA
    # ------------------------------------------------------------------

    def _require_encryption(self) -> EncryptionService:
        if self._encryption is None:
            raise EncryptionError("MFA is not configured: MFA_ENCRYPTION_KEY is missing")
        return self._encryption

    async def enable_mfa(self, user_id: str, secret: str) -> User:
        """Store the MFA seed encrypted at rest."""
        encryption = self._require_encryption()
        user = await self.get_user(user_id)
        return await self._users.update_user(
            replace(
                user,
                mfa_enabled=True,
                mfa_secret=encryption.encrypt(secret),
                updated_at=self._clock(),
            )
        )

    async def disable_mfa(self, user_id: str) -> User:
        user = await self.get_user(user_id)
        return await self._users.update_user(
            replace(user, mfa_enabled=False, mfa_secret=None, updated_at=self._clock())
        )

    async def get_mfa_secret(self, user_id: str) -> Optional[str]:
        user = await self.get_user(user_id)
        if not user.mfa_enabled or user.mfa_secret is None:
            return None
        return self._require_encryption().decrypt(user.mfa_secret)
