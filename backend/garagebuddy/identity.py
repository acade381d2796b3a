"""Account store, password verification and sign-in bookkeeping.

`UserManager` owns everything about stored accounts: lookup, creation
with a hashed password, role membership, lockout counters and password
reset tokens. `SignInManager` verifies credentials through a
`UserManager` and keeps the signed-in session of the current request.

Domain services never re-implement any of this; they call these two
classes and pass their outcomes through unchanged.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Union

import jwt
from passlib.context import CryptContext
from sqlalchemy import and_
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from .config import Settings, settings as default_settings
from .constants import (
    ERROR_CANNOT_BE_NULL_OR_WHITESPACE,
    ERROR_DUPLICATE_USER_NAME,
    ERROR_INVALID_TOKEN,
    ERROR_PASSWORD_TOO_SHORT,
    ERROR_ROLE_NOT_FOUND,
    ERROR_USER_ALREADY_IN_ROLE,
)
from .errors import NotFoundError
from .models import ApplicationRole, ApplicationUser, ApplicationUserRole, as_utc, utcnow
from .repositories import SQLModelRepository
from .result import IdentityResult, SignInResult

logger = logging.getLogger(__name__)

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
RESET_PASSWORD_PURPOSE = "ResetPassword"


def normalize(value: Optional[str]) -> Optional[str]:
    """Lookup key for user names, emails and role names."""
    if value is None:
        return None
    return value.strip().upper()


def new_security_stamp() -> str:
    return uuid.uuid4().hex


class UserManager:
    """Account operations backed by the generic repository."""

    def __init__(self, session: AsyncSession, settings: Settings = None):
        self.session = session
        self.settings = settings or default_settings
        self.users = SQLModelRepository[ApplicationUser, uuid.UUID](session, ApplicationUser)
        self.roles = SQLModelRepository[ApplicationRole, uuid.UUID](session, ApplicationRole)
        self.user_roles = SQLModelRepository[ApplicationUserRole, int](session, ApplicationUserRole)

    @property
    def require_confirmed_email(self) -> bool:
        return self.settings.REQUIRE_CONFIRMED_EMAIL

    async def find_by_name(self, user_name: str) -> Optional[ApplicationUser]:
        if not user_name:
            return None
        return await self.users.first(ApplicationUser.normalized_user_name == normalize(user_name))

    async def find_by_email(self, email: str) -> Optional[ApplicationUser]:
        if not email:
            return None
        return await self.users.first(ApplicationUser.normalized_email == normalize(email))

    async def find_by_id(self, user_id: Union[str, uuid.UUID]) -> Optional[ApplicationUser]:
        if isinstance(user_id, str):
            try:
                user_id = uuid.UUID(user_id)
            except ValueError:
                return None
        try:
            return await self.users.find(user_id)
        except NotFoundError:
            return None

    async def users_count(self) -> int:
        return await self.users.count()

    async def create(self, user: ApplicationUser, password: str) -> IdentityResult:
        """Validate and persist a new account with a hashed password.

        The account is committed immediately; the outcome lists every
        validation error at once.
        """
        errors = []
        if not user.user_name or not user.user_name.strip():
            errors.append(ERROR_CANNOT_BE_NULL_OR_WHITESPACE.format("Username"))
        elif await self.find_by_name(user.user_name) is not None:
            errors.append(ERROR_DUPLICATE_USER_NAME.format(user.user_name))
        errors.extend(self._validate_password(password))
        if errors:
            return IdentityResult.failed(*errors)

        user.normalized_user_name = normalize(user.user_name)
        user.normalized_email = normalize(user.email)
        user.password_hash = PWD_CTX.hash(password)
        user.security_stamp = new_security_stamp()
        self.users.add(user)
        await self.users.save_changes()
        logger.info("created user %s", user.id)
        return IdentityResult.success()

    def check_password(self, user: ApplicationUser, password: str) -> bool:
        if not user.password_hash or password is None:
            return False
        return PWD_CTX.verify(password, user.password_hash)

    def is_email_confirmed(self, user: ApplicationUser) -> bool:
        return user.email_confirmed

    async def confirm_email(self, user: ApplicationUser) -> IdentityResult:
        user.email_confirmed = True
        self.users.update(user)
        await self.users.save_changes()
        return IdentityResult.success()

    async def add_to_role(self, user: ApplicationUser, role_name: str) -> IdentityResult:
        role = await self.roles.first(ApplicationRole.normalized_name == normalize(role_name))
        if role is None:
            return IdentityResult.failed(ERROR_ROLE_NOT_FOUND.format(role_name))
        membership = and_(ApplicationUserRole.user_id == user.id, ApplicationUserRole.role_id == role.id)
        if await self.user_roles.any(membership):
            return IdentityResult.failed(ERROR_USER_ALREADY_IN_ROLE.format(role_name))
        self.user_roles.add(ApplicationUserRole(user_id=user.id, role_id=role.id))
        await self.user_roles.save_changes()
        logger.info("added user %s to role %s", user.id, role.name)
        return IdentityResult.success()

    async def get_roles(self, user: ApplicationUser) -> List[str]:
        stmt = (
            select(ApplicationRole.name)
            .join(ApplicationUserRole, ApplicationUserRole.role_id == ApplicationRole.id)
            .where(ApplicationUserRole.user_id == user.id)
            .order_by(ApplicationRole.name)
        )
        result = await self.session.exec(stmt)
        return list(result.all())

    async def is_in_role(self, user: ApplicationUser, role_name: str) -> bool:
        wanted = normalize(role_name)
        return any(normalize(name) == wanted for name in await self.get_roles(user))

    def is_locked_out(self, user: ApplicationUser) -> bool:
        return bool(user.lockout_enabled and user.lockout_end is not None and as_utc(user.lockout_end) > utcnow())

    async def access_failed(self, user: ApplicationUser) -> None:
        """Record a failed password check; lock the account at the threshold."""
        user.access_failed_count += 1
        if user.access_failed_count >= self.settings.LOCKOUT_MAX_FAILED_ATTEMPTS:
            user.lockout_end = utcnow() + timedelta(minutes=self.settings.LOCKOUT_MINUTES)
            user.access_failed_count = 0
            logger.warning("user %s locked out until %s", user.id, user.lockout_end)
        self.users.update(user)
        await self.users.save_changes()

    async def reset_access_failed_count(self, user: ApplicationUser) -> None:
        if user.access_failed_count == 0:
            return
        user.access_failed_count = 0
        self.users.update(user)
        await self.users.save_changes()

    def generate_password_reset_token(self, user: ApplicationUser) -> str:
        """Return a signed token that resets this user's password once."""
        now = datetime.now(timezone.utc)
        expire = now + timedelta(hours=self.settings.RESET_TOKEN_EXPIRE_HOURS)
        payload = {
            "sub": str(user.id),
            "purpose": RESET_PASSWORD_PURPOSE,
            "stamp": user.security_stamp,
            "iat": int(now.timestamp()),
            "exp": int(expire.timestamp()),
        }
        return jwt.encode(payload, self.settings.JWT_SECRET, algorithm=self.settings.JWT_ALGORITHM)

    def verify_password_reset_token(self, user: ApplicationUser, token: str) -> bool:
        if not token:
            return False
        try:
            payload = jwt.decode(token, self.settings.JWT_SECRET, algorithms=[self.settings.JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            logger.info("expired reset token for user %s", user.id)
            return False
        except jwt.PyJWTError:
            return False
        return (
            payload.get("purpose") == RESET_PASSWORD_PURPOSE
            and payload.get("sub") == str(user.id)
            and payload.get("stamp") == user.security_stamp
        )

    async def reset_password(self, user: ApplicationUser, token: str, new_password: str) -> IdentityResult:
        if not self.verify_password_reset_token(user, token):
            return IdentityResult.failed(ERROR_INVALID_TOKEN)
        errors = self._validate_password(new_password)
        if errors:
            return IdentityResult.failed(*errors)
        user.password_hash = PWD_CTX.hash(new_password)
        user.security_stamp = new_security_stamp()
        user.access_failed_count = 0
        user.lockout_end = None
        self.users.update(user)
        await self.users.save_changes()
        return IdentityResult.success()

    def _validate_password(self, password: Optional[str]) -> List[str]:
        if not password or len(password) < self.settings.PASSWORD_MIN_LENGTH:
            return [ERROR_PASSWORD_TOO_SHORT.format(self.settings.PASSWORD_MIN_LENGTH)]
        return []


class SignInManager:
    """Credential checks and the signed-in session of one request."""

    def __init__(self, user_manager: UserManager):
        self.user_manager = user_manager
        self.settings = user_manager.settings
        self.current_user: Optional[ApplicationUser] = None
        self.session_token: Optional[str] = None

    @property
    def is_signed_in(self) -> bool:
        return self.current_user is not None

    def can_sign_in(self, user: ApplicationUser) -> bool:
        if self.user_manager.require_confirmed_email and not self.user_manager.is_email_confirmed(user):
            return False
        return True

    async def password_sign_in(
        self,
        user: Optional[ApplicationUser],
        password: str,
        is_persistent: bool,
        lockout_on_failure: bool,
    ) -> SignInResult:
        """Verify `password` for `user` and sign in on success.

        Checks run in a fixed order: unknown account, sign-in not allowed
        (unconfirmed email), active lockout, password, two-factor.
        """
        if user is None:
            return SignInResult.FAILED
        if not self.can_sign_in(user):
            return SignInResult.NOT_ALLOWED
        if self.user_manager.is_locked_out(user):
            return SignInResult.LOCKED_OUT

        if self.user_manager.check_password(user, password):
            await self.user_manager.reset_access_failed_count(user)
            if user.two_factor_enabled:
                return SignInResult.REQUIRES_TWO_FACTOR
            self.sign_in(user, is_persistent)
            return SignInResult.SUCCEEDED

        if lockout_on_failure and user.lockout_enabled:
            await self.user_manager.access_failed(user)
            if self.user_manager.is_locked_out(user):
                return SignInResult.LOCKED_OUT
        return SignInResult.FAILED

    def sign_in(self, user: ApplicationUser, is_persistent: bool = False) -> str:
        """Issue a session token for `user` and remember it as signed in."""
        now = datetime.now(timezone.utc)
        if is_persistent:
            expire = now + timedelta(days=self.settings.PERSISTENT_SESSION_EXPIRE_DAYS)
        else:
            expire = now + timedelta(hours=self.settings.SESSION_EXPIRE_HOURS)
        payload = {
            "user_id": str(user.id),
            "username": user.user_name,
            "persistent": is_persistent,
            "exp": int(expire.timestamp()),
        }
        self.session_token = jwt.encode(payload, self.settings.JWT_SECRET, algorithm=self.settings.JWT_ALGORITHM)
        self.current_user = user
        return self.session_token

    def sign_out(self) -> None:
        self.current_user = None
        self.session_token = None

    def decode_session_token(self, token: str) -> Optional[dict]:
        """Return the payload of a valid session token, or None."""
        try:
            return jwt.decode(token, self.settings.JWT_SECRET, algorithms=[self.settings.JWT_ALGORITHM])
        except jwt.PyJWTError:
            return None
