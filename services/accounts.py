"""
Caller sessions and the privileged account operations reserved to superadmins.
"""

import logging
from datetime import datetime

from config.config import PasswordPolicy
from connectors.identity_provider import InMemoryIdentityProvider
from models.enums import Role
from models.errors import InvalidArgument, PermissionDenied
from models.users import UserProfile, parse_role
from services.access import CallerSession, require_role
from services.repositories import UserRepository

logger_accounts = logging.getLogger(__name__)


class AuthService:
    """Resolves the current caller and their role."""

    def __init__(
        self,
        identity: InMemoryIdentityProvider,
        users: UserRepository,
        logger: logging.Logger | None = None,
    ):
        self.identity = identity
        self.users = users
        self.logger = logger or logger_accounts

    async def current_session(self) -> CallerSession:
        uid = self.identity.current_uid
        if uid is None:
            return CallerSession()
        profile = await self.users.find(uid)
        if profile is None:
            self.logger.error(f"Profile document does not exist for uid {uid}")
        return CallerSession(uid=uid, profile=profile)

    async def login(self, email: str, password: str) -> CallerSession:
        await self.identity.sign_in(email, password)
        self.logger.info(f"Login successful for {email}")
        return await self.current_session()

    async def logout(self) -> None:
        await self.identity.sign_out()


class AccountAdminService:
    """User management gated by the superadmin tier of the access policy."""

    def __init__(
        self,
        identity: InMemoryIdentityProvider,
        users: UserRepository,
        policy: PasswordPolicy | None = None,
        logger: logging.Logger | None = None,
    ):
        self.identity = identity
        self.users = users
        self.policy = policy or PasswordPolicy()
        self.logger = logger or logger_accounts

    async def _require_superadmin(self, caller_uid: str | None) -> UserProfile:
        if not caller_uid:
            raise PermissionDenied("Caller must be authenticated")
        try:
            caller = await self.users.find(caller_uid)
        except InvalidArgument as exc:
            self.logger.error(f"Caller {caller_uid} has an unreadable profile: {exc}")
            raise PermissionDenied() from None
        if caller is None:
            raise PermissionDenied()
        require_role(caller.role, Role.SUPERADMIN)
        return caller

    def _check_password(self, password: object) -> str:
        if not password or not isinstance(password, str):
            raise InvalidArgument("new_password is required and must be a string")
        if len(password) < self.policy.min_length:
            raise InvalidArgument(f"Password must be at least {self.policy.min_length} characters")
        return password

    async def reset_password(self, caller_uid: str | None, user_id: str, new_password: str) -> None:
        """
        Set another user's credential.

        Permission is settled before the target is looked up, so a denied
        caller learns nothing about which users exist.
        """
        caller = await self._require_superadmin(caller_uid)
        if not user_id or not isinstance(user_id, str):
            raise InvalidArgument("user_id is required and must be a string")
        self._check_password(new_password)

        await self.users.get(user_id)
        await self.identity.update_password(user_id, new_password)
        set_by = caller.display_name or await self.identity.get_email(caller.id) or caller.id
        await self.users.update(
            user_id,
            {
                "passwordSetBy": set_by,
                "passwordSetAt": datetime.now(),
                "requiresPasswordChange": True,
            },
        )
        self.logger.info(f"Password updated for user {user_id} by {set_by}")

    async def create_user(
        self,
        caller_uid: str | None,
        email: str,
        password: str,
        display_name: str,
        role: Role | str = Role.WORKER,
    ) -> str:
        await self._require_superadmin(caller_uid)
        self._check_password(password)
        profile_role = parse_role(role)
        uid = await self.identity.create_account(email, password)
        await self.users.save(
            UserProfile(id=uid, display_name=display_name, email=email, role=profile_role)
        )
        self.logger.info(f"User created: {uid} ({profile_role.value})")
        return uid

    async def set_user_active(self, caller_uid: str | None, user_id: str, active: bool) -> None:
        await self._require_superadmin(caller_uid)
        await self.users.set_active(user_id, active)
        self.logger.info(f"User {'activated' if active else 'deactivated'}: {user_id}")
