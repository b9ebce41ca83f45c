"""
Module: connectors.identity_provider

Provides an in-memory identity provider: email/password accounts, the current
caller session and the privileged credential update used by administrators.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass

from passlib.context import CryptContext  # For password hashing

from models.errors import InvalidArgument, NotFound, PermissionDenied

logger = logging.getLogger(__name__)


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


@dataclass
class Account:
    uid: str
    email: str
    password_hash: str


class InMemoryIdentityProvider:
    """
    In-memory identity provider. Only resolves *who* the caller is; roles live
    in the ``users`` collection of the document store.
    """

    def __init__(self):
        self._accounts: dict[str, Account] = {}
        self._current_uid: str | None = None

    @property
    def current_uid(self) -> str | None:
        return self._current_uid

    def _find_by_email(self, email: str) -> Account | None:
        email = email.strip().lower()
        for account in self._accounts.values():
            if account.email == email:
                return account
        return None

    async def create_account(self, email: str, password: str, uid: str | None = None) -> str:
        """Register a new email/password account and return its uid."""
        await asyncio.sleep(0)
        if not email or "@" not in email:
            raise InvalidArgument(f"Invalid email: {email!r}")
        if self._find_by_email(email):
            raise InvalidArgument(f"Email already in use: {email}")
        uid = uid or uuid.uuid4().hex
        self._accounts[uid] = Account(
            uid=uid,
            email=email.strip().lower(),
            password_hash=pwd_context.hash(password),
        )
        logger.info(f"Account created for {email} ({uid})")
        return uid

    async def sign_in(self, email: str, password: str) -> str:
        """Start a session for the account, returning its uid."""
        await asyncio.sleep(0)
        account = self._find_by_email(email)
        if account is None or not pwd_context.verify(password, account.password_hash):
            raise PermissionDenied("Invalid credentials")
        self._current_uid = account.uid
        return account.uid

    async def sign_out(self) -> None:
        await asyncio.sleep(0)
        self._current_uid = None

    async def get_email(self, uid: str) -> str | None:
        account = self._accounts.get(uid)
        return account.email if account else None

    async def verify_password(self, uid: str, password: str) -> bool:
        account = self._accounts.get(uid)
        return account is not None and pwd_context.verify(password, account.password_hash)

    async def update_password(self, uid: str, new_password: str) -> None:
        """Privileged: set another account's credential."""
        await asyncio.sleep(0)
        account = self._accounts.get(uid)
        if account is None:
            raise NotFound("user", uid)
        account.password_hash = pwd_context.hash(new_password)
