"""
User profile model, stored in the ``users`` collection keyed by identity uid.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, field_validator

from .enums import LEGACY_ROLES, Role
from .errors import InvalidArgument


def parse_role(value: Any) -> Role:
    """
    Validate a stored role.

    Unknown values are rejected instead of being treated as any privilege level.
    """
    if isinstance(value, Role):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"Missing or malformed role: {value!r}")
    normalized = value.strip().lower()
    if normalized in LEGACY_ROLES:
        return LEGACY_ROLES[normalized]
    try:
        return Role(normalized)
    except ValueError:
        raise InvalidArgument(f"Unrecognized role: {value!r}") from None


class UserProfile(BaseModel):
    """Profile record holding the caller's role."""

    id: str
    display_name: str = ""
    email: str = ""
    role: Role = Role.WORKER
    active: bool = True
    password_set_by: str | None = None
    password_set_at: datetime | None = None
    requires_password_change: bool = False
    created_at: datetime | str | None = None

    @field_validator("role", mode="before")
    @classmethod
    def _validate_role(cls, value: Any) -> Role:
        return parse_role(value)

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "UserProfile":
        # parse_role raises InvalidArgument before pydantic wraps it
        role = parse_role(data.get("role"))
        return cls(
            id=doc_id,
            display_name=data.get("displayName") or "",
            email=data.get("email") or "",
            role=role,
            active=data.get("active", True) is not False,
            password_set_by=data.get("passwordSetBy"),
            password_set_at=data.get("passwordSetAt"),
            requires_password_change=bool(data.get("requiresPasswordChange", False)),
            created_at=data.get("createdAt"),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "displayName": self.display_name,
            "email": self.email,
            "role": self.role.value,
            "active": self.active,
        }
