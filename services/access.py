"""
Role-based access policy and the navigation guard built on it.
"""

import logging
from dataclasses import dataclass

from models.enums import Role
from models.errors import PermissionDenied
from models.users import UserProfile

logger = logging.getLogger(__name__)


def is_allowed(caller_role: Role | str | None, required_role: Role | str) -> bool:
    """
    True when ``caller_role`` satisfies ``required_role``.

    Roles are ordered worker < admin < superadmin. An unauthenticated caller
    (None) or an unrecognised role string is always denied.
    """
    if caller_role is None:
        return False
    try:
        caller = Role(caller_role)
        required = Role(required_role)
    except ValueError:
        return False
    return caller.rank >= required.rank


def require_role(caller_role: Role | str | None, required_role: Role | str) -> None:
    if not is_allowed(caller_role, required_role):
        raise PermissionDenied()


@dataclass
class CallerSession:
    """Who is calling: the identity uid plus the looked-up profile, if any."""

    uid: str | None = None
    profile: UserProfile | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.uid is not None

    @property
    def role(self) -> Role | None:
        return self.profile.role if self.profile else None


@dataclass
class RouteMeta:
    requires_auth: bool = False
    guest_only: bool = False
    role: Role | None = None


LOGIN_ROUTE = "login"
HOME_ROUTE = "dashboard"

# Role tags of the restricted admin views
ADMIN_ROUTES = {
    "login": RouteMeta(guest_only=True),
    "dashboard": RouteMeta(requires_auth=True),
    "quotes.index": RouteMeta(requires_auth=True),
    "quotes.create": RouteMeta(requires_auth=True),
    "quotes.edit": RouteMeta(requires_auth=True),
    "clients.index": RouteMeta(requires_auth=True),
    "products.index": RouteMeta(requires_auth=True, role=Role.ADMIN),
    "categories.index": RouteMeta(requires_auth=True, role=Role.ADMIN),
    "units.index": RouteMeta(requires_auth=True, role=Role.ADMIN),
    "services.index": RouteMeta(requires_auth=True, role=Role.ADMIN),
    "users.index": RouteMeta(requires_auth=True, role=Role.SUPERADMIN),
}


class NavigationGuard:
    """Decides where a navigation ends up for a given session."""

    def __init__(self, routes: dict[str, RouteMeta] | None = None):
        self.routes = routes if routes is not None else ADMIN_ROUTES

    def resolve(self, route_name: str, session: CallerSession) -> str | None:
        """Return the route to redirect to, or None to let the navigation proceed."""
        meta = self.routes.get(route_name, RouteMeta())
        if meta.requires_auth and not session.is_authenticated:
            return LOGIN_ROUTE
        if meta.guest_only and session.is_authenticated:
            return HOME_ROUTE
        if meta.role is not None and not is_allowed(session.role, meta.role):
            logger.info(f"Navigation to {route_name} denied for role {session.role}")
            return HOME_ROUTE
        return None
