"""
Centralized Enum definitions for the project.
"""

from enum import Enum


class QuoteStatus(str, Enum):
    """Lifecycle states of a quotation"""

    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, value: "str | QuoteStatus | None") -> "QuoteStatus":
        """Parse a stored status, accepting the legacy Spanish values."""
        if isinstance(value, cls):
            return value
        if not value:
            # Older quotes were saved without a status
            return cls.IN_PROGRESS
        normalized = str(value).strip().lower()
        if normalized in LEGACY_QUOTE_STATUSES:
            return LEGACY_QUOTE_STATUSES[normalized]
        return cls(normalized)


LEGACY_QUOTE_STATUSES = {
    "en_proceso": QuoteStatus.IN_PROGRESS,
    "aprobado": QuoteStatus.APPROVED,
}


class Role(str, Enum):
    """Caller roles, ordered from least to most privileged"""

    WORKER = "worker"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]


_ROLE_RANK = {Role.WORKER: 0, Role.ADMIN: 1, Role.SUPERADMIN: 2}

LEGACY_ROLES = {
    "trabajador": Role.WORKER,
}


class ItemType(str, Enum):
    """Kinds of quote line items and catalog products"""

    EQUIPMENT = "equipo"
    SERVICE = "servicio"


class InventoryEventType(str, Enum):
    """Types of inventory events"""

    RESERVED = "RESERVED"  # Stock taken by an approved quote
    RELEASED = "RELEASED"  # Stock returned by a compensating release
    ADJUSTED = "ADJUSTED"  # Manual adjustment by an administrator


class ReconciliationState(str, Enum):
    """Marker left on a quote while its stock deduction is not settled"""

    PENDING = "pending"
    INCONSISTENT = "inconsistent"
