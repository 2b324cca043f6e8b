"""
Domain entities - Pure business logic, no framework dependencies.

Following SOLID principles:
- Single Responsibility: Each entity represents one business concept
- Open/Closed: Entities can be extended without modification
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Warehouse:
    """A mobile stock unit (camioneta) as reported by the inventory catalog.

    ``stock_total`` is informational only; no rule depends on it.
    """

    id: int
    name: str = ""
    stock_total: int = 0

    def __post_init__(self):
        """Validate domain rules."""
        if isinstance(self.id, bool) or not isinstance(self.id, int):
            raise ValueError("Warehouse id must be an integer")


@dataclass(frozen=True)
class User:
    """Domain entity representing a field operator (cobrador).

    ``assigned_warehouse_id`` is the only attribute this subsystem changes;
    the display attributes come from the user directory untouched.
    """

    id: str
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    assigned_warehouse_id: Optional[int] = None

    def __post_init__(self):
        """Validate domain rules."""
        if not self.id:
            raise ValueError("User id is required")

    def with_assignment(self, warehouse_id: Optional[int]) -> "User":
        return replace(self, assigned_warehouse_id=warehouse_id)

    def matches(self, search: str) -> bool:
        """Case-insensitive substring match on name or email."""
        term = search.lower()
        if term in self.name.lower():
            return True
        return bool(self.email) and term in self.email.lower()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "assigned_warehouse_id": self.assigned_warehouse_id,
        }


class WriteState(str, Enum):
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


@dataclass(frozen=True)
class WriteStatus:
    """Outcome of the latest remote write issued for one user (or the
    exclusion document)."""

    state: WriteState
    error: Optional[str] = None
    rolled_back: bool = False

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "error": self.error,
            "rolled_back": self.rolled_back,
        }


@dataclass
class AssignmentProjection:
    """In-memory view of which users sit in which warehouse.

    Every user appears exactly once: either in ``available`` or in a single
    ``by_warehouse`` list.
    """

    by_warehouse: Dict[int, List[User]] = field(default_factory=dict)
    available: List[User] = field(default_factory=list)

    def locate(self, user_id: str) -> Tuple[Optional[User], Optional[int]]:
        """Return (user, warehouse_id); warehouse_id is None for available users."""
        for warehouse_id, users in self.by_warehouse.items():
            for user in users:
                if user.id == user_id:
                    return user, warehouse_id
        for user in self.available:
            if user.id == user_id:
                return user, None
        return None, None

    def count(self, warehouse_id: int) -> int:
        return len(self.by_warehouse.get(warehouse_id, []))

    def assigned_users(self) -> List[User]:
        return [user for users in self.by_warehouse.values() for user in users]


@dataclass
class WarehouseView:
    """A warehouse together with the users currently placed in it."""

    warehouse: Warehouse
    capacity: int
    excluded: bool
    users: List[User] = field(default_factory=list)

    @property
    def is_full(self) -> bool:
        return len(self.users) >= self.capacity

    def to_dict(self, statuses: Optional[Dict[str, WriteStatus]] = None) -> dict:
        statuses = statuses or {}
        return {
            "id": self.warehouse.id,
            "name": self.warehouse.name,
            "stock_total": self.warehouse.stock_total,
            "capacity": self.capacity,
            "excluded": self.excluded,
            "assigned_count": len(self.users),
            "is_full": self.is_full,
            "users": [
                user_with_status(user, statuses.get(user.id)) for user in self.users
            ],
        }


def user_with_status(user: User, status: Optional[WriteStatus]) -> dict:
    data = user.to_dict()
    data["write_status"] = status.to_dict() if status else None
    return data
