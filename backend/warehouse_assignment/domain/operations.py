"""
Operation values accepted by the assignment engine.

An operation only describes intent. The engine answers
``would_require_confirmation(operation)`` first and executes
``apply(operation, ...)`` once the caller has the operator's consent.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

CONFIRM_REASSIGN = "reassign"
CONFIRM_EVACUATE = "evacuate"
CONFIRM_EXCLUDE = "exclude"
CONFIRM_INCLUDE = "include"
CONFIRM_RESET = "reset"


@dataclass(frozen=True)
class AssignOperation:
    user_id: str
    warehouse_id: int


@dataclass(frozen=True)
class UnassignOperation:
    user_id: str


@dataclass(frozen=True)
class MoveOperation:
    """A drag completion. ``None`` on either side means the available list."""

    user_id: str
    from_warehouse_id: Optional[int]
    to_warehouse_id: Optional[int]


@dataclass(frozen=True)
class ToggleExclusionOperation:
    warehouse_id: int


@dataclass(frozen=True)
class ResetAllOperation:
    pass


@dataclass(frozen=True)
class ConfirmationRequirement:
    """Consent an operation needs before it may run.

    When ``phrase`` is set the operator must type it; otherwise a yes/no
    answer is enough.
    """

    kind: str
    message: str
    affected_user_ids: Tuple[str, ...] = ()
    phrase: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "affected_user_ids": list(self.affected_user_ids),
            "affected_count": len(self.affected_user_ids),
            "phrase": self.phrase,
        }


@dataclass
class OperationResult:
    """What an applied operation changed and the remote writes it issued."""

    message: str
    affected_user_ids: List[str] = field(default_factory=list)
    writes: list = field(default_factory=list)
    changed: bool = True

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "affected_user_ids": list(self.affected_user_ids),
            "writes_issued": len(self.writes),
            "changed": self.changed,
        }
