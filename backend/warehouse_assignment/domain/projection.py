"""
Projection building - a pure function of catalog, exclusion set and users.
"""

from dataclasses import dataclass, field
from typing import AbstractSet, Dict, Iterable, List, Optional

from .entities import AssignmentProjection, User, Warehouse

STALE_UNKNOWN = "unknown"
STALE_EXCLUDED = "excluded"


@dataclass
class ProjectionBuild:
    projection: AssignmentProjection
    # user id -> STALE_UNKNOWN / STALE_EXCLUDED
    stale: Dict[str, str] = field(default_factory=dict)
    # users whose stored warehouse was already full
    overflow: List[str] = field(default_factory=list)


def _position_index(projection: Optional[AssignmentProjection]) -> Dict[str, int]:
    if projection is None:
        return {}
    positions: Dict[str, int] = {}
    for users in projection.by_warehouse.values():
        for index, user in enumerate(users):
            positions[user.id] = index
    for index, user in enumerate(projection.available):
        positions[user.id] = index
    return positions


def _previous_location(
    projection: Optional[AssignmentProjection],
) -> Dict[str, Optional[int]]:
    if projection is None:
        return {}
    locations: Dict[str, Optional[int]] = {}
    for warehouse_id, users in projection.by_warehouse.items():
        for user in users:
            locations[user.id] = warehouse_id
    for user in projection.available:
        locations[user.id] = None
    return locations


def build_projection(
    users: Iterable[User],
    warehouses: Iterable[Warehouse],
    excluded_ids: AbstractSet[int],
    capacity: int,
    previous: Optional[AssignmentProjection] = None,
) -> ProjectionBuild:
    """Place every user in its stored warehouse or in the available list.

    Users keep their relative order within a list they were already in;
    newcomers go to the end in directory order. A stored warehouse that is
    unknown or excluded sends the user to ``available`` and is reported as
    stale. Users beyond ``capacity`` in one warehouse are reported as
    overflow and also land in ``available``.
    """
    known = {warehouse.id for warehouse in warehouses}
    positions = _position_index(previous)
    locations = _previous_location(previous)
    user_list = list(users)

    def sort_key(slot):
        def key(entry):
            order, user = entry
            if user.id in positions and locations.get(user.id, "") == slot:
                return (0, positions[user.id], order)
            return (1, 0, order)

        return key

    candidates: Dict[int, list] = {wid: [] for wid in known if wid not in excluded_ids}
    leftovers = []
    stale: Dict[str, str] = {}

    for order, user in enumerate(user_list):
        target = user.assigned_warehouse_id
        if target is None:
            leftovers.append((order, user))
        elif target not in known:
            stale[user.id] = STALE_UNKNOWN
            leftovers.append((order, user))
        elif target in excluded_ids:
            stale[user.id] = STALE_EXCLUDED
            leftovers.append((order, user))
        else:
            candidates[target].append((order, user))

    by_warehouse: Dict[int, List[User]] = {}
    overflow: List[str] = []
    for warehouse_id, entries in candidates.items():
        entries.sort(key=sort_key(warehouse_id))
        kept = entries[:capacity]
        for entry in entries[capacity:]:
            overflow.append(entry[1].id)
            leftovers.append(entry)
        by_warehouse[warehouse_id] = [user for _, user in kept]

    leftovers.sort(key=sort_key(None))
    available = [user for _, user in leftovers]

    return ProjectionBuild(
        projection=AssignmentProjection(by_warehouse=by_warehouse, available=available),
        stale=stale,
        overflow=overflow,
    )
