"""
Unit tests for build_projection.

The projection is rebuilt from catalog, exclusion set and stored user
assignments; these tests pin down placement, ordering and the stale and
overflow reports.
"""

import pytest

from tests.factories.repository_factories import make_user, make_warehouses
from warehouse_assignment.domain.projection import (
    STALE_EXCLUDED,
    STALE_UNKNOWN,
    build_projection,
)


def _ids(users):
    return [user.id for user in users]


@pytest.mark.unit
class TestBuildProjection:
    def test_places_users_in_stored_warehouses(self):
        users = [make_user("a", 1), make_user("b", 2), make_user("c")]
        build = build_projection(users, make_warehouses(1, 2), set(), 3)

        assert _ids(build.projection.by_warehouse[1]) == ["a"]
        assert _ids(build.projection.by_warehouse[2]) == ["b"]
        assert _ids(build.projection.available) == ["c"]
        assert build.stale == {}
        assert build.overflow == []

    def test_every_known_included_warehouse_gets_a_list(self):
        build = build_projection([], make_warehouses(1, 2, 3), {2}, 3)

        assert set(build.projection.by_warehouse) == {1, 3}

    def test_unknown_and_excluded_references_are_stale(self):
        users = [make_user("a", 99), make_user("b", 2)]
        build = build_projection(users, make_warehouses(1, 2), {2}, 3)

        assert _ids(build.projection.available) == ["a", "b"]
        assert build.stale == {"a": STALE_UNKNOWN, "b": STALE_EXCLUDED}
        assert build.projection.by_warehouse == {1: []}

    def test_users_beyond_capacity_overflow_to_available(self):
        users = [make_user(uid, 1) for uid in ("a", "b", "c", "d", "e")]
        build = build_projection(users, make_warehouses(1), set(), 3)

        assert _ids(build.projection.by_warehouse[1]) == ["a", "b", "c"]
        assert build.overflow == ["d", "e"]
        assert _ids(build.projection.available) == ["d", "e"]

    def test_previous_order_is_kept_and_newcomers_are_appended(self):
        first = build_projection(
            [make_user("a", 1), make_user("b", 1)], make_warehouses(1), set(), 3
        )
        # Directory order changed and "c" joined warehouse 1
        users = [make_user("c", 1), make_user("b", 1), make_user("a", 1)]
        second = build_projection(
            users, make_warehouses(1), set(), 3, previous=first.projection
        )

        assert _ids(second.projection.by_warehouse[1]) == ["a", "b", "c"]

    def test_previous_members_win_capacity_over_newcomers(self):
        first = build_projection(
            [make_user(uid, 1) for uid in ("a", "b", "c")],
            make_warehouses(1),
            set(),
            3,
        )
        users = [make_user("z", 1)] + [make_user(uid, 1) for uid in ("a", "b", "c")]
        second = build_projection(
            users, make_warehouses(1), set(), 3, previous=first.projection
        )

        assert _ids(second.projection.by_warehouse[1]) == ["a", "b", "c"]
        assert second.overflow == ["z"]

    def test_partition_holds_for_mixed_input(self):
        users = [
            make_user("a", 1),
            make_user("b", 1),
            make_user("c", 1),
            make_user("d", 1),
            make_user("e", 2),
            make_user("f", 7),
            make_user("g"),
        ]
        build = build_projection(users, make_warehouses(1, 2, 3), {2}, 3)

        placed = _ids(build.projection.available) + _ids(
            build.projection.assigned_users()
        )
        assert sorted(placed) == sorted(_ids(users))
        assert len(placed) == len(set(placed))
        assert all(len(v) <= 3 for v in build.projection.by_warehouse.values())
