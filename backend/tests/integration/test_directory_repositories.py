"""
Integration tests for the SQLAlchemy-backed stores.

Uses the shared in-memory SQLite database configured in conftest.py.
"""

import pytest

from tests.factories.repository_factories import make_user
from warehouse_assignment.db.base import ConfigDocument, DirectoryUser
from warehouse_assignment.db.session import SessionLocal


@pytest.mark.integration
@pytest.mark.database
class TestUserDirectoryRepository:
    def test_add_and_list_ordered_by_name(self, directory_repo):
        directory_repo.add(make_user("b", name="Zoe Campos"))
        directory_repo.add(make_user("a", 10, name="Alma Vega"))

        users = directory_repo.list_all()

        assert [u.id for u in users] == ["a", "b"]
        assert users[0].assigned_warehouse_id == 10
        assert users[0].email == "a@example.com"

    def test_set_assigned_warehouse_updates_single_field(self, directory_repo):
        directory_repo.add(make_user("u1", name="Ana"))

        directory_repo.set_assigned_warehouse("u1", 20)

        db = SessionLocal()
        try:
            row = db.query(DirectoryUser).filter_by(id="u1").one()
            assert row.camioneta_asignada == 20
            assert row.name == "Ana"
        finally:
            db.close()

        directory_repo.set_assigned_warehouse("u1", None)
        assert directory_repo.get_by_id("u1").assigned_warehouse_id is None

    def test_missing_user_write_raises(self, directory_repo):
        with pytest.raises(ValueError):
            directory_repo.set_assigned_warehouse("ghost", 10)

    def test_subscribe_delivers_now_and_after_each_write(self, directory_repo):
        directory_repo.add(make_user("u1"))
        snapshots = []

        unsubscribe = directory_repo.subscribe(snapshots.append)
        directory_repo.set_assigned_warehouse("u1", 30)
        unsubscribe()
        directory_repo.set_assigned_warehouse("u1", None)

        assert len(snapshots) == 2
        assert snapshots[0][0].assigned_warehouse_id is None
        assert snapshots[1][0].assigned_warehouse_id == 30

    def test_failing_listener_does_not_fail_the_write(self, directory_repo, caplog):
        directory_repo.add(make_user("u1"))
        calls = []

        def listener(users):
            calls.append(users)
            if len(calls) > 1:
                raise RuntimeError("listener broke")

        directory_repo.subscribe(listener)
        directory_repo.set_assigned_warehouse("u1", 10)

        assert directory_repo.get_by_id("u1").assigned_warehouse_id == 10
        assert "Snapshot listener failed" in caplog.text


@pytest.mark.integration
@pytest.mark.database
class TestExclusionConfigRepository:
    def test_read_returns_none_when_document_missing(self, config_repo):
        assert config_repo.read() is None

    def test_write_replaces_whole_document(self, config_repo):
        config_repo.write({3, 1})
        config_repo.write({2})

        assert config_repo.read() == frozenset({2})

        db = SessionLocal()
        try:
            doc = db.query(ConfigDocument).filter_by(key=config_repo.key).one()
            assert doc.data == {"excludedIds": [2]}
        finally:
            db.close()

    def test_empty_set_is_stored_not_missing(self, config_repo):
        config_repo.write(set())

        assert config_repo.read() == frozenset()
