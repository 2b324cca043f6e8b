"""
Repository test factories following Interface Segregation Principle.

This module provides in-memory implementations of the store interfaces
for behaviour tests, plus Mock factories for tests that only need to
check the calls made against one interface.
"""

from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import AbstractSet, Dict, List, Optional, Set
from unittest.mock import Mock

from warehouse_assignment.domain.entities import User, Warehouse
from warehouse_assignment.domain.interfaces import (
    IExclusionConfigStore,
    IUserDirectory,
    IUserDirectoryWriter,
    IWarehouseCatalog,
)
from warehouse_assignment.services.assignment_service import AssignmentEngine
from warehouse_assignment.services.exclusion_registry import ExclusionRegistry
from warehouse_assignment.services.sync_adapter import RemoteSyncAdapter


def make_user(
    user_id: str,
    warehouse_id: Optional[int] = None,
    name: Optional[str] = None,
    email: Optional[str] = None,
) -> User:
    return User(
        id=user_id,
        name=name or f"Cobrador {user_id}",
        email=email or f"{user_id}@example.com",
        phone="555-0100",
        assigned_warehouse_id=warehouse_id,
    )


def make_warehouses(*warehouse_ids: int) -> List[Warehouse]:
    return [
        Warehouse(id=wid, name=f"Camioneta {wid}", stock_total=wid * 10)
        for wid in warehouse_ids
    ]


class StoreUnavailable(ConnectionError):
    """Raised by the in-memory stores when a write is set to fail."""


class FakeWarehouseCatalog(IWarehouseCatalog):
    """Catalog with a fixed list; ``next_refresh`` replaces it on refresh."""

    def __init__(self, warehouses=None):
        self._warehouses = list(warehouses or [])
        self.next_refresh: Optional[List[Warehouse]] = None
        self.refresh_error: Optional[Exception] = None
        self.fetch_calls = 0

    @property
    def warehouses(self) -> List[Warehouse]:
        return list(self._warehouses)

    def fetch(self) -> List[Warehouse]:
        self.fetch_calls += 1
        return self.warehouses

    def refresh(self) -> List[Warehouse]:
        if self.refresh_error is not None:
            raise self.refresh_error
        if self.next_refresh is not None:
            self._warehouses = list(self.next_refresh)
        return self.warehouses

    def get(self, warehouse_id: int) -> Optional[Warehouse]:
        for warehouse in self._warehouses:
            if warehouse.id == warehouse_id:
                return warehouse
        return None


class InMemoryUserDirectory(IUserDirectory):
    """User directory that publishes a snapshot after every write."""

    def __init__(self, users=(), journal: Optional[list] = None):
        self._users: Dict[str, User] = {user.id: user for user in users}
        self._listeners: list = []
        self.journal = journal if journal is not None else []
        self.fail_for: Set[str] = set()
        self.fail_all = False

    @property
    def writes(self) -> list:
        return [(entry[1], entry[2]) for entry in self.journal if entry[0] == "user"]

    def list_all(self) -> List[User]:
        return list(self._users.values())

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def set_assigned_warehouse(self, user_id: str, warehouse_id: Optional[int]) -> None:
        self.journal.append(("user", user_id, warehouse_id))
        if self.fail_all or user_id in self.fail_for:
            raise StoreUnavailable(f"write rejected for {user_id}")
        if user_id not in self._users:
            raise ValueError(f"User not found: {user_id}")
        self._users[user_id] = self._users[user_id].with_assignment(warehouse_id)
        self.publish()

    def put(self, user: User) -> None:
        """Change a record from outside the engine (another operator)."""
        self._users[user.id] = user
        self.publish()

    def subscribe(self, listener):
        self._listeners.append(listener)
        listener(self.list_all())

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self) -> None:
        for listener in list(self._listeners):
            listener(self.list_all())


class InMemoryExclusionStore(IExclusionConfigStore):
    def __init__(self, excluded_ids=None, journal: Optional[list] = None):
        self.document = None if excluded_ids is None else frozenset(excluded_ids)
        self.journal = journal if journal is not None else []
        self.fail_all = False

    @property
    def writes(self) -> list:
        return [entry[1] for entry in self.journal if entry[0] == "exclusions"]

    def read(self):
        return self.document

    def write(self, excluded_ids: AbstractSet[int]) -> None:
        self.journal.append(("exclusions", frozenset(excluded_ids)))
        if self.fail_all:
            raise StoreUnavailable("exclusion document write rejected")
        self.document = frozenset(excluded_ids)


class ManualSyncAdapter:
    """Sync adapter whose futures stay pending until the test settles them."""

    def __init__(self):
        self.user_writes: List[tuple] = []
        self.exclusion_writes: List[tuple] = []

    def set_user_warehouse(self, user_id: str, warehouse_id: Optional[int]) -> Future:
        future: Future = Future()
        self.user_writes.append((user_id, warehouse_id, future))
        return future

    def set_exclusion_set(self, excluded_ids: AbstractSet[int]) -> Future:
        future: Future = Future()
        self.exclusion_writes.append((frozenset(excluded_ids), future))
        return future

    def shutdown(self, wait: bool = True) -> None:
        pass


@dataclass
class EngineHarness:
    engine: AssignmentEngine
    catalog: FakeWarehouseCatalog
    directory: InMemoryUserDirectory
    store: InMemoryExclusionStore
    sync: object
    journal: list = field(default_factory=list)

    def location(self, user_id: str) -> Optional[int]:
        return self.engine.projection.locate(user_id)[1]

    def warehouse_user_ids(self, warehouse_id: int) -> List[str]:
        users = self.engine.projection.by_warehouse.get(warehouse_id, [])
        return [user.id for user in users]

    def available_ids(self) -> List[str]:
        return [user.id for user in self.engine.projection.available]


def build_engine_harness(
    users=(),
    warehouse_ids=(10, 20, 30),
    excluded=(),
    clear_stale: bool = False,
    capacity: Optional[int] = None,
    manual_sync: bool = False,
) -> EngineHarness:
    journal: list = []
    catalog = FakeWarehouseCatalog(make_warehouses(*warehouse_ids))
    directory = InMemoryUserDirectory(users, journal=journal)
    store = InMemoryExclusionStore(excluded, journal=journal)
    if manual_sync:
        sync = ManualSyncAdapter()
    else:
        sync = RemoteSyncAdapter(directory, store, inline=True)
    registry = ExclusionRegistry(store, sync, default_ids=())
    engine = AssignmentEngine(
        catalog,
        registry,
        sync,
        capacity=capacity,
        reset_phrase="RESTABLECER",
        clear_stale=clear_stale,
    )
    engine.start(directory)
    return EngineHarness(engine, catalog, directory, store, sync, journal)


class SyncAdapterFactory:
    """Factory for the store mocks the sync adapter writes to."""

    @staticmethod
    def create_mock_directory_writer() -> Mock:
        """Create mock that only implements IUserDirectoryWriter operations."""
        mock_writer = Mock(spec=IUserDirectoryWriter)
        mock_writer.set_assigned_warehouse.return_value = None
        return mock_writer

    @staticmethod
    def create_mock_config_store() -> Mock:
        mock_store = Mock(spec=IExclusionConfigStore)
        mock_store.read.return_value = None
        mock_store.write.return_value = None
        return mock_store
