"""
Abstract interfaces for the stores and services the engine talks to.

These interfaces define contracts without implementation details,
enabling dependency injection and easier testing.
"""

from abc import ABC, abstractmethod
from typing import AbstractSet, Callable, List, Optional

from .entities import User, Warehouse

SnapshotListener = Callable[[List[User]], None]


class IWarehouseCatalog(ABC):
    """Interface for the read-only inventory catalog."""

    @abstractmethod
    def fetch(self) -> List[Warehouse]:
        """Return the cached catalog, fetching it on first use."""
        pass

    @abstractmethod
    def refresh(self) -> List[Warehouse]:
        """Fetch the catalog again, replacing the cache on success."""
        pass

    @abstractmethod
    def get(self, warehouse_id: int) -> Optional[Warehouse]:
        pass

    @property
    @abstractmethod
    def warehouses(self) -> List[Warehouse]:
        """Last fetched catalog (empty before the first successful fetch)."""
        pass


class IUserDirectoryReader(ABC):
    """Interface for user directory reads and the live subscription."""

    @abstractmethod
    def list_all(self) -> List[User]:
        pass

    @abstractmethod
    def get_by_id(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Deliver the current snapshot now and again after every change.

        Returns a callable that cancels the subscription.
        """
        pass


class IUserDirectoryWriter(ABC):
    """Interface for the single-field assignment write."""

    @abstractmethod
    def set_assigned_warehouse(
        self, user_id: str, warehouse_id: Optional[int]
    ) -> None:
        pass


class IUserDirectory(IUserDirectoryReader, IUserDirectoryWriter):
    """Complete user directory interface combining read/write operations."""

    pass


class IExclusionConfigStore(ABC):
    """Interface for the configuration document holding excluded ids."""

    @abstractmethod
    def read(self) -> Optional[AbstractSet[int]]:
        """Return the stored set, or None when the document does not exist."""
        pass

    @abstractmethod
    def write(self, excluded_ids: AbstractSet[int]) -> None:
        """Overwrite the whole document."""
        pass
