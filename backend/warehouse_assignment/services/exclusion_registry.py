import logging
from concurrent.futures import Future
from typing import AbstractSet, FrozenSet, Iterable, Optional

from warehouse_assignment.core.config import get_default_excluded_ids
from warehouse_assignment.domain.interfaces import IExclusionConfigStore
from warehouse_assignment.services.sync_adapter import RemoteSyncAdapter

logger = logging.getLogger(__name__)


class ExclusionRegistry:
    """Set of warehouse ids that are not assignable.

    Read once from the configuration document at startup and overwritten
    in full through the sync adapter on every change.
    """

    def __init__(
        self,
        store: IExclusionConfigStore,
        sync: RemoteSyncAdapter,
        default_ids: Optional[Iterable[int]] = None,
    ):
        self.store = store
        self.sync = sync
        self.default_ids = frozenset(
            get_default_excluded_ids() if default_ids is None else default_ids
        )
        self._ids: FrozenSet[int] = frozenset()

    @property
    def ids(self) -> FrozenSet[int]:
        return self._ids

    def contains(self, warehouse_id: int) -> bool:
        return warehouse_id in self._ids

    def load(self) -> FrozenSet[int]:
        """Read the stored set, seeding the default on first run."""
        stored = self.store.read()
        if stored is None:
            logger.info(
                "No exclusion document found, seeding defaults",
                extra={"context": {"excluded_ids": sorted(self.default_ids)}},
            )
            self._ids = self.default_ids
            self.sync.set_exclusion_set(self._ids)
        else:
            self._ids = frozenset(stored)
        logger.info(
            "Exclusion registry loaded",
            extra={"context": {"excluded_ids": sorted(self._ids)}},
        )
        return self._ids

    def replace(self, new_ids: AbstractSet[int]) -> Future:
        """Overwrite the whole set locally and remotely (last writer wins)."""
        self._ids = frozenset(new_ids)
        return self.sync.set_exclusion_set(self._ids)

    def restore(self, previous_ids: AbstractSet[int]) -> None:
        """Put a previous set back locally after its write failed."""
        self._ids = frozenset(previous_ids)
