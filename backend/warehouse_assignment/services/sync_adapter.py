"""
Remote sync adapter - the engine's only side-effect boundary.

Every write returns a ``concurrent.futures.Future``. The engine never waits
on it; it attaches a callback instead. Failures are logged here and carried
by the future, never raised into engine callers.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import AbstractSet, Optional

from warehouse_assignment.core.config import get_sync_max_workers, get_sync_writes_inline
from warehouse_assignment.domain.interfaces import (
    IExclusionConfigStore,
    IUserDirectoryWriter,
)

logger = logging.getLogger(__name__)


class RemoteSyncAdapter:
    """Translates engine mutations into store writes.

    In background mode writes run on a small worker pool so the projection
    stays responsive while the store is slow. Inline mode (tests, TESTING
    env) runs each write on the calling thread and returns a finished future.
    """

    def __init__(
        self,
        directory: IUserDirectoryWriter,
        config_store: IExclusionConfigStore,
        inline: Optional[bool] = None,
        max_workers: Optional[int] = None,
    ):
        self.directory = directory
        self.config_store = config_store
        self.inline = get_sync_writes_inline() if inline is None else inline
        self._executor: Optional[ThreadPoolExecutor] = None
        if not self.inline:
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers or get_sync_max_workers(),
                thread_name_prefix="assignment-sync",
            )

    def set_user_warehouse(self, user_id: str, warehouse_id: Optional[int]) -> Future:
        return self._submit(
            "set_user_warehouse",
            {"user_id": user_id, "warehouse_id": warehouse_id},
            self.directory.set_assigned_warehouse,
            user_id,
            warehouse_id,
        )

    def set_exclusion_set(self, excluded_ids: AbstractSet[int]) -> Future:
        ids = frozenset(excluded_ids)
        return self._submit(
            "set_exclusion_set",
            {"excluded_ids": sorted(ids)},
            self.config_store.write,
            ids,
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting writes; with ``wait`` drain the outstanding ones."""
        if self._executor is not None:
            self._executor.shutdown(wait=wait)

    def _submit(self, operation: str, context: dict, fn, *args) -> Future:
        if self._executor is None:
            future: Future = Future()
            try:
                future.set_result(self._run(operation, context, fn, *args))
            except Exception as e:
                future.set_exception(e)
            return future
        return self._executor.submit(self._run, operation, context, fn, *args)

    def _run(self, operation: str, context: dict, fn, *args):
        try:
            result = fn(*args)
        except Exception as e:
            logger.error(
                f"Remote write failed: {operation}",
                extra={"context": {**context, "operation": operation, "error": str(e)}},
                exc_info=True,
            )
            raise
        logger.info(
            f"Remote write completed: {operation}",
            extra={"context": {**context, "operation": operation}},
        )
        return result
