"""
Assignment engine - places field operators in warehouses (camionetas).

The engine owns the assignment projection and is the only component that
mutates it. Every operation is checked in full before anything changes,
applied to the projection synchronously, and then written through the
sync adapter without waiting for the result. Write outcomes come back
through future callbacks: a failed write marks the user as failed and, when
nothing has touched that user since, restores the previous value.

Consent is separated from execution: callers ask
``would_require_confirmation(operation)`` first and pass the operator's
answer to ``apply``.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from functools import partial
from typing import AbstractSet, Dict, List, Optional

from warehouse_assignment.core.config import (
    WAREHOUSE_CAPACITY,
    get_clear_stale_assignments,
    get_reset_confirmation_phrase,
)
from warehouse_assignment.core.exceptions import (
    CapacityExceededError,
    CatalogFetchError,
    ConfirmationRequiredError,
    InvalidConfirmationError,
    NotAssignedError,
    NoWarehouseSelectedError,
    UserNotFoundError,
    WarehouseUnavailableError,
)
from warehouse_assignment.domain.entities import (
    AssignmentProjection,
    User,
    Warehouse,
    WarehouseView,
    WriteState,
    WriteStatus,
)
from warehouse_assignment.domain.interfaces import (
    IUserDirectoryReader,
    IWarehouseCatalog,
)
from warehouse_assignment.domain.operations import (
    CONFIRM_EVACUATE,
    CONFIRM_EXCLUDE,
    CONFIRM_INCLUDE,
    CONFIRM_REASSIGN,
    CONFIRM_RESET,
    AssignOperation,
    ConfirmationRequirement,
    MoveOperation,
    OperationResult,
    ResetAllOperation,
    ToggleExclusionOperation,
    UnassignOperation,
)
from warehouse_assignment.domain.projection import ProjectionBuild, build_projection
from warehouse_assignment.services.exclusion_registry import ExclusionRegistry
from warehouse_assignment.services.sync_adapter import RemoteSyncAdapter

logger = logging.getLogger(__name__)


@dataclass
class _UserWrite:
    future: object
    user_id: str
    written: Optional[int]
    previous: Optional[int]
    revision: int


@dataclass
class _RegistryWrite:
    future: object
    previous: frozenset
    written: frozenset
    revision: int


class AssignmentEngine:
    """Owns the assignment projection and every operation that changes it."""

    def __init__(
        self,
        catalog: IWarehouseCatalog,
        registry: ExclusionRegistry,
        sync: RemoteSyncAdapter,
        capacity: Optional[int] = None,
        reset_phrase: Optional[str] = None,
        clear_stale: Optional[bool] = None,
    ):
        self.catalog = catalog
        self.registry = registry
        self.sync = sync
        self.capacity = capacity if capacity is not None else WAREHOUSE_CAPACITY
        self.reset_phrase = reset_phrase or get_reset_confirmation_phrase()
        self.clear_stale = (
            get_clear_stale_assignments() if clear_stale is None else clear_stale
        )

        # Re-entrant: write callbacks and snapshots may arrive while an
        # operation on the same thread still holds the lock.
        self._lock = threading.RLock()
        self._users: Dict[str, User] = {}
        self._projection = AssignmentProjection()
        self._statuses: Dict[str, WriteStatus] = {}
        self._revisions: Dict[str, int] = {}
        self._registry_status: Optional[WriteStatus] = None
        self._registry_revision = 0
        self._selected_warehouse_id: Optional[int] = None

        self._applying = False
        self._deferred_snapshot: Optional[List[User]] = None
        self._pending_users: List[_UserWrite] = []
        self._pending_registry: List[_RegistryWrite] = []
        self._unsubscribe = None

    # ------------------------------------------------------------------
    # Lifecycle and reconciliation
    # ------------------------------------------------------------------

    def start(self, directory: IUserDirectoryReader) -> None:
        """Load the exclusion set and catalog, then follow the directory."""
        self.registry.load()
        try:
            self.catalog.fetch()
        except CatalogFetchError as e:
            logger.warning(
                "Starting without a warehouse catalog",
                extra={"context": {"error": e.message}},
            )
        self._unsubscribe = directory.subscribe(self.on_directory_snapshot)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_directory_snapshot(self, users: List[User]) -> None:
        """Live snapshot from the user directory; remote values win."""
        with self._lock:
            if self._applying:
                self._deferred_snapshot = list(users)
                return
            self._users = {user.id: user for user in users}
            self._reconcile("directory_snapshot")

    def refresh_catalog(self) -> List[Warehouse]:
        """Refetch the catalog and rebuild. A failed fetch changes nothing."""
        warehouses = self.catalog.refresh()
        with self._lock:
            selected = self._selected_warehouse_id
            if selected is not None and (
                self.catalog.get(selected) is None or self.registry.contains(selected)
            ):
                self._selected_warehouse_id = None
            self._reconcile("catalog_refresh")
        return warehouses

    def reconcile(self) -> None:
        with self._lock:
            self._reconcile("manual")

    def _rebuild(self) -> ProjectionBuild:
        build = build_projection(
            self._users.values(),
            self.catalog.warehouses,
            self.registry.ids,
            self.capacity,
            previous=self._projection,
        )
        self._projection = build.projection
        return build

    def _reconcile(self, reason: str) -> None:
        build = self._rebuild()

        if build.overflow:
            logger.warning(
                "Stored assignments exceed warehouse capacity, extra users placed in available",
                extra={"context": {"reason": reason, "user_ids": build.overflow}},
            )
        if not build.stale:
            return
        if not self.catalog.warehouses:
            logger.info(
                "Catalog not loaded, assigned users shown as available",
                extra={"context": {"reason": reason, "count": len(build.stale)}},
            )
            return

        logger.warning(
            "Stale warehouse references placed in available",
            extra={"context": {"reason": reason, "stale": build.stale}},
        )
        if self.clear_stale:
            to_clear = [
                user_id
                for user_id in build.stale
                if not self._failed_and_rolled_back(user_id)
            ]
            if to_clear:
                with self._operation():
                    for user_id in to_clear:
                        self._write_user(user_id, None)
                    self._rebuild()

    def _failed_and_rolled_back(self, user_id: str) -> bool:
        status = self._statuses.get(user_id)
        return bool(status and status.state == WriteState.FAILED and status.rolled_back)

    @contextmanager
    def _operation(self):
        """Group local mutations; hold snapshots and write callbacks until
        the whole group is applied."""
        with self._lock:
            outer = self._applying
            self._applying = True
            try:
                yield
            finally:
                if not outer:
                    self._applying = False
                    self._flush()

    def _flush(self) -> None:
        snapshot, self._deferred_snapshot = self._deferred_snapshot, None
        if snapshot is not None:
            self._users = {user.id: user for user in snapshot}
            self._reconcile("directory_snapshot")

        user_writes, self._pending_users = self._pending_users, []
        registry_writes, self._pending_registry = self._pending_registry, []
        for write in user_writes:
            write.future.add_done_callback(partial(self._on_user_write_done, write))
        for write in registry_writes:
            write.future.add_done_callback(
                partial(self._on_registry_write_done, write)
            )

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def projection(self) -> AssignmentProjection:
        with self._lock:
            return AssignmentProjection(
                by_warehouse={
                    wid: list(users)
                    for wid, users in self._projection.by_warehouse.items()
                },
                available=list(self._projection.available),
            )

    def warehouses_with_assigned_users(
        self, include_excluded: bool = True
    ) -> List[WarehouseView]:
        with self._lock:
            views = []
            for warehouse in self.catalog.warehouses:
                excluded = self.registry.contains(warehouse.id)
                if excluded and not include_excluded:
                    continue
                views.append(
                    WarehouseView(
                        warehouse=warehouse,
                        capacity=self.capacity,
                        excluded=excluded,
                        users=list(self._projection.by_warehouse.get(warehouse.id, [])),
                    )
                )
            return views

    def available_users(self, search: Optional[str] = None) -> List[User]:
        with self._lock:
            users = list(self._projection.available)
        if search and search.strip():
            users = [user for user in users if user.matches(search.strip())]
        return users

    def write_status(self, user_id: str) -> Optional[WriteStatus]:
        with self._lock:
            return self._statuses.get(user_id)

    @property
    def write_statuses(self) -> Dict[str, WriteStatus]:
        with self._lock:
            return dict(self._statuses)

    @property
    def exclusion_write_status(self) -> Optional[WriteStatus]:
        return self._registry_status

    @property
    def selected_warehouse_id(self) -> Optional[int]:
        return self._selected_warehouse_id

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def assign(
        self, user_id: str, warehouse_id: int, confirmed: bool = False
    ) -> OperationResult:
        return self.apply(AssignOperation(user_id, warehouse_id), confirmed=confirmed)

    def unassign(self, user_id: str) -> OperationResult:
        return self.apply(UnassignOperation(user_id))

    def move(
        self,
        user_id: str,
        from_warehouse_id: Optional[int],
        to_warehouse_id: Optional[int],
        confirmed: bool = False,
    ) -> OperationResult:
        return self.apply(
            MoveOperation(user_id, from_warehouse_id, to_warehouse_id),
            confirmed=confirmed,
        )

    def toggle_exclusion(
        self, warehouse_id: int, confirmed: bool = False
    ) -> OperationResult:
        return self.apply(ToggleExclusionOperation(warehouse_id), confirmed=confirmed)

    def reset_all(self, confirmation_text: Optional[str]) -> OperationResult:
        return self.apply(ResetAllOperation(), confirmation_text=confirmation_text)

    def select_warehouse(self, warehouse_id: Optional[int]) -> None:
        with self._lock:
            if warehouse_id is not None:
                self._check_assignable(warehouse_id)
            self._selected_warehouse_id = warehouse_id

    def quick_assign(self, user_id: str, confirmed: bool = False) -> OperationResult:
        """Assign a user to the currently selected warehouse."""
        with self._lock:
            if self._selected_warehouse_id is None:
                raise NoWarehouseSelectedError()
            return self.assign(user_id, self._selected_warehouse_id, confirmed)

    def would_require_confirmation(
        self, operation
    ) -> Optional[ConfirmationRequirement]:
        """Validate ``operation`` and describe the consent it needs.

        Raises an AssignmentError subclass when the operation would be
        rejected outright; returns None when it can run without asking.
        """
        with self._lock:
            if isinstance(operation, AssignOperation):
                return self._assign_requirement(
                    operation.user_id, operation.warehouse_id, source=None
                )
            if isinstance(operation, UnassignOperation):
                user = self._require_user(operation.user_id)
                if user.assigned_warehouse_id is None:
                    raise NotAssignedError(user.id)
                return None
            if isinstance(operation, MoveOperation):
                user = self._require_user(operation.user_id)
                if operation.from_warehouse_id == operation.to_warehouse_id:
                    return None
                if operation.to_warehouse_id is None:
                    return self._release_requirement(
                        user, source=operation.from_warehouse_id
                    )
                return self._assign_requirement(
                    user.id,
                    operation.to_warehouse_id,
                    source=operation.from_warehouse_id,
                )
            if isinstance(operation, ToggleExclusionOperation):
                return self._exclusion_requirement(operation.warehouse_id)
            if isinstance(operation, ResetAllOperation):
                affected = tuple(
                    user.id
                    for user in self._users.values()
                    if user.assigned_warehouse_id is not None
                )
                return ConfirmationRequirement(
                    kind=CONFIRM_RESET,
                    message=(
                        f"Se quitará la camioneta a {len(affected)} usuario(s). "
                        f"Esta acción no se puede deshacer. "
                        f"Para confirmar escriba: {self.reset_phrase}"
                    ),
                    affected_user_ids=affected,
                    phrase=self.reset_phrase,
                )
            raise TypeError(f"Unsupported operation: {operation!r}")

    def apply(
        self,
        operation,
        confirmed: bool = False,
        confirmation_text: Optional[str] = None,
    ) -> OperationResult:
        """Run ``operation`` once consent has been obtained.

        Never prompts. Raises ConfirmationRequiredError when consent is
        missing and InvalidConfirmationError for a wrong typed phrase.
        """
        with self._lock:
            requirement = self.would_require_confirmation(operation)
            self._check_consent(requirement, confirmed, confirmation_text)
            with self._operation():
                if isinstance(operation, AssignOperation):
                    result = self._do_assign(operation.user_id, operation.warehouse_id)
                elif isinstance(operation, UnassignOperation):
                    result = self._do_unassign(operation.user_id)
                elif isinstance(operation, MoveOperation):
                    result = self._do_move(operation)
                elif isinstance(operation, ToggleExclusionOperation):
                    result = self._do_toggle_exclusion(operation.warehouse_id)
                else:
                    result = self._do_reset_all()
            logger.info(
                result.message,
                extra={
                    "context": {
                        "operation": type(operation).__name__,
                        "affected_user_ids": result.affected_user_ids,
                        "writes": len(result.writes),
                        "changed": result.changed,
                    }
                },
            )
            return result

    def retry_failed(self) -> OperationResult:
        """Reissue every failed write whose local value was kept."""
        with self._lock:
            with self._operation():
                writes = []
                user_ids = []
                for user_id, status in list(self._statuses.items()):
                    if status.state != WriteState.FAILED or status.rolled_back:
                        continue
                    user = self._users.get(user_id)
                    if user is None:
                        continue
                    writes.append(self._write_user(user_id, user.assigned_warehouse_id))
                    user_ids.append(user_id)
                status = self._registry_status
                if (
                    status is not None
                    and status.state == WriteState.FAILED
                    and not status.rolled_back
                ):
                    writes.append(self._replace_registry(self.registry.ids))
            return OperationResult(
                message=f"{len(writes)} escritura(s) reenviada(s)",
                affected_user_ids=user_ids,
                writes=writes,
                changed=bool(writes),
            )

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _require_user(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def _check_assignable(self, warehouse_id: int) -> Warehouse:
        warehouse = self.catalog.get(warehouse_id)
        if warehouse is None:
            raise WarehouseUnavailableError(warehouse_id, "unknown")
        if self.registry.contains(warehouse_id):
            raise WarehouseUnavailableError(warehouse_id, "excluded")
        return warehouse

    def _effective_assignment(self, user: User) -> Optional[int]:
        """Stored warehouse when it is known and not excluded."""
        warehouse_id = user.assigned_warehouse_id
        if warehouse_id is None:
            return None
        if self.catalog.get(warehouse_id) is None or self.registry.contains(
            warehouse_id
        ):
            return None
        return warehouse_id

    def _assign_requirement(
        self, user_id: str, warehouse_id: int, source: Optional[int]
    ) -> Optional[ConfirmationRequirement]:
        user = self._require_user(user_id)
        _, location = self._projection.locate(user.id)
        if location == warehouse_id:
            return None
        self._check_assignable(warehouse_id)
        if self._projection.count(warehouse_id) >= self.capacity:
            raise CapacityExceededError(warehouse_id, self.capacity)

        recorded = self._effective_assignment(user)
        if recorded is not None and recorded != warehouse_id and recorded != source:
            current = self.catalog.get(recorded)
            return ConfirmationRequirement(
                kind=CONFIRM_REASSIGN,
                message=(
                    f"Este usuario ya está asignado a otra camioneta "
                    f"({current.name if current else recorded}). ¿Desea reasignarlo?"
                ),
                affected_user_ids=(user.id,),
            )
        return None

    def _release_requirement(
        self, user: User, source: Optional[int]
    ) -> Optional[ConfirmationRequirement]:
        """Dragging to available from a list the user is not shown in."""
        _, location = self._projection.locate(user.id)
        if location is None or location == source:
            return None
        current = self.catalog.get(location)
        return ConfirmationRequirement(
            kind=CONFIRM_REASSIGN,
            message=(
                f"El usuario {user.name} está asignado a "
                f"{current.name if current else location}. "
                f"¿Desea moverlo a disponibles?"
            ),
            affected_user_ids=(user.id,),
        )

    def _exclusion_requirement(self, warehouse_id: int) -> ConfirmationRequirement:
        warehouse = self.catalog.get(warehouse_id)
        name = warehouse.name if warehouse else str(warehouse_id)
        if self.registry.contains(warehouse_id):
            return ConfirmationRequirement(
                kind=CONFIRM_INCLUDE,
                message=f"¿Volver a incluir el almacén {name} en la asignación?",
            )
        if warehouse is None:
            raise WarehouseUnavailableError(warehouse_id, "unknown")
        users = self._projection.by_warehouse.get(warehouse_id, [])
        if users:
            return ConfirmationRequirement(
                kind=CONFIRM_EVACUATE,
                message=(
                    f"El almacén {name} tiene {len(users)} usuario(s) asignado(s). "
                    f"Se moverán a disponibles y el almacén quedará excluido. ¿Continuar?"
                ),
                affected_user_ids=tuple(user.id for user in users),
            )
        return ConfirmationRequirement(
            kind=CONFIRM_EXCLUDE,
            message=f"¿Excluir el almacén {name} de la asignación?",
        )

    def _check_consent(
        self,
        requirement: Optional[ConfirmationRequirement],
        confirmed: bool,
        confirmation_text: Optional[str],
    ) -> None:
        if requirement is None:
            return
        if requirement.phrase:
            if not confirmation_text:
                raise ConfirmationRequiredError(requirement)
            if confirmation_text.upper() != requirement.phrase.upper():
                raise InvalidConfirmationError(requirement.phrase)
            return
        if not confirmed:
            raise ConfirmationRequiredError(requirement)

    # ------------------------------------------------------------------
    # Mutations (called with the lock held, inside _operation)
    # ------------------------------------------------------------------

    def _write_user(self, user_id: str, warehouse_id: Optional[int]):
        user = self._users[user_id]
        previous = user.assigned_warehouse_id
        self._users[user_id] = user.with_assignment(warehouse_id)
        revision = self._revisions.get(user_id, 0) + 1
        self._revisions[user_id] = revision
        self._statuses[user_id] = WriteStatus(WriteState.PENDING)
        future = self.sync.set_user_warehouse(user_id, warehouse_id)
        self._pending_users.append(
            _UserWrite(future, user_id, warehouse_id, previous, revision)
        )
        return future

    def _replace_registry(self, new_ids: AbstractSet[int]):
        previous = self.registry.ids
        future = self.registry.replace(new_ids)
        self._registry_revision += 1
        self._registry_status = WriteStatus(WriteState.PENDING)
        self._pending_registry.append(
            _RegistryWrite(
                future, previous, frozenset(new_ids), self._registry_revision
            )
        )
        return future

    def _do_assign(self, user_id: str, warehouse_id: int) -> OperationResult:
        user = self._users[user_id]
        _, location = self._projection.locate(user_id)
        warehouse = self.catalog.get(warehouse_id)
        if location == warehouse_id:
            return OperationResult(
                message=f"El usuario {user.name} ya está en {warehouse.name}",
                changed=False,
            )
        future = self._write_user(user_id, warehouse_id)
        self._rebuild()
        return OperationResult(
            message=f"Usuario {user.name} asignado a {warehouse.name}",
            affected_user_ids=[user_id],
            writes=[future],
        )

    def _do_unassign(self, user_id: str) -> OperationResult:
        user = self._users[user_id]
        future = self._write_user(user_id, None)
        self._rebuild()
        return OperationResult(
            message=f"Usuario {user.name} movido a disponibles",
            affected_user_ids=[user_id],
            writes=[future],
        )

    def _do_move(self, operation: MoveOperation) -> OperationResult:
        user = self._users[operation.user_id]
        if operation.from_warehouse_id == operation.to_warehouse_id:
            return OperationResult(message="Sin cambios", changed=False)
        if operation.to_warehouse_id is None:
            _, location = self._projection.locate(user.id)
            if location is None:
                return OperationResult(
                    message=f"El usuario {user.name} ya está disponible",
                    changed=False,
                )
            return self._do_unassign(user.id)
        return self._do_assign(user.id, operation.to_warehouse_id)

    def _do_toggle_exclusion(self, warehouse_id: int) -> OperationResult:
        warehouse = self.catalog.get(warehouse_id)
        name = warehouse.name if warehouse else str(warehouse_id)
        if self.registry.contains(warehouse_id):
            future = self._replace_registry(self.registry.ids - {warehouse_id})
            self._rebuild()
            return OperationResult(
                message=f"Almacén {name} incluido en la asignación",
                writes=[future],
            )

        # Evacuate first; the registry write goes out only after every
        # user write has been issued.
        evacuated = [user.id for user in self._projection.by_warehouse.get(warehouse_id, [])]
        writes = [self._write_user(user_id, None) for user_id in evacuated]
        writes.append(self._replace_registry(self.registry.ids | {warehouse_id}))
        if self._selected_warehouse_id == warehouse_id:
            self._selected_warehouse_id = None
        self._rebuild()
        return OperationResult(
            message=f"Almacén {name} excluido; {len(evacuated)} usuario(s) movido(s) a disponibles",
            affected_user_ids=evacuated,
            writes=writes,
        )

    def _do_reset_all(self) -> OperationResult:
        affected = [
            user.id
            for user in self._users.values()
            if user.assigned_warehouse_id is not None
        ]
        writes = [self._write_user(user_id, None) for user_id in affected]
        self._rebuild()
        return OperationResult(
            message="Todas las asignaciones han sido restablecidas",
            affected_user_ids=affected,
            writes=writes,
            changed=bool(affected),
        )

    # ------------------------------------------------------------------
    # Write outcomes
    # ------------------------------------------------------------------

    def _on_user_write_done(self, write: _UserWrite, future) -> None:
        with self._lock:
            if self._revisions.get(write.user_id) != write.revision:
                # A newer local mutation owns this user's status now
                return
            error = None if future.cancelled() else future.exception()
            if not future.cancelled() and error is None:
                self._statuses[write.user_id] = WriteStatus(WriteState.SYNCED)
                return
            rolled_back = self._rollback_user(write)
            self._statuses[write.user_id] = WriteStatus(
                WriteState.FAILED,
                error=str(error) if error else "cancelled",
                rolled_back=rolled_back,
            )
            logger.error(
                "Assignment write failed",
                extra={
                    "context": {
                        "user_id": write.user_id,
                        "warehouse_id": write.written,
                        "previous_warehouse_id": write.previous,
                        "rolled_back": rolled_back,
                        "error": str(error),
                    }
                },
            )

    def _rollback_user(self, write: _UserWrite) -> bool:
        user = self._users.get(write.user_id)
        if user is None or user.assigned_warehouse_id != write.written:
            # A snapshot already replaced the optimistic value
            return False
        previous = write.previous
        if (
            previous is not None
            and self._effective_assignment(user.with_assignment(previous)) is not None
            and self._projection.count(previous) >= self.capacity
        ):
            logger.warning(
                "Cannot restore previous assignment, warehouse is full",
                extra={"context": {"user_id": user.id, "warehouse_id": previous}},
            )
            return False
        self._users[user.id] = user.with_assignment(previous)
        self._rebuild()
        return True

    def _on_registry_write_done(self, write: _RegistryWrite, future) -> None:
        with self._lock:
            if write.revision != self._registry_revision:
                return
            error = None if future.cancelled() else future.exception()
            if not future.cancelled() and error is None:
                self._registry_status = WriteStatus(WriteState.SYNCED)
                return
            rolled_back = False
            if write.previous != write.written and self.registry.ids == write.written:
                reexcluded = write.previous - write.written
                occupied = [
                    wid for wid in reexcluded if self._projection.count(wid) > 0
                ]
                if not occupied:
                    self.registry.restore(write.previous)
                    if self._selected_warehouse_id in reexcluded:
                        self._selected_warehouse_id = None
                    self._rebuild()
                    rolled_back = True
            self._registry_status = WriteStatus(
                WriteState.FAILED,
                error=str(error) if error else "cancelled",
                rolled_back=rolled_back,
            )
            logger.error(
                "Exclusion registry write failed",
                extra={
                    "context": {
                        "written": sorted(write.written),
                        "previous": sorted(write.previous),
                        "rolled_back": rolled_back,
                        "error": str(error),
                    }
                },
            )
