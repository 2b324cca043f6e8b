"""
Domain package - Pure business logic layer.

This package contains:
- entities.py: Warehouses, users and the assignment projection
- operations.py: Operation values and confirmation requirements
- projection.py: Rebuilding the projection from its inputs
- interfaces.py: Store and service contracts
"""

from .entities import (
    AssignmentProjection,
    User,
    Warehouse,
    WarehouseView,
    WriteState,
    WriteStatus,
)
from .interfaces import (
    IExclusionConfigStore,
    IUserDirectory,
    IUserDirectoryReader,
    IUserDirectoryWriter,
    IWarehouseCatalog,
)
from .operations import (
    AssignOperation,
    ConfirmationRequirement,
    MoveOperation,
    OperationResult,
    ResetAllOperation,
    ToggleExclusionOperation,
    UnassignOperation,
)

__all__ = [
    # Domain entities
    "AssignmentProjection",
    "User",
    "Warehouse",
    "WarehouseView",
    "WriteState",
    "WriteStatus",
    # Operations
    "AssignOperation",
    "ConfirmationRequirement",
    "MoveOperation",
    "OperationResult",
    "ResetAllOperation",
    "ToggleExclusionOperation",
    "UnassignOperation",
    # Interfaces
    "IExclusionConfigStore",
    "IUserDirectory",
    "IUserDirectoryReader",
    "IUserDirectoryWriter",
    "IWarehouseCatalog",
]
