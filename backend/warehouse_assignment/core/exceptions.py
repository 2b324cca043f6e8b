"""
Custom exceptions for the application.
Following SOLID principles - centralized error handling.

Every rule the assignment engine enforces raises a subclass of
AssignmentError before any state changes, so callers can report the
message to the operator as-is.
"""

from typing import Optional


class AssignmentError(Exception):
    """Base exception for rejected assignment operations."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CapacityExceededError(AssignmentError):
    """Raised when the destination warehouse already holds its maximum."""

    def __init__(self, warehouse_id: int, capacity: int):
        super().__init__(
            f"Este almacén ya tiene el máximo de {capacity} usuarios asignados"
        )
        self.warehouse_id = warehouse_id
        self.capacity = capacity


class WarehouseUnavailableError(AssignmentError):
    """Raised when the target warehouse is unknown or excluded."""

    def __init__(self, warehouse_id: int, reason: str):
        if reason == "excluded":
            message = f"El almacén {warehouse_id} está excluido de la asignación"
        else:
            message = f"El almacén {warehouse_id} no existe en el catálogo"
        super().__init__(message)
        self.warehouse_id = warehouse_id
        self.reason = reason


class UserNotFoundError(AssignmentError):
    def __init__(self, user_id: str):
        super().__init__(f"Usuario no encontrado: {user_id}")
        self.user_id = user_id


class NotAssignedError(AssignmentError):
    def __init__(self, user_id: str):
        super().__init__(f"El usuario {user_id} no tiene camioneta asignada")
        self.user_id = user_id


class NoWarehouseSelectedError(AssignmentError):
    def __init__(self):
        super().__init__("Por favor selecciona un almacén primero")


class ConfirmationRequiredError(AssignmentError):
    """
    Raised when an operation needs operator consent that was not given.

    Carries the ConfirmationRequirement so the caller can present it and
    retry with ``confirmed=True``.
    """

    def __init__(self, requirement):
        super().__init__(requirement.message)
        self.requirement = requirement


class InvalidConfirmationError(AssignmentError):
    """Raised when the typed confirmation phrase does not match."""

    def __init__(self, expected: str):
        super().__init__(f"Debes escribir '{expected}' para confirmar")
        self.expected = expected


class CatalogFetchError(Exception):
    """
    Exception raised when the inventory catalog service cannot be read.
    The previous catalog stays in place when this is raised.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
