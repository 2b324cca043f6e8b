"""
Assignment controller for handling HTTP requests following SOLID principles.

This controller:
- Handles HTTP concerns only (Single Responsibility)
- Turns drag completions, clicks and toggles into engine operations
- Maps engine exceptions to the standard API envelope
"""

import logging
from functools import wraps
from typing import Optional

from flask import Blueprint, current_app, request

from warehouse_assignment.core.api_utils import api_response
from warehouse_assignment.core.exceptions import (
    AssignmentError,
    CatalogFetchError,
    ConfirmationRequiredError,
    UserNotFoundError,
)
from warehouse_assignment.domain.entities import user_with_status
from warehouse_assignment.domain.operations import MoveOperation
from warehouse_assignment.services.assignment_service import AssignmentEngine

logger = logging.getLogger(__name__)

assignment_bp = Blueprint("assignment", __name__, url_prefix="/asignacion")

AVAILABLE_DROPPABLE_ID = "usuarios-disponibles"
WAREHOUSE_DROPPABLE_PREFIX = "almacen-"
DRAGGABLE_PREFIXES = ("disponible-", "asignado-")


class InvalidPayloadError(ValueError):
    """Raised for request bodies the endpoints cannot interpret."""


def get_engine() -> AssignmentEngine:
    return current_app.extensions["assignment_engine"]


def handle_assignment_errors(f):
    """Translate engine exceptions into ``api_response`` envelopes."""

    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except InvalidPayloadError as e:
            return api_response(False, str(e), None, 400)
        except ConfirmationRequiredError as e:
            return api_response(
                False,
                e.message,
                {"confirmation": e.requirement.to_dict()},
                409,
            )
        except UserNotFoundError as e:
            return api_response(False, e.message, {"user_id": e.user_id}, 404)
        except AssignmentError as e:
            logger.info(
                "Assignment operation rejected",
                extra={
                    "context": {
                        "endpoint": request.path,
                        "error_type": type(e).__name__,
                        "error": e.message,
                    }
                },
            )
            return api_response(False, e.message, None, 422)
        except CatalogFetchError as e:
            return api_response(False, e.message, None, 502)

    return wrapper


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidPayloadError("Formato inválido")
    return data


def _require_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidPayloadError(f"Campo requerido: {key}")
    return value.strip()


def _parse_int(value, key: str) -> int:
    if isinstance(value, bool):
        raise InvalidPayloadError(f"Valor inválido para {key}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidPayloadError(f"Valor inválido para {key}")


def _confirmed(data: dict) -> bool:
    return data.get("confirmed") is True


def parse_droppable_id(droppable_id) -> Optional[int]:
    """``usuarios-disponibles`` -> None, ``almacen-<id>`` -> id."""
    if droppable_id == AVAILABLE_DROPPABLE_ID:
        return None
    if isinstance(droppable_id, str) and droppable_id.startswith(
        WAREHOUSE_DROPPABLE_PREFIX
    ):
        return _parse_int(droppable_id[len(WAREHOUSE_DROPPABLE_PREFIX):], "droppableId")
    raise InvalidPayloadError(f"Contenedor desconocido: {droppable_id}")


def parse_draggable_id(draggable_id) -> str:
    """``disponible-<uid>`` / ``asignado-<uid>`` -> uid."""
    if isinstance(draggable_id, str):
        for prefix in DRAGGABLE_PREFIXES:
            if draggable_id.startswith(prefix) and len(draggable_id) > len(prefix):
                return draggable_id[len(prefix):]
    raise InvalidPayloadError(f"Elemento desconocido: {draggable_id}")


def serialize_state(engine: AssignmentEngine, search: Optional[str] = None) -> dict:
    statuses = engine.write_statuses
    exclusion_status = engine.exclusion_write_status
    return {
        "warehouses": [
            view.to_dict(statuses) for view in engine.warehouses_with_assigned_users()
        ],
        "available": [
            user_with_status(user, statuses.get(user.id))
            for user in engine.available_users(search)
        ],
        "selected_warehouse_id": engine.selected_warehouse_id,
        "excluded_ids": sorted(engine.registry.ids),
        "exclusion_write_status": (
            exclusion_status.to_dict() if exclusion_status else None
        ),
        "capacity": engine.capacity,
        "catalog_loaded": bool(engine.catalog.warehouses),
    }


def _operation_response(engine: AssignmentEngine, result):
    return api_response(
        True,
        result.message,
        {"result": result.to_dict(), "state": serialize_state(engine)},
    )


@assignment_bp.route("/", methods=["GET"])
def get_state():
    """Both view collections plus selection, exclusions and write statuses."""
    engine = get_engine()
    search = request.args.get("search")
    return api_response(True, "OK", serialize_state(engine, search))


@assignment_bp.route("/drag", methods=["POST"])
@handle_assignment_errors
def drag():
    """Apply a drag completion ``{draggableId, source, destination}``.

    A missing destination means the item was dropped outside any list.
    """
    engine = get_engine()
    data = _json_body()
    destination = data.get("destination")
    if not destination:
        return api_response(True, "Sin cambios", {"state": serialize_state(engine)})
    if not isinstance(destination, dict) or not isinstance(data.get("source"), dict):
        raise InvalidPayloadError("Formato inválido")

    operation = MoveOperation(
        user_id=parse_draggable_id(data.get("draggableId")),
        from_warehouse_id=parse_droppable_id(data["source"].get("droppableId")),
        to_warehouse_id=parse_droppable_id(destination.get("droppableId")),
    )
    result = engine.apply(operation, confirmed=_confirmed(data))
    return _operation_response(engine, result)


@assignment_bp.route("/assign", methods=["POST"])
@handle_assignment_errors
def assign():
    engine = get_engine()
    data = _json_body()
    result = engine.assign(
        _require_str(data, "user_id"),
        _parse_int(data.get("warehouse_id"), "warehouse_id"),
        confirmed=_confirmed(data),
    )
    return _operation_response(engine, result)


@assignment_bp.route("/unassign", methods=["POST"])
@handle_assignment_errors
def unassign():
    engine = get_engine()
    data = _json_body()
    result = engine.unassign(_require_str(data, "user_id"))
    return _operation_response(engine, result)


@assignment_bp.route("/select", methods=["POST"])
@handle_assignment_errors
def select_warehouse():
    """Select the target of quick assign; ``null`` clears the selection."""
    engine = get_engine()
    data = _json_body()
    warehouse_id = data.get("warehouse_id")
    if warehouse_id is not None:
        warehouse_id = _parse_int(warehouse_id, "warehouse_id")
    engine.select_warehouse(warehouse_id)
    return api_response(
        True, "Almacén seleccionado", {"state": serialize_state(engine)}
    )


@assignment_bp.route("/quick-assign", methods=["POST"])
@handle_assignment_errors
def quick_assign():
    engine = get_engine()
    data = _json_body()
    result = engine.quick_assign(
        _require_str(data, "user_id"), confirmed=_confirmed(data)
    )
    return _operation_response(engine, result)


@assignment_bp.route("/exclusions/<int:warehouse_id>/toggle", methods=["POST"])
@handle_assignment_errors
def toggle_exclusion(warehouse_id: int):
    engine = get_engine()
    data = _json_body()
    result = engine.toggle_exclusion(warehouse_id, confirmed=_confirmed(data))
    return _operation_response(engine, result)


@assignment_bp.route("/reset", methods=["POST"])
@handle_assignment_errors
def reset_all():
    engine = get_engine()
    data = _json_body()
    text = data.get("confirmation_text")
    if text is not None and not isinstance(text, str):
        raise InvalidPayloadError("Valor inválido para confirmation_text")
    result = engine.reset_all(text)
    return _operation_response(engine, result)


@assignment_bp.route("/refresh", methods=["POST"])
@handle_assignment_errors
def refresh_catalog():
    engine = get_engine()
    warehouses = engine.refresh_catalog()
    return api_response(
        True,
        f"{len(warehouses)} almacenes cargados",
        {"state": serialize_state(engine)},
    )


@assignment_bp.route("/retry", methods=["POST"])
@handle_assignment_errors
def retry_failed():
    engine = get_engine()
    result = engine.retry_failed()
    return _operation_response(engine, result)
