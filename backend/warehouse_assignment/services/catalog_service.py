"""
Inventory catalog client and cache following SOLID principles.

This service:
- Handles external API communication (Single Responsibility)
- Implements IWarehouseCatalog interface (Dependency Inversion)
- Keeps the last successful catalog so a failed refresh changes nothing
"""

import logging
import threading
from typing import List, Optional

import requests

from warehouse_assignment.core.config import get_catalog_api_url, get_catalog_timeout
from warehouse_assignment.core.exceptions import CatalogFetchError
from warehouse_assignment.domain.entities import Warehouse
from warehouse_assignment.domain.interfaces import IWarehouseCatalog

logger = logging.getLogger(__name__)


class WarehouseCatalogService(IWarehouseCatalog):
    """Fetches ``GET {base_url}/almacenes`` and caches the result."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[int] = None):
        self.base_url = (base_url or get_catalog_api_url()).rstrip("/")
        self.timeout = timeout if timeout is not None else get_catalog_timeout()
        self._cache: Optional[List[Warehouse]] = None
        # Held for the whole request, so a second caller waits for the
        # in-flight fetch and then reads its result from the cache.
        self._lock = threading.Lock()

    @property
    def warehouses(self) -> List[Warehouse]:
        return list(self._cache or [])

    @property
    def loaded(self) -> bool:
        return self._cache is not None

    def fetch(self) -> List[Warehouse]:
        with self._lock:
            if self._cache is None:
                self._cache = self._request()
            return list(self._cache)

    def refresh(self) -> List[Warehouse]:
        with self._lock:
            self._cache = self._request()
            return list(self._cache)

    def invalidate(self) -> None:
        with self._lock:
            self._cache = None

    def get(self, warehouse_id: int) -> Optional[Warehouse]:
        for warehouse in self._cache or []:
            if warehouse.id == warehouse_id:
                return warehouse
        return None

    def _request(self) -> List[Warehouse]:
        url = f"{self.base_url}/almacenes"
        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            logger.error(
                "Failed to fetch warehouse catalog",
                extra={"context": {"url": url, "error": str(e)}},
                exc_info=True,
            )
            status = getattr(getattr(e, "response", None), "status_code", None)
            raise CatalogFetchError(
                f"Error al cargar almacenes: {str(e)}", status_code=status
            )
        except ValueError as e:
            logger.error(
                "Warehouse catalog returned invalid JSON",
                extra={"context": {"url": url, "error": str(e)}},
            )
            raise CatalogFetchError("Error al cargar almacenes: respuesta inválida")

        if not isinstance(data, dict):
            raise CatalogFetchError("Error al cargar almacenes: respuesta inválida")
        if data.get("error"):
            logger.error(
                "Warehouse catalog reported an error",
                extra={"context": {"url": url, "error": data["error"]}},
            )
            raise CatalogFetchError(str(data["error"]))

        warehouses = self._parse_rows(data.get("body") or [])
        logger.info(
            f"Warehouse catalog fetched: {len(warehouses)} warehouses",
            extra={"context": {"url": url, "count": len(warehouses)}},
        )
        return warehouses

    def _parse_rows(self, rows: list) -> List[Warehouse]:
        warehouses = []
        seen = set()
        for row in rows:
            try:
                warehouse = Warehouse(
                    id=int(row["ALMACEN_ID"]),
                    name=str(row.get("ALMACEN") or ""),
                    stock_total=int(row.get("EXISTENCIAS") or 0),
                )
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(
                    "Skipping malformed catalog row",
                    extra={"context": {"row": row, "error": str(e)}},
                )
                continue
            if warehouse.id in seen:
                logger.warning(
                    "Skipping duplicate catalog row",
                    extra={"context": {"warehouse_id": warehouse.id}},
                )
                continue
            seen.add(warehouse.id)
            warehouses.append(warehouse)
        return warehouses
