# Services package initialization
# This file makes the services directory a Python package
# and allows importing service modules

from . import assignment_service
from . import catalog_service
from . import exclusion_registry
from . import sync_adapter

__all__ = [
    "assignment_service",
    "catalog_service",
    "exclusion_registry",
    "sync_adapter",
]
