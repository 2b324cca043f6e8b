from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Integer, String, func
from sqlalchemy.ext.mutable import MutableDict
from sqlalchemy.orm import Mapped, mapped_column

from .session import Base

# Key of the configuration document holding the excluded warehouse ids
EXCLUDED_WAREHOUSES_KEY = "almacenes_excluidos"


class DirectoryUser(Base):
    """A field operator record in the user directory."""

    __tablename__ = "cobradores"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    # Persisted assignment; null means available
    camioneta_asignada: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self):
        return f"<DirectoryUser(id={self.id!r}, camioneta={self.camioneta_asignada})>"


class ConfigDocument(Base):
    """A single keyed JSON document, e.g. ``{"excludedIds": [1]}``."""

    __tablename__ = "configuracion"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(
        MutableDict.as_mutable(JSON), nullable=False, default=dict
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self):
        return f"<ConfigDocument(key={self.key!r})>"
