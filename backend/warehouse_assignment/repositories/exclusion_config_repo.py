from typing import AbstractSet, Callable, FrozenSet, Optional

from sqlalchemy.exc import SQLAlchemyError

from warehouse_assignment.db.base import EXCLUDED_WAREHOUSES_KEY, ConfigDocument
from warehouse_assignment.db.session import SessionLocal
from warehouse_assignment.domain.interfaces import IExclusionConfigStore


class ExclusionConfigRepository(IExclusionConfigStore):
    """Stores the excluded warehouse ids as ``{"excludedIds": [...]}``.

    Writes replace the whole document; there is no merge and no version
    check, so the last writer wins.
    """

    def __init__(
        self, session_factory: Callable = SessionLocal, key: str = EXCLUDED_WAREHOUSES_KEY
    ) -> None:
        self.session_factory = session_factory
        self.key = key

    def read(self) -> Optional[FrozenSet[int]]:
        db = self.session_factory()
        try:
            doc = db.query(ConfigDocument).filter_by(key=self.key).first()
            if not doc:
                return None
            return frozenset(int(i) for i in doc.data.get("excludedIds", []))
        finally:
            db.close()

    def write(self, excluded_ids: AbstractSet[int]) -> None:
        payload = {"excludedIds": sorted(int(i) for i in excluded_ids)}
        db = self.session_factory()
        try:
            doc = db.query(ConfigDocument).filter_by(key=self.key).first()
            if doc:
                doc.data = payload
            else:
                db.add(ConfigDocument(key=self.key, data=payload))
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()
