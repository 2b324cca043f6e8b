import logging
import threading
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from warehouse_assignment.db.base import DirectoryUser
from warehouse_assignment.db.session import SessionLocal
from warehouse_assignment.domain.entities import User
from warehouse_assignment.domain.interfaces import IUserDirectory, SnapshotListener

logger = logging.getLogger(__name__)


class UserDirectoryRepository(IUserDirectory):
    """Repository for the user directory following SOLID principles.

    This implementation:
    - Implements IUserDirectory interface (Dependency Inversion)
    - Maps between domain entities and database models
    - Opens one session per call, so writes can run on sync worker threads
    - Pushes a fresh snapshot to every subscriber after each committed write
    """

    def __init__(self, session_factory: Callable = SessionLocal) -> None:
        self.session_factory = session_factory
        self._listeners: List[SnapshotListener] = []
        self._listeners_lock = threading.Lock()

    def list_all(self) -> List[User]:
        db = self.session_factory()
        try:
            rows = (
                db.query(DirectoryUser)
                .order_by(DirectoryUser.name.asc(), DirectoryUser.id.asc())
                .all()
            )
            return [self._to_domain(row) for row in rows]
        finally:
            db.close()

    def get_by_id(self, user_id: str) -> Optional[User]:
        db = self.session_factory()
        try:
            row = db.query(DirectoryUser).filter_by(id=user_id).first()
            return self._to_domain(row) if row else None
        finally:
            db.close()

    def add(self, user: User) -> User:
        """Insert a directory record (used by seeding and tests)."""
        db = self.session_factory()
        try:
            row = DirectoryUser(
                id=user.id,
                name=user.name,
                email=user.email,
                phone=user.phone,
                camioneta_asignada=user.assigned_warehouse_id,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            created = self._to_domain(row)
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()
        self.publish()
        return created

    def set_assigned_warehouse(
        self, user_id: str, warehouse_id: Optional[int]
    ) -> None:
        db = self.session_factory()
        try:
            row = db.query(DirectoryUser).filter_by(id=user_id).first()
            if not row:
                raise ValueError(f"User not found: {user_id}")
            setattr(row, "camioneta_asignada", warehouse_id)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()
        logger.debug(
            "Directory assignment written",
            extra={"context": {"user_id": user_id, "warehouse_id": warehouse_id}},
        )
        self.publish()

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        with self._listeners_lock:
            self._listeners.append(listener)
        listener(self.list_all())

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self) -> None:
        """Send the current snapshot to every subscriber."""
        with self._listeners_lock:
            listeners = list(self._listeners)
        if not listeners:
            return
        snapshot = self.list_all()
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                # A broken subscriber must not fail the write that triggered it
                logger.error(
                    "Snapshot listener failed",
                    extra={"context": {"listener": repr(listener)}},
                    exc_info=True,
                )

    def _to_domain(self, row: DirectoryUser) -> User:
        return User(
            id=row.id,
            name=getattr(row, "name", "") or "",
            email=getattr(row, "email", None),
            phone=getattr(row, "phone", None),
            assigned_warehouse_id=getattr(row, "camioneta_asignada", None),
        )
