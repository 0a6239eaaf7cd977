"""SQLite storage layer for americano.

Provides the widget ORM model and repository used by the service layer.
Config, state and roster are stored as JSON documents on the widget row.
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import NullPool

from americano.errors import ConcurrentModificationError
from americano.models import (
    Participant,
    Widget,
    WidgetConfig,
    WidgetState,
    WidgetStatus,
    WidgetType,
)

logger = logging.getLogger(__name__)

Base = declarative_base()

DEFAULT_DB_PATH = ".americano/americano.sqlite"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# ORM Models
# ============================================================================


class WidgetORM(Base):
    """Widget table.

    One row per tournament widget. class_start_time is kept as an ISO
    string so timezone offsets survive the round trip through SQLite.
    version is bumped on every UPDATE; a flush against a stale version
    matches no row and raises StaleDataError.
    """

    __tablename__ = "widgets"

    id = Column(String(36), primary_key=True)  # uuid4
    type = Column(String(40), nullable=False)
    status = Column(String(20), nullable=False, default=WidgetStatus.SETUP.value)
    class_start_time = Column(String(40), nullable=True)
    config_json = Column(Text, nullable=False, default="{}")
    state_json = Column(Text, nullable=True)  # NULL until the tournament starts
    participants_json = Column(Text, nullable=False, default="[]")
    deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def config(self) -> dict:
        """Get widget config from JSON."""
        return json.loads(self.config_json)

    @config.setter
    def config(self, value: dict):
        """Set widget config as JSON."""
        self.config_json = json.dumps(value)

    @property
    def state(self) -> Optional[dict]:
        """Get widget state from JSON."""
        return json.loads(self.state_json) if self.state_json else None

    @state.setter
    def state(self, value: Optional[dict]):
        """Set widget state as JSON."""
        self.state_json = json.dumps(value) if value is not None else None

    @property
    def participants(self) -> list[dict]:
        """Get participants from JSON."""
        return json.loads(self.participants_json)

    @participants.setter
    def participants(self, value: list[dict]):
        """Set participants as JSON."""
        self.participants_json = json.dumps(value)

    def update_from(self, widget: Widget) -> None:
        """Copy a domain widget onto this row."""
        self.type = widget.widget_config.type.value
        self.status = widget.status.value
        self.class_start_time = (
            widget.class_start_time.isoformat() if widget.class_start_time else None
        )
        self.config = widget.widget_config.to_dict()
        self.state = widget.widget_state.to_dict() if widget.widget_state else None
        self.participants = [p.to_dict() for p in widget.participants]

    def to_widget(self) -> Widget:
        """Convert this row to a domain widget."""
        state = self.state
        return Widget(
            id=self.id,
            widget_config=WidgetConfig.from_dict(self.config),
            status=WidgetStatus(self.status),
            widget_state=WidgetState.from_dict(state) if state else None,
            participants=[Participant.from_dict(p) for p in self.participants],
            class_start_time=(
                datetime.fromisoformat(self.class_start_time) if self.class_start_time else None
            ),
        )


# ============================================================================
# Database Manager
# ============================================================================


class DatabaseManager:
    """Manages SQLite database connection and session."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize database manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # NullPool: every session gets its own SQLite connection
        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=False,
            poolclass=NullPool,
            connect_args={"check_same_thread": False},
        )
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_tables(self):
        """Create all tables in the database."""
        Base.metadata.create_all(self.engine)

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Transactional scope: commit on success, rollback on any error.

        Examples:
            >>> with db.session_scope() as session:
            ...     WidgetRepository(session).get_all()
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            logger.debug("Rolling back session after error")
            session.rollback()
            raise
        finally:
            session.close()


# ============================================================================
# Repository
# ============================================================================


class WidgetRepository:
    """Repository for Widget operations.

    Does not commit: the surrounding session_scope owns the transaction.
    """

    def __init__(self, session: Session):
        self.session = session

    def create(self, widget: Widget) -> WidgetORM:
        """Insert a new widget row.

        Args:
            widget: Domain widget (its id becomes the primary key)

        Returns:
            Created WidgetORM instance
        """
        widget_orm = WidgetORM(id=widget.id, deleted=False)
        widget_orm.update_from(widget)
        self.session.add(widget_orm)
        self.session.flush()
        return widget_orm

    def get_by_id(self, widget_id: str, for_update: bool = False) -> Optional[WidgetORM]:
        """Get a non-deleted widget by ID.

        Args:
            widget_id: Widget UUID
            for_update: Lock the row where the backend supports it. SQLite
                ignores the lock; stale writes are caught by the version column.

        Returns:
            WidgetORM if found, None otherwise
        """
        query = self.session.query(WidgetORM).filter(
            WidgetORM.id == widget_id, WidgetORM.deleted.is_(False)
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_all(self, status: Optional[WidgetStatus] = None) -> list[WidgetORM]:
        """Get all non-deleted widgets, newest first.

        Args:
            status: Only widgets in this status (optional)

        Returns:
            List of WidgetORM instances
        """
        query = self.session.query(WidgetORM).filter(WidgetORM.deleted.is_(False))
        if status is not None:
            query = query.filter(WidgetORM.status == status.value)
        return query.order_by(WidgetORM.created_at.desc()).all()

    def get_by_type(self, widget_type: WidgetType) -> list[WidgetORM]:
        """Get all non-deleted widgets of one type."""
        return (
            self.session.query(WidgetORM)
            .filter(WidgetORM.type == widget_type.value, WidgetORM.deleted.is_(False))
            .order_by(WidgetORM.created_at.desc())
            .all()
        )

    def save(self, widget: Widget) -> WidgetORM:
        """Write a domain widget back to its row.

        Args:
            widget: Domain widget previously loaded from this repository

        Returns:
            Updated WidgetORM instance, or a new row if none existed
        """
        widget_orm = self.get_by_id(widget.id)
        if widget_orm is None:
            return self.create(widget)
        widget_orm.update_from(widget)
        self._flush(widget.id)
        return widget_orm

    def delete(self, widget_id: str) -> bool:
        """Soft-delete a widget.

        Args:
            widget_id: Widget UUID

        Returns:
            True if deleted, False if not found
        """
        widget_orm = self.get_by_id(widget_id)
        if widget_orm is None:
            return False
        widget_orm.deleted = True
        self._flush(widget_id)
        return True

    def _flush(self, widget_id: str) -> None:
        try:
            self.session.flush()
        except StaleDataError:
            logger.debug("Stale version for widget %s", widget_id)
            raise ConcurrentModificationError(
                f"Widget {widget_id} was modified by another operation, try again",
                field="widget_id",
            )
