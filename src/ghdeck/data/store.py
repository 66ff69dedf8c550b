"""SQLite-backed state: notifications marked done and bookmarks."""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from ghdeck.config import get_state_dir
from ghdeck.models import Bookmark, DoneNotification, utcnow

logger = logging.getLogger(__name__)


def get_database_url(path: Optional[Path] = None) -> str:
    db_path = path or get_state_dir() / "state.db"
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{db_path}"


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class StateStore:
    """Done notifications and bookmarks, shared by the fetcher and mutations.

    Args:
        url: SQLAlchemy database URL. ``sqlite://`` gives an in-memory store.
    """

    def __init__(self, url: Optional[str] = None):
        self.url = url or get_database_url()
        kwargs: dict = {}
        if self.url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
        if self.url == "sqlite://":
            # One shared connection, or each worker thread sees an empty database
            kwargs["poolclass"] = StaticPool
        self.engine = create_engine(self.url, echo=False, **kwargs)
        SQLModel.metadata.create_all(self.engine)

    def session(self) -> Session:
        return Session(self.engine)

    # Done notifications

    def mark_done(self, thread_id: str, updated_at: Optional[datetime] = None) -> None:
        with self.session() as session:
            entry = session.get(DoneNotification, thread_id)
            if entry is None:
                entry = DoneNotification(id=thread_id)
            entry.updated_at = updated_at
            entry.done_at = utcnow()
            session.add(entry)
            session.commit()
        logger.debug("marked notification %s done", thread_id)

    def is_done(self, thread_id: str, updated_at: Optional[datetime] = None) -> bool:
        """Whether a thread is done. A thread updated after it was marked done is live again."""
        with self.session() as session:
            entry = session.get(DoneNotification, thread_id)
        if entry is None:
            return False
        marked_at = _aware(entry.updated_at)
        if updated_at is None or marked_at is None:
            return True
        return _aware(updated_at) <= marked_at

    def clear_done(self) -> int:
        with self.session() as session:
            entries = session.exec(select(DoneNotification)).all()
            for entry in entries:
                session.delete(entry)
            session.commit()
            return len(entries)

    # Bookmarks

    def toggle_bookmark(self, thread_id: str) -> bool:
        """Flip the bookmark on a thread. Returns the new state."""
        with self.session() as session:
            entry = session.get(Bookmark, thread_id)
            if entry is None:
                session.add(Bookmark(id=thread_id))
                bookmarked = True
            else:
                session.delete(entry)
                bookmarked = False
            session.commit()
        return bookmarked

    def is_bookmarked(self, thread_id: str) -> bool:
        with self.session() as session:
            return session.get(Bookmark, thread_id) is not None

    def bookmarked_ids(self) -> list[str]:
        with self.session() as session:
            return list(session.exec(select(Bookmark.id).order_by(Bookmark.created_at)).all())

    def clear_bookmarks(self) -> int:
        with self.session() as session:
            entries = session.exec(select(Bookmark)).all()
            for entry in entries:
                session.delete(entry)
            session.commit()
            return len(entries)
