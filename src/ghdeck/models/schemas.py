"""SQLModel schemas for persisted dashboard state."""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from ghdeck.models.rows import utcnow


class DoneNotification(SQLModel, table=True):
    """A notification thread the user marked as done.

    GitHub cannot list done threads, so they are remembered locally and
    hidden on fetch until the thread is updated again.
    """

    __tablename__ = "done_notification"

    id: str = Field(primary_key=True)  # notification thread id
    updated_at: Optional[datetime] = None  # thread updated_at when marked done
    done_at: datetime = Field(default_factory=utcnow)


class Bookmark(SQLModel, table=True):
    """A bookmarked notification thread."""

    id: str = Field(primary_key=True)
    created_at: datetime = Field(default_factory=utcnow)
