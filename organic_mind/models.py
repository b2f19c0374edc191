from typing import List, Optional
from datetime import datetime
from .utils import now_utc, new_id
from sqlalchemy import Column, DateTime
from sqlmodel import SQLModel, Field, Relationship


class User(SQLModel, table=True):
    """Account row. A user may hold a password, an external (Google) identity,
    or both; see auth.account_state."""
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(max_length=100)
    email: str = Field(max_length=255, index=True, sa_column_kwargs={"unique": True})
    password_hash: Optional[str] = Field(default=None, max_length=255)
    # External identity id; unique when present (SQLite allows many NULLs).
    google_id: Optional[str] = Field(default=None, max_length=255, index=True, sa_column_kwargs={"unique": True})
    profile_picture_url: Optional[str] = Field(default=None, max_length=255)
    created_at: datetime | None = Field(default_factory=now_utc)
    last_login_at: Optional[datetime] = None
    is_email_verified: bool = Field(default=False)
    has_password: bool = Field(default=False)
    has_google_login: bool = Field(default=False)


class TaskList(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(max_length=100)
    color: str = Field(default="#6366f1", max_length=7)
    user_id: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
    # Default lists are either global templates (user_id NULL, template_id
    # equal to id) or per-user clones pointing at their template.
    is_default: bool = Field(default=False, index=True)
    template_id: Optional[str] = Field(default=None, index=True)

    tasks: List["TaskItem"] = Relationship(back_populates="list")


class Tag(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(max_length=50)
    user_id: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
    is_default: bool = Field(default=False, index=True)
    template_id: Optional[str] = Field(default=None, index=True)


class TaskItem(SQLModel, table=True):
    __tablename__ = "task"

    id: str = Field(default_factory=new_id, primary_key=True)
    title: str = Field(max_length=500)
    description: Optional[str] = None
    completed: bool = Field(default=False, index=True)
    created_at: datetime | None = Field(default_factory=now_utc)
    # Naive wall-clock due time in config.DEFAULT_TIMEZONE. due_has_time
    # records whether the caller supplied a time of day; date-only values sit
    # at midnight and must render back as a plain date. The column type is
    # spelled out so the value is stored without any tz coercion.
    due_date: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=False), index=True, nullable=True),
    )
    due_has_time: bool = Field(default=False)
    list_id: Optional[str] = Field(default=None, foreign_key="tasklist.id", index=True)
    user_id: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
    # UI hint only (which view created the task); not authoritative.
    section: Optional[str] = None
    subtasks: Optional[int] = None

    list: Optional[TaskList] = Relationship(back_populates="tasks")


class Note(SQLModel, table=True):
    """Sticky-wall note. Shares the ownership rules of tasks but is not
    part of date bucketing."""
    id: str = Field(default_factory=new_id, primary_key=True)
    title: str = ""
    content: str = ""
    color: str = Field(default="#FFD433", max_length=7)
    created_at: datetime | None = Field(default_factory=now_utc, index=True)
    updated_at: Optional[datetime] = None
    user_id: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
