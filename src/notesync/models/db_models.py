"""SQLAlchemy models for the remote relational store.

Mirrors the hosted schema: notes reference categories by foreign key,
attachments belong to notes, and every row carries the owning ``user_id``.
"""
import datetime
from typing import Optional

from sqlalchemy import (JSON, Boolean, Column, DateTime, ForeignKey, Index,
                        Integer, String, Text, create_engine, event)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from notesync.config import config
from notesync.models.schema import generate_id, utc_now

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBCategory(Base):
    """Database model for a category."""
    __tablename__ = "categories"
    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False, index=True)
    color = Column(String(32), nullable=False)
    parent_id = Column(
        String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    user_id = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    # Relationships
    notes = relationship("DBNote", back_populates="category", passive_deletes=True)

    def __repr__(self) -> str:
        """Return string representation of category."""
        return f"<Category(id='{self.id}', name='{self.name}')>"


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    id = Column(String(36), primary_key=True, default=generate_id)
    title = Column(String(500), nullable=False)
    content = Column(Text, nullable=False, default="")
    tags = Column(JSON, nullable=False, default=list)
    category_id = Column(
        String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    is_favorite = Column(Boolean, nullable=False, default=False)
    is_archived = Column(Boolean, nullable=False, default=False)
    is_protected = Column(Boolean, nullable=False, default=False)
    password_hash = Column(String(255), nullable=True)
    user_id = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    # Relationships
    category = relationship("DBCategory", back_populates="notes")
    attachments = relationship(
        "DBAttachment",
        back_populates="note",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="DBAttachment.created_at",
    )

    __table_args__ = (Index("ix_notes_user_updated", "user_id", "updated_at"),)

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id='{self.id}', title='{self.title}')>"


class DBAttachment(Base):
    """Database model for attachment metadata."""
    __tablename__ = "attachments"
    id = Column(String(36), primary_key=True, default=generate_id)
    note_id = Column(
        String(36),
        ForeignKey("notes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    type = Column(String(255), nullable=False)
    size = Column(Integer, nullable=False)
    url = Column(Text, nullable=False)
    user_id = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    # Relationships
    note = relationship("DBNote", back_populates="attachments")

    def __repr__(self) -> str:
        """Return string representation of attachment."""
        return f"<Attachment(id='{self.id}', note='{self.note_id}')>"


def init_db(database_url: Optional[str] = None) -> Engine:
    """Create the store engine and make sure the schema exists.

    SQLite (local runs and tests) gets foreign keys switched on so the
    ON DELETE rules behave like the hosted store; in-memory databases share
    a single connection. Other backends get a bounded QueuePool with
    pre-ping, so a dropped connection surfaces as a store error instead of
    hanging.
    """
    url = make_url(database_url or config.get_db_url())

    if url.get_backend_name() == "sqlite":
        in_memory = url.database in (None, "", ":memory:")
        engine_kwargs = {"connect_args": {"check_same_thread": False}}
        if in_memory:
            engine_kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **engine_kwargs)

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if not in_memory:
                # WAL mode: writes go to a separate journal
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()
    else:
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_timeout=config.pool_timeout,
            pool_recycle=1800,
            pool_pre_ping=True,
        )

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine):
    """Get a session factory for the store.

    Objects stay readable after commit because repositories convert rows to
    domain models after the transaction ends.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)
