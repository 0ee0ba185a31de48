"""SQLAlchemy ORM models for StudyFocus."""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Date, Float, Text
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class Snapshot(Base):
    """Latest JSON snapshot per key (``session``, ``settings``)."""

    __tablename__ = "snapshots"

    key = Column(String(32), primary_key=True)
    payload = Column(Text, nullable=False)
    seq = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Snapshot key={self.key} seq={self.seq}>"


class Lease(Base):
    """Leadership claim: which view may write the session snapshot."""

    __tablename__ = "leases"

    name = Column(String(32), primary_key=True)
    holder = Column(String(64), nullable=False)
    expires_at = Column(Float, nullable=False)  # epoch seconds

    def __repr__(self) -> str:
        return f"<Lease name={self.name} holder={self.holder} expires={self.expires_at}>"


class PendingCommand(Base):
    """A command issued by a follower view, waiting for the leader."""

    __tablename__ = "pending_commands"

    id = Column(Integer, primary_key=True, autoincrement=True)
    issuer = Column(String(64), nullable=False)
    name = Column(String(32), nullable=False)
    arguments = Column(Text, nullable=False, default="[]")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    consumed = Column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return (
            f"<PendingCommand id={self.id} name={self.name} "
            f"issuer={self.issuer} consumed={self.consumed}>"
        )


class FocusStats(Base):
    """Single-row table with the aggregated focus statistics."""

    __tablename__ = "focus_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    total_focus_seconds = Column(Integer, nullable=False, default=0)
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    sessions_completed_count = Column(Integer, nullable=False, default=0)
    last_completion_date = Column(Date, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<FocusStats sessions={self.sessions_completed_count} "
            f"streak={self.current_streak}>"
        )


class Completion(Base):
    """One recorded work completion, unique per countdown tick."""

    __tablename__ = "completions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    completion_key = Column(String(64), nullable=False, unique=True)
    mode = Column(String(20), nullable=False, default="work")
    duration_seconds = Column(Integer, nullable=False, default=0)
    completed_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    linked_task_id = Column(String(255), nullable=True)
    linked_document_id = Column(String(255), nullable=True)
    note = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Completion key={self.completion_key} mode={self.mode}>"


class DailyStats(Base):
    """Aggregated per-day totals for quick chart lookups."""

    __tablename__ = "daily_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, unique=True)
    sessions_completed = Column(Integer, nullable=False, default=0)
    focus_seconds = Column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<DailyStats date={self.date} sessions={self.sessions_completed} "
            f"focus={self.focus_seconds}s>"
        )
