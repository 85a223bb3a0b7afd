"""SQLAlchemy models for Boardgame Bash."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(120), nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    participations = relationship("Participation", back_populates="user")


class Game(Base):
    __tablename__ = "games"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    complexity_rating = Column(Float, nullable=False)
    bgg_url = Column(String(512), nullable=True)
    video_url = Column(String(512), nullable=True)
    image_url = Column(String(512), nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    event_links = relationship(
        "EventGame", back_populates="game", cascade="all, delete-orphan"
    )


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    last_modified = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    game_links = relationship(
        "EventGame",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventGame.position",
    )
    participations = relationship(
        "Participation", back_populates="event", cascade="all, delete-orphan"
    )

    @property
    def games(self) -> list[Game]:
        """Games attached to the event, in the order they were added."""
        return [link.game for link in self.game_links]

    @property
    def game_ids(self) -> list[str]:
        return [link.game_id for link in self.game_links]

    @property
    def attending_count(self) -> int:
        return sum(1 for p in self.participations if p.attending)


class EventGame(Base):
    __tablename__ = "event_games"

    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), primary_key=True
    )
    game_id = Column(
        String(36), ForeignKey("games.id", ondelete="CASCADE"), primary_key=True
    )
    position = Column(Integer, nullable=False, default=0)

    event = relationship("Event", back_populates="game_links")
    game = relationship("Game", back_populates="event_links")


class Participation(Base):
    """One participant's attendance and game preferences for one event.

    Exactly one of ``user_id`` and ``attendee_name`` is set. ``rankings`` is
    ``None`` until the participant saves a ranking for the first time.
    """

    __tablename__ = "participations"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_participation_event_user"),
        UniqueConstraint(
            "event_id", "attendee_name", name="uq_participation_event_guest"
        ),
        CheckConstraint(
            "(user_id IS NULL) != (attendee_name IS NULL)",
            name="ck_participation_single_identity",
        ),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    attendee_name = Column(String(120), nullable=True)
    attending = Column(Boolean, default=True, nullable=False)
    rankings = Column(JSON(none_as_null=True), nullable=True)
    excluded = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=_now, nullable=False)
    last_modified = Column(DateTime, default=_now, nullable=False)

    event = relationship("Event", back_populates="participations")
    user = relationship("User", back_populates="participations")
