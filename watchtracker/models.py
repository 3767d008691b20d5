import enum
import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    String, Text, DateTime, Integer, ForeignKey, Boolean, Table, Column, Uuid, Index, UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class ListType(str, enum.Enum):
    WATCH_QUEUE = "WATCH_QUEUE"
    CURRENTLY_WATCHING = "CURRENTLY_WATCHING"
    ALREADY_WATCHED = "ALREADY_WATCHED"


class TitleType(str, enum.Enum):
    MOVIE = "MOVIE"
    TV_SERIES = "TV_SERIES"


title_services = Table(
    "title_services",
    Base.metadata,
    Column("title_id", Uuid, ForeignKey("titles.id", ondelete="CASCADE"), primary_key=True),
    Column("service_id", Uuid, ForeignKey("streaming_services.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String, unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    list_groups: Mapped[list["ListGroup"]] = relationship(back_populates="user")


class Genre(Base):
    __tablename__ = "genres"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class StreamingService(Base):
    __tablename__ = "streaming_services"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    logo_url: Mapped[str | None] = mapped_column(String, nullable=True)


class ListGroup(Base):
    __tablename__ = "list_groups"
    __table_args__ = (UniqueConstraint("user_id", "genre_id", name="uq_list_groups_user_genre"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    genre_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("genres.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    user: Mapped["User"] = relationship(back_populates="list_groups")
    genre: Mapped["Genre"] = relationship(lazy="selectin")


class Title(Base):
    __tablename__ = "titles"
    __table_args__ = (UniqueConstraint("title_type", "tmdb_id", name="uq_titles_type_tmdb"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title_type: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    tmdb_id: Mapped[str | None] = mapped_column(String, nullable=True)
    release_year: Mapped[str | None] = mapped_column(String, nullable=True)
    poster_url: Mapped[str | None] = mapped_column(String, nullable=True)
    overview: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    services: Mapped[list["StreamingService"]] = relationship(secondary=title_services, lazy="selectin")
    rating: Mapped["Rating | None"] = relationship(back_populates="title", uselist=False, lazy="selectin")


class ListMembership(Base):
    """A title's place in one list group: which of the three lists, and where."""

    __tablename__ = "list_memberships"
    __table_args__ = (
        UniqueConstraint("title_id", "list_group_id", name="uq_list_memberships_title_group"),
        Index("ix_list_memberships_partition", "list_group_id", "list_type", "position"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("titles.id", ondelete="CASCADE"), nullable=False)
    list_group_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("list_groups.id", ondelete="CASCADE"), nullable=False)
    list_type: Mapped[str] = mapped_column(String, nullable=False)
    # Not unique: positions may collide while an operation is in flight.
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Rating(Base):
    __tablename__ = "ratings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("titles.id", ondelete="CASCADE"), unique=True, nullable=False)
    stars: Mapped[int] = mapped_column(Integer, nullable=False)
    review: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    title: Mapped["Title"] = relationship(back_populates="rating")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    action: Mapped[str] = mapped_column(String, nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    actor_email: Mapped[str | None] = mapped_column(String, nullable=True)
    list_group_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
