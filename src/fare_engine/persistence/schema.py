"""SQLAlchemy ORM models for the settled fare mirror."""

from datetime import UTC, datetime

from sqlalchemy import Float, Index, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    pass


class SettledFare(Base):
    __tablename__ = "settled_fares"

    mirror_key: Mapped[str] = mapped_column(String, primary_key=True)
    trip_kind: Mapped[str] = mapped_column(String, nullable=False)
    vehicle_id: Mapped[str] = mapped_column(String, nullable=False)
    fare: Mapped[float] = mapped_column(Float, nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False)
    settled_at: Mapped[datetime] = mapped_column(
        default=lambda: utc_now(),
        onupdate=lambda: utc_now(),
    )

    __table_args__ = (Index("idx_settled_fare_trip_kind", "trip_kind"),)


class MirrorMetadata(Base):
    __tablename__ = "mirror_metadata"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(String, nullable=False)
