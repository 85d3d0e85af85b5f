"""Best-effort mirror of settled fares for reload recovery.

Two tiers, both keyed ``fare_{trip_kind}_{vehicle_id}``: a dict that lives
as long as the engine (the page session) and an optional SQLite file that
survives restarts. The mirror is a hint for what to display before the first
settlement. It is never read by a fare computation, and a failed write only
costs the hint.
"""

import logging
from typing import Any

from sqlalchemy import delete
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..schedules import TripKind
from ..vehicles import normalize_vehicle_id
from .schema import SettledFare, utc_now

logger = logging.getLogger(__name__)


def mirror_key(trip_kind: TripKind, vehicle_id: str) -> str:
    return f"fare_{trip_kind.value}_{normalize_vehicle_id(vehicle_id)}"


class SettledFareRepository:
    """Repository for persisting settled fares to SQLite."""

    def __init__(self, session: Session):
        self.session = session

    def save(self, trip_kind: TripKind, vehicle_id: str, fare: float, source: str) -> None:
        """Save or replace the settled fare for a (trip kind, vehicle) pair."""
        vehicle = normalize_vehicle_id(vehicle_id)
        stmt = insert(SettledFare).values(
            mirror_key=mirror_key(trip_kind, vehicle),
            trip_kind=trip_kind.value,
            vehicle_id=vehicle,
            fare=fare,
            source=source,
            settled_at=utc_now(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["mirror_key"],
            set_={
                "fare": stmt.excluded.fare,
                "source": stmt.excluded.source,
                "settled_at": stmt.excluded.settled_at,
            },
        )
        self.session.execute(stmt)

    def load(self, trip_kind: TripKind, vehicle_id: str) -> float | None:
        row = self.session.get(SettledFare, mirror_key(trip_kind, vehicle_id))
        return None if row is None else row.fare

    def delete(self, trip_kind: TripKind, vehicle_id: str | None = None) -> int:
        stmt = delete(SettledFare).where(SettledFare.trip_kind == trip_kind.value)
        if vehicle_id is not None:
            stmt = stmt.where(SettledFare.vehicle_id == normalize_vehicle_id(vehicle_id))
        result = self.session.execute(stmt)
        return result.rowcount or 0


class SettledFareMirror:
    def __init__(self, session_factory: sessionmaker[Any] | None = None):
        self._session_factory = session_factory
        self._session_store: dict[str, float] = {}

    @property
    def persistent(self) -> bool:
        return self._session_factory is not None

    def record(self, trip_kind: TripKind, vehicle_id: str, fare: float, source: str) -> None:
        self._session_store[mirror_key(trip_kind, vehicle_id)] = fare
        if self._session_factory is None:
            return
        try:
            with self._session_factory() as session:
                SettledFareRepository(session).save(trip_kind, vehicle_id, fare, source)
                session.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Could not mirror settled {trip_kind.value} fare: {e}")

    def recall(self, trip_kind: TripKind, vehicle_id: str) -> float | None:
        """Last settled fare for a pair, session tier first."""
        key = mirror_key(trip_kind, vehicle_id)
        if key in self._session_store:
            return self._session_store[key]
        if self._session_factory is None:
            return None
        try:
            with self._session_factory() as session:
                fare = SettledFareRepository(session).load(trip_kind, vehicle_id)
        except SQLAlchemyError as e:
            logger.warning(f"Could not read mirrored {trip_kind.value} fare: {e}")
            return None
        if fare is not None:
            self._session_store[key] = fare
        return fare

    def forget(self, trip_kind: TripKind, vehicle_id: str | None = None) -> None:
        if vehicle_id is None:
            prefix = f"fare_{trip_kind.value}_"
            for key in [k for k in self._session_store if k.startswith(prefix)]:
                del self._session_store[key]
        else:
            self._session_store.pop(mirror_key(trip_kind, vehicle_id), None)

        if self._session_factory is None:
            return
        try:
            with self._session_factory() as session:
                SettledFareRepository(session).delete(trip_kind, vehicle_id)
                session.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Could not drop mirrored {trip_kind.value} fares: {e}")
