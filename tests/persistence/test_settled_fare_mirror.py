from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from fare_engine.persistence.database import init_database
from fare_engine.persistence.mirror import SettledFareMirror, mirror_key
from fare_engine.persistence.schema import MirrorMetadata, SettledFare
from fare_engine.schedules import TripKind


@pytest.mark.unit
class TestMirrorKey:
    def test_key_uses_canonical_vehicle(self):
        assert mirror_key(TripKind.AIRPORT, "Innova Crysta") == "fare_airport_innova_crysta"


@pytest.mark.unit
class TestSessionMirror:
    def test_record_and_recall(self, mirror):
        mirror.record(TripKind.LOCAL, "sedan", 1725.0, "computed")

        assert not mirror.persistent
        assert mirror.recall(TripKind.LOCAL, "Sedan") == 1725.0
        assert mirror.recall(TripKind.AIRPORT, "sedan") is None

    def test_forget_one_vehicle(self, mirror):
        mirror.record(TripKind.LOCAL, "sedan", 1725.0, "computed")
        mirror.record(TripKind.LOCAL, "ertiga", 2100.0, "computed")

        mirror.forget(TripKind.LOCAL, "sedan")

        assert mirror.recall(TripKind.LOCAL, "sedan") is None
        assert mirror.recall(TripKind.LOCAL, "ertiga") == 2100.0

    def test_forget_trip_kind(self, mirror):
        mirror.record(TripKind.LOCAL, "sedan", 1725.0, "computed")
        mirror.record(TripKind.AIRPORT, "sedan", 2070.0, "authoritative")

        mirror.forget(TripKind.LOCAL)

        assert mirror.recall(TripKind.LOCAL, "sedan") is None
        assert mirror.recall(TripKind.AIRPORT, "sedan") == 2070.0


@pytest.mark.unit
class TestSqliteMirror:
    def test_schema_version_seeded(self, temp_mirror_db):
        session_factory = init_database(temp_mirror_db)
        with session_factory() as session:
            assert session.get(MirrorMetadata, "schema_version").value == "1.0.0"

    def test_survives_restart(self, temp_mirror_db):
        SettledFareMirror(init_database(temp_mirror_db)).record(
            TripKind.OUTSTATION, "ertiga", 19250.0, "computed"
        )

        reopened = SettledFareMirror(init_database(temp_mirror_db))

        assert reopened.persistent
        assert reopened.recall(TripKind.OUTSTATION, "ertiga") == 19250.0

    def test_record_replaces_previous_fare(self, sqlite_mirror, temp_mirror_db):
        sqlite_mirror.record(TripKind.AIRPORT, "sedan", 2070.0, "computed")
        sqlite_mirror.record(TripKind.AIRPORT, "sedan", 2150.0, "authoritative")

        with init_database(temp_mirror_db)() as session:
            rows = session.execute(select(SettledFare)).scalars().all()

        assert [row.mirror_key for row in rows] == ["fare_airport_sedan"]
        assert rows[0].fare == 2150.0
        assert rows[0].source == "authoritative"

    def test_forget_deletes_rows(self, sqlite_mirror, temp_mirror_db):
        sqlite_mirror.record(TripKind.AIRPORT, "sedan", 2070.0, "computed")
        sqlite_mirror.record(TripKind.AIRPORT, "ertiga", 2300.0, "computed")
        sqlite_mirror.record(TripKind.LOCAL, "sedan", 1725.0, "computed")

        sqlite_mirror.forget(TripKind.AIRPORT)

        reopened = SettledFareMirror(init_database(temp_mirror_db))
        assert reopened.recall(TripKind.AIRPORT, "sedan") is None
        assert reopened.recall(TripKind.LOCAL, "sedan") == 1725.0

    def test_write_failure_keeps_session_tier(self, failing_session_factory):
        mirror = SettledFareMirror(failing_session_factory)

        mirror.record(TripKind.AIRPORT, "sedan", 2070.0, "computed")

        assert mirror.recall(TripKind.AIRPORT, "sedan") == 2070.0

    def test_read_failure_returns_none(self, failing_session_factory):
        mirror = SettledFareMirror(failing_session_factory)
        assert mirror.recall(TripKind.AIRPORT, "luxury") is None


@pytest.fixture
def failing_session_factory():
    """Session factory whose sessions fail on every statement."""

    session = MagicMock()
    session.execute.side_effect = OperationalError("INSERT", {}, Exception("disk I/O error"))
    session.get.side_effect = OperationalError("SELECT", {}, Exception("disk I/O error"))
    factory = MagicMock()
    factory.return_value.__enter__.return_value = session
    factory.return_value.__exit__.return_value = False
    return factory
