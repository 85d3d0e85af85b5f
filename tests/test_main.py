import json
import logging
from datetime import datetime

import pytest

from fare_engine import main as cli
from fare_engine.engine import FareEngine
from fare_engine.fare import AirportTrip, LocalTrip, OutstationTrip
from fare_engine.schedules import TripMode
from tests.fakes import FakeClock, FakeFareBackend


@pytest.fixture
def fake_engine(monkeypatch):
    """Route the CLI to an engine backed by the in-memory fare API."""
    backend = FakeFareBackend()

    def factory(settings):
        return FareEngine(settings, clock=FakeClock(), backend=backend)

    monkeypatch.setattr(cli, "FareEngine", factory)
    monkeypatch.setenv("FARE_LOG_LEVEL", "WARNING")
    monkeypatch.setenv("FARE_MIRROR_ENABLED", "false")
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield backend
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.unit
class TestBuildTrip:
    def test_outstation_round_trip(self):
        args = cli.build_parser().parse_args(
            [
                "quote",
                "--trip-kind", "outstation",
                "--vehicle", "sedan",
                "--distance", "150",
                "--mode", "round-trip",
                "--pickup", "2024-03-01T09:00",
                "--return", "2024-03-02T20:00",
            ]
        )

        trip = cli.build_trip(args)

        assert isinstance(trip, OutstationTrip)
        assert trip.mode == TripMode.ROUND_TRIP
        assert trip.pickup_at == datetime(2024, 3, 1, 9, 0)
        assert trip.return_at == datetime(2024, 3, 2, 20, 0)

    def test_local_package_is_normalized(self):
        args = cli.build_parser().parse_args(
            ["quote", "--trip-kind", "local", "--vehicle", "sedan", "--package", "4hr_40km"]
        )

        trip = cli.build_trip(args)

        assert isinstance(trip, LocalTrip)
        assert trip.package_id == "4hrs-40km"

    def test_airport(self):
        args = cli.build_parser().parse_args(
            ["quote", "--trip-kind", "airport", "--vehicle", "sedan", "--distance", "45"]
        )
        assert cli.build_trip(args) == AirportTrip(distance_km=45)

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


@pytest.mark.unit
class TestMain:
    def test_quote_prints_json(self, fake_engine, capsys):
        exit_code = cli.main(
            [
                "quote",
                "--trip-kind", "airport",
                "--vehicle", "sedan",
                "--vehicle", "Sedan",
                "--distance", "45",
            ]
        )

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert list(output) == ["sedan"]
        assert output["sedan"]["total_price"] == 2070
        assert output["sedan"]["source"] == "fresh"

    def test_sync_prints_results(self, fake_engine, capsys):
        exit_code = cli.main(["sync", "--force"])

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert output == {"outstation": True, "local": True, "airport": True}

    def test_local_quote_names_the_package(self, fake_engine, capsys):
        cli.main(
            [
                "quote",
                "--trip-kind", "local",
                "--vehicle", "sedan",
                "--package", "10hr_100km",
                "--distance", "60",
            ]
        )

        output = json.loads(capsys.readouterr().out)
        assert output["sedan"]["package"] == "10 Hours / 100 KM"
        assert output["sedan"]["trip_kind"] == "local"
