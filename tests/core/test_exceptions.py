"""Tests for the fare engine exception hierarchy."""

import pytest

from fare_engine.core.exceptions import (
    ConfigurationError,
    FareEngineError,
    FareFetchError,
    FareTimeout,
    InvalidTransitionError,
    MalformedResponse,
    NetworkFailure,
    NoScheduleFound,
    PermanentError,
    TransientError,
)


@pytest.mark.unit
class TestExceptionHierarchy:
    def test_network_failure_is_transient(self):
        assert issubclass(NetworkFailure, TransientError)
        assert issubclass(NetworkFailure, FareEngineError)

    def test_timeout_falls_back_like_any_network_failure(self):
        assert issubclass(FareTimeout, NetworkFailure)
        assert isinstance(FareTimeout("hung"), FareFetchError)

    @pytest.mark.parametrize(
        "error_type",
        [MalformedResponse, NoScheduleFound, InvalidTransitionError, ConfigurationError],
    )
    def test_permanent_errors(self, error_type):
        assert issubclass(error_type, PermanentError)
        assert not issubclass(error_type, TransientError)

    def test_details_default_to_empty_dict(self):
        error = NetworkFailure("boom")
        assert error.message == "boom"
        assert error.details == {}
        assert str(error) == "boom"

    def test_details_are_kept(self):
        error = NoScheduleFound("missing", details={"vehicle_id": "sedan"})
        assert error.details["vehicle_id"] == "sedan"

    def test_fetch_errors_cover_the_transport_taxonomy(self):
        assert set(FareFetchError) == {NetworkFailure, MalformedResponse, NoScheduleFound}
        assert not isinstance(InvalidTransitionError("x"), FareFetchError)
