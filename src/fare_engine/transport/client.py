"""HTTP client for the fare schedule endpoints."""

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
from opentelemetry import trace

from ..core.clock import Clock, SystemClock
from ..core.exceptions import FareTimeout, MalformedResponse, NetworkFailure, NoScheduleFound
from ..core.retry import RetryConfig, with_retry
from ..metrics import fare_fetch_latency, fare_fetches
from ..schedules import Schedule, TripKind
from ..settings import FareAPISettings
from ..vehicles import normalize_vehicle_id
from .envelope import parse_schedules, select_schedule

T = TypeVar("T")
logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

BYPASS_HEADERS = {
    "X-Force-Refresh": "true",
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
}


def _outcome(error: Exception | None) -> str:
    if error is None:
        return "success"
    if isinstance(error, NetworkFailure):
        return "network_error"
    if isinstance(error, NoScheduleFound):
        return "not_found"
    return "malformed"


class FareApiClient:
    """Fetches and updates fare schedules.

    Transport errors are mapped onto the fare error taxonomy: anything that
    keeps the request from completing with a 2xx status becomes
    NetworkFailure and is retried with backoff. Timeouts raise FareTimeout
    and are not retried, and all attempts share one deadline. Bodies that
    cannot be read become MalformedResponse, and a readable body without the
    requested vehicle becomes NoScheduleFound.
    """

    def __init__(self, settings: FareAPISettings, clock: Clock | None = None):
        self.settings = settings
        self.base_url = settings.base_url.rstrip("/")
        self.timeout = settings.timeout_seconds
        self.clock = clock or SystemClock()
        self.retry_config = RetryConfig(
            max_attempts=settings.max_retries + 1,
            base_delay=settings.retry_base_delay,
            multiplier=settings.retry_multiplier,
            deadline=settings.deadline_seconds,
        )

    def _cache_buster(self) -> str:
        return str(int(self.clock.now() * 1000))

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, url, headers=BYPASS_HEADERS, **kwargs)
        except httpx.TimeoutException as e:
            raise FareTimeout(
                f"Fare request timed out after {self.timeout}s", details={"url": url}
            ) from e
        except httpx.HTTPError as e:
            raise NetworkFailure(f"Fare request failed: {e}", details={"url": url}) from e

        if not response.is_success:
            raise NetworkFailure(
                f"Fare API returned {response.status_code}",
                details={"url": url, "status_code": response.status_code},
            )

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponse("Fare response is not valid JSON", details={"url": url}) from e

    async def _observed(
        self, trip_kind: TripKind, operation_name: str, operation: Callable[[], Awaitable[T]]
    ) -> T:
        start = time.perf_counter()
        error: Exception | None = None
        try:
            return await with_retry(operation, self.retry_config, operation_name)
        except Exception as e:
            error = e
            raise
        finally:
            fare_fetch_latency.labels(trip_kind=trip_kind.value).observe(
                time.perf_counter() - start
            )
            fare_fetches.labels(trip_kind=trip_kind.value, outcome=_outcome(error)).inc()

    async def fetch_schedule(self, trip_kind: TripKind, vehicle_id: str) -> Schedule:
        """Fetch the current schedule for one vehicle."""
        vehicle = normalize_vehicle_id(vehicle_id)
        path = self.settings.fetch_path(trip_kind)

        async def operation() -> Schedule:
            payload = await self._request_json(
                "GET", path, params={"vehicle_id": vehicle, "_t": self._cache_buster()}
            )
            return select_schedule(trip_kind, payload, vehicle)

        with tracer.start_as_current_span(
            "fare.fetch",
            attributes={"fare.trip_kind": trip_kind.value, "fare.vehicle_id": vehicle},
        ):
            schedule = await self._observed(
                trip_kind, f"fetch {trip_kind.value} fares for {vehicle}", operation
            )
        logger.info(f"Fetched {trip_kind.value} schedule for {vehicle}")
        return schedule

    async def fetch_all(self, trip_kind: TripKind) -> dict[str, Schedule]:
        """Fetch the schedule list for every vehicle of a trip kind."""
        path = self.settings.fetch_path(trip_kind)

        async def operation() -> dict[str, Schedule]:
            payload = await self._request_json("GET", path, params={"_t": self._cache_buster()})
            return parse_schedules(trip_kind, payload)

        with tracer.start_as_current_span(
            "fare.fetch_all", attributes={"fare.trip_kind": trip_kind.value}
        ):
            schedules = await self._observed(
                trip_kind, f"fetch all {trip_kind.value} fares", operation
            )
        logger.info(f"Fetched {len(schedules)} {trip_kind.value} schedules")
        return schedules

    async def update_schedule(
        self, trip_kind: TripKind, vehicle_id: str, schedule: Schedule
    ) -> dict[str, Any]:
        """Submit a full schedule for one vehicle to the admin endpoint."""
        vehicle = normalize_vehicle_id(vehicle_id)
        form = {
            "vehicleId": vehicle,
            "vehicle_id": vehicle,
            "tripType": trip_kind.value,
        }
        form.update(schedule.to_form())

        async def operation() -> dict[str, Any]:
            payload = await self._request_json(
                "POST", self.settings.update_path(trip_kind), data=form
            )
            if not isinstance(payload, dict):
                raise MalformedResponse("Fare update response is not a JSON object")
            if payload.get("status") == "error":
                raise MalformedResponse(
                    f"Fare update rejected: {payload.get('message', 'no message')}",
                    details={"payload": payload},
                )
            return payload

        with tracer.start_as_current_span(
            "fare.update",
            attributes={"fare.trip_kind": trip_kind.value, "fare.vehicle_id": vehicle},
        ):
            result = await with_retry(
                operation, self.retry_config, f"update {trip_kind.value} fares for {vehicle}"
            )
        logger.info(f"Updated {trip_kind.value} schedule for {vehicle}")
        return result
