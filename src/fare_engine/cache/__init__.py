from .coordinator import RequestCoordinator
from .fare_cache import FareCache, FareLookup

__all__ = ["FareCache", "FareLookup", "RequestCoordinator"]
