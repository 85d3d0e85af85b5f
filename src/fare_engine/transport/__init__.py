from .client import FareApiClient

__all__ = ["FareApiClient"]
