from .bus import EventBus
from .schemas import FareEventType

__all__ = ["EventBus", "FareEventType"]
