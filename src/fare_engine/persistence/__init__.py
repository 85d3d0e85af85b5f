from .database import init_database
from .mirror import SettledFareMirror, SettledFareRepository, mirror_key

__all__ = ["SettledFareMirror", "SettledFareRepository", "init_database", "mirror_key"]
