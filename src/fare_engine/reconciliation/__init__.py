from .loop import FareReconciler, Settlement
from .state import (
    ReconciliationPhase,
    ReconciliationState,
    SettlementSource,
    TripConfiguration,
)

__all__ = [
    "FareReconciler",
    "ReconciliationPhase",
    "ReconciliationState",
    "Settlement",
    "SettlementSource",
    "TripConfiguration",
]
