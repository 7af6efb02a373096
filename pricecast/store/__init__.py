from pricecast.store.prediction_store import (
    AccuracyStats,
    BatchInsertResult,
    DisplayPoint,
    InsertResult,
    NewForecast,
    PredictionStore,
)

__all__ = [
    "AccuracyStats",
    "BatchInsertResult",
    "DisplayPoint",
    "InsertResult",
    "NewForecast",
    "PredictionStore",
]
