from pricecast.services.forecast_service import (
    AccuracyReport,
    AccuracySummary,
    ForecastPointDTO,
    ForecastService,
)

__all__ = ["AccuracyReport", "AccuracySummary", "ForecastPointDTO", "ForecastService"]
