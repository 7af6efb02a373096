"""
Persistence layer.

ORM models for forecast records and daily accuracy metrics, plus read-only
mappings of the ingestion-owned candle and indicator tables. The async
engine lives in ``pricecast.db.postgres``.
"""
