from pricecast.protocols.sources import MarketDataSource, SentimentSource

__all__ = ["MarketDataSource", "SentimentSource"]
