"""Rolling LLM price forecasts with accuracy tracking."""

__version__ = "0.1.0"
