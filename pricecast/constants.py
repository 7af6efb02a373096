"""
Constants shared by the forecast pipeline and its storage layer.
"""

# Candle granularities and their durations in milliseconds. Closed set:
# anything else is a configuration error, not a fallback.
GRANULARITY_MS = {
    "1h": 3_600_000,
    "4h": 14_400_000,
    "1d": 86_400_000,
}

# Forecasting providers (closed set of bindings)
PROVIDER_GEMINI = "gemini"
PROVIDER_GPT = "gpt"
PROVIDER_CLAUDE = "claude"
PROVIDERS = (PROVIDER_GEMINI, PROVIDER_GPT, PROVIDER_CLAUDE)

# Rolling forward window
WINDOW_SIZE = 24
DEFAULT_HISTORY_LIMIT = 100
DEFAULT_INDICATOR_LIMIT = 10
MIN_ACCEPTABLE_RATIO = 0.8

# Accuracy resolution
DEFAULT_RESOLUTION_LIMIT = 300
ACCURATE_ERROR_THRESHOLD = 0.05  # |error| / actual within 5% counts as accurate

# Serving layer
DAY_MS = 86_400_000
DISPLAY_WINDOW_LIMIT = 50

# JSON key holding the forecast list in provider output
FORECAST_LIST_KEY = "predictions"
