"""
Error taxonomy for forecast generation.

Retry ownership:
- TransientProviderError: retried inside ProviderAdapter (inner policy).
- MalformedOutputError / InsufficientResultsError: retried by the
  PredictionOrchestrator with a freshly built prompt (outer policy).
- ConfigurationError: fatal for the call, never retried.

Duplicate inserts are not errors; the store absorbs them as no-ops.
"""

from __future__ import annotations


class PriceCastError(Exception):
    """Base class for all pricecast errors."""


class ConfigurationError(PriceCastError):
    """Unknown granularity/provider, missing history, or missing credentials."""


class TransientProviderError(PriceCastError):
    """Network failure, timeout, empty output, or output with no JSON payload."""

    def __init__(self, provider: str, message: str, attempts: int = 1) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.attempts = attempts


class MalformedOutputError(PriceCastError):
    """Provider output present but unusable even after repair."""


class InsufficientResultsError(MalformedOutputError):
    """Output parsed, but fewer entries than the acceptance floor."""

    def __init__(self, received: int, requested: int, minimum: int) -> None:
        super().__init__(
            f"Insufficient forecasts returned: {received}/{requested} "
            f"(minimum acceptable {minimum})"
        )
        self.received = received
        self.requested = requested
        self.minimum = minimum
