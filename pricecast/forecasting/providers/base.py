"""
Capability interface shared by all forecasting provider bindings.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class ForecastProvider(ABC):
    """One LLM backend that turns a prompt into raw response text.

    Bindings own their SDK client and request shape; callers only ever see
    ``generate(prompt, system_instruction) -> str``. SDK errors are raised
    as ``TransientProviderError``.
    """

    #: Stable provider key stored on forecast records ("gemini", "gpt", ...)
    name: str = ""

    def __init__(self, model: str) -> None:
        self.model = model

    @property
    def model_version(self) -> str:
        """Model tag recorded on every forecast this binding produces."""
        return self.model

    @abstractmethod
    async def generate(self, prompt: str, system_instruction: str) -> str:
        """Send one prompt and return the response text payload."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(model={self.model!r})>"
