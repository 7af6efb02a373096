"""
Pydantic models for forecast generation.

These are the value objects passed between the market data reader, the
prompt builder, the provider adapter and the orchestrator. ORM rows live
in ``pricecast.db.models``; nothing here touches the database.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class HistoricalBar(BaseModel):
    """One OHLCV candle; ``timestamp`` is the candle open time in epoch ms."""

    timestamp: int = Field(..., description="Candle open time (epoch ms)")
    open: float
    high: float
    low: float
    close: float
    volume: float


class IndicatorSnapshot(BaseModel):
    """Technical indicators computed for one candle."""

    timestamp: int = Field(..., description="Candle open time (epoch ms)")
    sma_20: Optional[float] = None
    sma_50: Optional[float] = None
    rsi_14: Optional[float] = None
    macd: Optional[float] = None
    macd_signal: Optional[float] = None
    macd_histogram: Optional[float] = None

    def as_prompt_dict(self) -> Dict[str, Optional[float]]:
        return {
            "SMA_20": self.sma_20,
            "SMA_50": self.sma_50,
            "RSI_14": self.rsi_14,
            "MACD": self.macd,
            "MACD_Signal": self.macd_signal,
            "MACD_Histogram": self.macd_histogram,
        }


class WindowEntry(BaseModel):
    """A stored forecast that is still in the forward window."""

    target_time: int = Field(..., description="Forecast target instant (epoch ms)")
    predicted_price: float = Field(..., gt=0)


class ForecastPoint(BaseModel):
    """A validated (timestamp, price) pair extracted from provider output."""

    timestamp: int = Field(..., description="Target instant (epoch ms)")
    price: float = Field(..., gt=0, description="Predicted close price")


class PromptContext(BaseModel):
    """Everything a provider binding needs for one invocation."""

    asset: str
    granularity: str
    prompt: str = Field(..., description="User-role prompt text")
    system_instruction: str = Field(..., description="System-role instruction")
    requested_count: int = Field(..., ge=1)
    start_timestamp: int = Field(..., description="First target instant (epoch ms)")
    step_ms: int = Field(..., gt=0)

    @field_validator("prompt", "system_instruction")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class SentimentView(BaseModel):
    """Asset and market sentiment extracted from a sentiment snapshot."""

    asset: Optional[Dict[str, Any]] = None
    market: Optional[Dict[str, Any]] = None

    @property
    def is_empty(self) -> bool:
        return not self.asset and not self.market


def expected_timestamps(context: PromptContext) -> List[int]:
    """Target instants the provider was asked for, in order."""
    return [
        context.start_timestamp + i * context.step_ms
        for i in range(context.requested_count)
    ]
