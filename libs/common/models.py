from pydantic import BaseModel, Field
from typing import Optional

class Candle(BaseModel):
    close: float
    volume: float = 0.0
    datetime: Optional[int] = None  # ms epoch, ordering only

class QuoteSnapshot(BaseModel):
    last_price: float
    total_volume: float

class WindowMetric(BaseModel):
    window: int = Field(gt=0)
    avg_close: float
    avg_volume: float
    price_ratio: float
    volume_ratio: float

class Token(BaseModel):
    value: str
    expires_at: float  # epoch seconds

    def is_fresh(self, now: float, margin: float) -> bool:
        return now < self.expires_at - margin
