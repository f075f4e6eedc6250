from __future__ import annotations
from typing import List, Dict, Any, Sequence
from decimal import Decimal, ROUND_HALF_UP

from libs.common.models import Candle, WindowMetric

DEFAULT_WINDOWS = (10, 20, 30)

class ZeroAverageError(ValueError):
    """Une moyenne vaut 0 : le ratio correspondant n'a pas de sens."""
    def __init__(self, window: int, field: str):
        self.window = window
        self.field = field
        super().__init__(f"{field} average is zero for {window}-day window")

# --- petites utils ---

def mean(values: Sequence[float]) -> float:
    if not values:
        raise ValueError("mean of empty sequence")
    return sum(values) / len(values)

def tail(candles: Sequence[Candle], n: int) -> List[Candle]:
    """Les n dernières bougies (ou toutes si la série est plus courte)."""
    if n <= 0:
        return []
    return list(candles[-n:])

def calc_averages(candles: Sequence[Candle], n: int) -> Dict[str, float]:
    recent = tail(candles, n)
    return {
        "avg_close": mean([c.close for c in recent]),
        "avg_volume": mean([c.volume for c in recent]),
    }

def round_half_up(value: float, places: int) -> float:
    q = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))

# --- ratios ---

def compute_metrics(candles: Sequence[Candle],
                    today_price: float,
                    today_volume: float,
                    windows: Sequence[int] = DEFAULT_WINDOWS) -> List[WindowMetric]:
    """
    Pour chaque fenêtre N : moyennes close/volume sur les N dernières bougies,
    puis ratios du jour = valeur du jour / moyenne. Pleine précision ici,
    l'arrondi se fait dans serialize_metric().
    """
    if len(candles) == 0:
        raise ValueError("no candles to average")

    out: List[WindowMetric] = []
    for n in windows:
        avg = calc_averages(candles, n)
        if avg["avg_close"] == 0:
            raise ZeroAverageError(n, "close")
        if avg["avg_volume"] == 0:
            raise ZeroAverageError(n, "volume")
        out.append(WindowMetric(
            window=n,
            avg_close=avg["avg_close"],
            avg_volume=avg["avg_volume"],
            price_ratio=float(today_price) / avg["avg_close"],
            volume_ratio=float(today_volume) / avg["avg_volume"],
        ))
    return out

def serialize_metric(m: WindowMetric) -> Dict[str, Any]:
    return {
        "window": m.window,
        "avgClose": round_half_up(m.avg_close, 4),
        "avgVolume": int(round_half_up(m.avg_volume, 0)),
        "priceRatio": round_half_up(m.price_ratio, 4),
        "volumeRatio": round_half_up(m.volume_ratio, 4),
    }
