from typing import Dict, Any, List, Optional, Callable

from libs.common.models import Candle, QuoteSnapshot

PRICE_FIELDS = ("lastPrice", "mark", "regularMarketLastPrice", "close")
VOLUME_FIELDS = ("totalVolume", "volume")

def _by_symbol(payload: Any, symbol: str) -> Optional[Dict[str, Any]]:
    if isinstance(payload, dict):
        hit = payload.get(symbol)
        if isinstance(hit, dict) and hit:
            return hit
    return None

def _first_of_array(payload: Any, symbol: str) -> Optional[Dict[str, Any]]:
    arr = payload.get("quotes") if isinstance(payload, dict) else payload
    if isinstance(arr, list) and arr and isinstance(arr[0], dict) and arr[0]:
        return arr[0]
    return None

def _flat(payload: Any, symbol: str) -> Optional[Dict[str, Any]]:
    if isinstance(payload, dict) and payload:
        return payload
    return None

# ordre = priorité
QUOTE_STRATEGIES: List[Callable[[Any, str], Optional[Dict[str, Any]]]] = [
    _by_symbol,
    _first_of_array,
    _flat,
]

def select_quote(payload: Any, symbol: str) -> Optional[Dict[str, Any]]:
    """Premier objet non vide renvoyé par les stratégies, dans l'ordre."""
    for strategy in QUOTE_STRATEGIES:
        hit = strategy(payload, symbol)
        if hit:
            return hit
    return None

def _num(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None

def _field(obj: Dict[str, Any], names) -> Optional[float]:
    # Schwab imbrique parfois les champs sous "quote"
    scopes = [obj]
    if isinstance(obj.get("quote"), dict):
        scopes.append(obj["quote"])
    for scope in scopes:
        for name in names:
            v = _num(scope.get(name))
            if v is not None:
                return v
    return None

def extract_quote(payload: Any, symbol: str) -> Dict[str, Optional[float]]:
    """
    Retourne {"price", "volume"} ; chaque valeur peut être None si absente.
    """
    q = select_quote(payload, symbol)
    if q is None:
        return {"price": None, "volume": None}
    return {"price": _field(q, PRICE_FIELDS), "volume": _field(q, VOLUME_FIELDS)}

def to_snapshot(fields: Dict[str, Optional[float]]) -> Optional[QuoteSnapshot]:
    """None si prix ou volume manquant / nul."""
    if not fields.get("price") or not fields.get("volume"):
        return None
    return QuoteSnapshot(last_price=fields["price"], total_volume=fields["volume"])

def extract_candles(payload: Any) -> List[Candle]:
    """
    Schwab pricehistory: {"candles": [{open, high, low, close, volume, datetime}, ...]}
    -> [Candle, ...] dans l'ordre reçu (chronologique croissant).
    """
    raw = None
    if isinstance(payload, dict):
        raw = payload.get("candles")
        if raw is None and isinstance(payload.get("data"), dict):
            raw = payload["data"].get("candles")
    if not isinstance(raw, list):
        return []

    out: List[Candle] = []
    for c in raw:
        if not isinstance(c, dict):
            continue
        close = _num(c.get("close"))
        if close is None:
            close = _num(c.get("closePrice"))
        if close is None:
            continue
        dt = c.get("datetime")
        out.append(Candle(
            close=close,
            volume=_num(c.get("volume")) or 0.0,
            datetime=int(dt) if isinstance(dt, (int, float)) and not isinstance(dt, bool) else None,
        ))
    return out
