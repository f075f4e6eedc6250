# services/api/schwab.py
from __future__ import annotations
import time
import asyncio
from typing import Any, Callable, Dict, Optional

import httpx

from libs.common.models import Token
from errors import UpstreamAuthError, UpstreamRequestError

QUOTES_PATH = "/marketdata/v1/quotes"
PRICE_HISTORY_PATH = "/marketdata/v1/pricehistory"

SAFETY_MARGIN_S = 15.0
DEFAULT_TTL_S = 1700.0  # les access tokens Schwab durent ~30 min


class TokenCache:
    """
    Un seul access token OAuth2, rafraîchi à la demande via le refresh token.
    Le refresh est sérialisé par un asyncio.Lock : les appels concurrents
    pendant un refresh attendent et réutilisent le même token.
    """
    def __init__(self, http: httpx.AsyncClient, token_url: str,
                 client_id: str, client_secret: str,
                 refresh_token: str, redirect_uri: str,
                 safety_margin: float = SAFETY_MARGIN_S,
                 default_ttl: float = DEFAULT_TTL_S,
                 clock: Callable[[], float] = time.time):
        self.http = http
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.redirect_uri = redirect_uri
        self.safety_margin = float(safety_margin)
        self.default_ttl = float(default_ttl)
        self.clock = clock
        self._token: Optional[Token] = None
        self._lock = asyncio.Lock()

    @property
    def token(self) -> Optional[Token]:
        return self._token

    def _fresh(self) -> Optional[Token]:
        tok = self._token
        if tok is not None and tok.is_fresh(self.clock(), self.safety_margin):
            return tok
        return None

    def invalidate(self):
        self._token = None

    async def get_token(self) -> Token:
        tok = self._fresh()
        if tok:
            return tok
        async with self._lock:
            # un autre appelant a pu rafraîchir pendant qu'on attendait
            tok = self._fresh()
            if tok:
                return tok
            self._token = await self._refresh()
            return self._token

    async def _refresh(self) -> Token:
        form = {
            "grant_type": "refresh_token",
            "refresh_token": self.refresh_token,
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
        }
        r = await self.http.post(
            self.token_url,
            data=form,
            auth=(self.client_id, self.client_secret),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if not r.is_success:
            print(f"[auth] token refresh failed: HTTP {r.status_code}")
            raise UpstreamAuthError(r.status_code, r.text)

        try:
            data = r.json()
        except ValueError:
            raise UpstreamAuthError(r.status_code, f"invalid JSON: {r.text}")
        access = data.get("access_token") if isinstance(data, dict) else None
        if not access:
            raise UpstreamAuthError(r.status_code, "missing access_token in response")

        ttl = data.get("expires_in")
        ttl = float(ttl) if ttl is not None else self.default_ttl
        tok = Token(value=str(access), expires_at=self.clock() + ttl)
        print(f"[auth] token refreshed, expires in {ttl:.0f}s")
        return tok


class SchwabClient:
    """GET authentifiés sur l'API market data. Une seule tentative, pas de retry."""
    def __init__(self, http: httpx.AsyncClient, tokens: TokenCache):
        self.http = http
        self.tokens = tokens

    async def get(self, path: str, params: Dict[str, Any] | None = None) -> Any:
        tok = await self.tokens.get_token()
        r = await self.http.get(
            path,
            params=params or None,
            headers={"Authorization": f"Bearer {tok.value}"},
        )
        if not r.is_success:
            print(f"[schwab] {path} HTTP {r.status_code}")
            raise UpstreamRequestError(r.status_code, path, r.text)
        return r.json()

    async def get_quotes(self, symbol: str) -> Any:
        return await self.get(QUOTES_PATH, {"symbols": symbol})

    async def get_price_history(self, symbol: str, days: int = 30) -> Any:
        return await self.get(PRICE_HISTORY_PATH, {
            "symbol": symbol,
            "periodType": "day",
            "period": int(days),
            "frequencyType": "daily",
            "frequency": 1,
            "needExtendedHoursData": False,
        })
