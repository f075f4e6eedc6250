import base64
from typing import Any, Dict, List, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient

from app import create_app
from settings import Settings

API_BASE = "https://api.test"
TOKEN_PATH = "/v1/oauth/token"
QUOTES_PATH = "/marketdata/v1/quotes"
HISTORY_PATH = "/marketdata/v1/pricehistory"


class FakeSchwab:
    """
    Faux serveur Schwab pour httpx.MockTransport.
    responses[path] = (status, payload) ; payload str -> texte brut,
    exception -> levée par le transport (timeout réseau), sinon JSON.
    """
    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.responses: Dict[str, Tuple[int, Any]] = {
            TOKEN_PATH: (200, {"access_token": "tok-1", "expires_in": 1800}),
            QUOTES_PATH: (200, {}),
            HISTORY_PATH: (200, {"candles": []}),
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, payload = self.responses.get(request.url.path, (404, "no route"))
        if isinstance(payload, Exception):
            raise payload
        if isinstance(payload, str):
            return httpx.Response(status, text=payload)
        return httpx.Response(status, json=payload)

    def calls(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def basic_auth(user: str, pwd: str) -> str:
    return "Basic " + base64.b64encode(f"{user}:{pwd}".encode()).decode()


def candles(closes, volume=500_000):
    return {"candles": [
        {"open": c, "high": c, "low": c, "close": c, "volume": volume, "datetime": 1_700_000_000_000 + i * 86_400_000}
        for i, c in enumerate(closes)
    ]}


@pytest.fixture
def fake() -> FakeSchwab:
    return FakeSchwab()


@pytest.fixture
def static_dir(tmp_path):
    d = tmp_path / "dist"
    d.mkdir()
    return d


@pytest.fixture
def settings(static_dir) -> Settings:
    return Settings(
        client_id="cid",
        client_secret="secret",
        redirect_uri="https://127.0.0.1:8182",
        refresh_token="rt-1",
        api_base=API_BASE,
        static_dir=str(static_dir),
    )


@pytest.fixture
def http(fake) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=API_BASE, transport=httpx.MockTransport(fake.handler))


@pytest.fixture
def client(settings, http):
    with TestClient(create_app(settings, http)) as c:
        yield c
