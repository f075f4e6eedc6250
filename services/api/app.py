import sys
import traceback
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, APIRouter, Request, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, FileResponse
from dotenv import load_dotenv
import httpx
import uvicorn

from libs.common.metrics import compute_metrics, serialize_metric, ZeroAverageError
from libs.common.schwab_payloads import extract_quote, extract_candles, to_snapshot
from errors import MetricsError, ValidationError, IncompleteDataError
from schwab import TokenCache, SchwabClient
from settings import Settings, ConfigError, load_settings

router = APIRouter()

# ---------------- Helpers ----------------
def iso_utc() -> str:
    return datetime.now(timezone.utc).isoformat()

def _plain_number(v: float):
    # 1000000.0 -> 1000000 pour le JSON
    return int(v) if float(v).is_integer() else v

def _error_message(e: Exception) -> str:
    return str(e) or type(e).__name__

async def build_metrics(client: SchwabClient, symbol: Optional[str],
                        history_days: int = 30,
                        windows: List[int] | None = None) -> Dict[str, Any]:
    """
    Quote du jour + historique daily, puis ratios 10/20/30 jours.
    Lève ValidationError (400) ou IncompleteDataError (502) ; le reste remonte.
    """
    symbol = (symbol or "").strip().upper()
    if not symbol:
        raise ValidationError("symbol is required")

    # 1) Quote (prix & volume du jour)
    quotes = await client.get_quotes(symbol)
    fields = extract_quote(quotes, symbol)

    # 2) Historique daily
    history = await client.get_price_history(symbol, history_days)
    candles = extract_candles(history)

    raw = {"quotes": quotes, "history": history}
    snap = to_snapshot(fields)
    if snap is None or not candles:
        raise IncompleteDataError(raw)

    try:
        metrics = compute_metrics(candles, snap.last_price, snap.total_volume,
                                  windows or [10, 20, 30])
    except ZeroAverageError as e:
        raise IncompleteDataError(raw, f"Incomplete market data: {e}")

    return {
        "symbol": symbol,
        "todayPrice": _plain_number(snap.last_price),
        "todayVolume": _plain_number(snap.total_volume),
        "metrics": [serialize_metric(m) for m in metrics],
        "lastUpdated": iso_utc(),
    }

# ---------------- API ----------------
@router.get("/health")
async def health(request: Request):
    return {"status": "ok", "token_cached": request.app.state.tokens.token is not None}

@router.get("/api/metrics")
async def get_metrics(request: Request, symbol: Optional[str] = Query(None)):
    settings: Settings = request.app.state.settings
    tag = (symbol or "").strip().upper() or "-"
    try:
        out = await build_metrics(request.app.state.schwab, symbol,
                                  settings.history_days, settings.windows)
        print(f"[metrics] {tag} ok ({len(out['metrics'])} windows)")
        return out
    except MetricsError as e:
        print(f"[metrics] {tag} {type(e).__name__}: {e}")
        if e.status_code >= 500:
            print(traceback.format_exc())
        return JSONResponse(status_code=e.status_code, content=e.payload())
    except Exception as e:
        print(f"[metrics] {tag} unhandled {type(e).__name__}: {e!r}")
        print(traceback.format_exc())
        return JSONResponse(status_code=500, content={"error": _error_message(e)})

# ---------------- Frontend (SPA) ----------------
def mount_spa(app: FastAPI, static_dir: str):
    """Catch-all enregistré APRÈS les routes API : fichier statique sinon index.html."""
    root = Path(static_dir).resolve()

    @app.get("/{full_path:path}", include_in_schema=False)
    async def spa(full_path: str):
        if full_path == "api" or full_path.startswith("api/"):
            return JSONResponse(status_code=404, content={"error": "not found"})
        if full_path:
            candidate = (root / full_path).resolve()
            if candidate.is_file() and root in candidate.parents:
                return FileResponse(candidate)
        index = root / "index.html"
        if not index.is_file():
            return JSONResponse(status_code=404, content={"error": "frontend not built"})
        return FileResponse(index)

# ---------------- App & CORS ----------------
def create_app(settings: Settings, http: httpx.AsyncClient | None = None) -> FastAPI:
    app = FastAPI(title="Stock Momentum API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        max_age=86400,
    )

    if http is None:
        http = httpx.AsyncClient(base_url=settings.api_base, timeout=settings.http_timeout)
    tokens = TokenCache(
        http,
        settings.resolved_token_url(),
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        refresh_token=settings.refresh_token,
        redirect_uri=settings.redirect_uri,
        safety_margin=settings.token_safety_margin,
        default_ttl=settings.token_default_ttl,
    )
    app.state.settings = settings
    app.state.tokens = tokens
    app.state.schwab = SchwabClient(http, tokens)

    app.include_router(router)
    mount_spa(app, settings.static_dir)

    @app.on_event("shutdown")
    async def on_shutdown():
        await http.aclose()

    return app

# ---------------- Startup ----------------
def load_settings_or_exit() -> Settings:
    """.env puis config ; toute erreur de config arrête le process (code 1)."""
    load_dotenv()
    try:
        return load_settings()
    except ConfigError as e:
        print(f"[config] {e}")
        sys.exit(1)

def build_app() -> FastAPI:
    """Pour `uvicorn app:build_app --factory`."""
    return create_app(load_settings_or_exit())

def main():
    settings = load_settings_or_exit()
    print(f"[server] Server running on port {settings.port}")
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)

if __name__ == "__main__":
    main()
