# services/api/settings.py
import os
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

REQUIRED_ENV = {
    "client_id": "SCHWAB_CLIENT_ID",
    "client_secret": "SCHWAB_CLIENT_SECRET",
    "redirect_uri": "SCHWAB_REDIRECT_URI",
    "refresh_token": "SCHWAB_REFRESH_TOKEN",
}

OPTIONAL_ENV = {
    "port": "PORT",
    "api_base": "SCHWAB_API_BASE",
    "token_url": "SCHWAB_TOKEN_URL",
    "http_timeout": "HTTP_TIMEOUT",
    "static_dir": "STATIC_DIR",
    "cors_origins": "CORS_ORIGINS",
}

class ConfigError(RuntimeError):
    def __init__(self, message: str, missing: Optional[List[str]] = None):
        self.missing = missing or []
        super().__init__(message)

    @classmethod
    def missing_env(cls, missing: List[str]) -> "ConfigError":
        return cls("Missing Schwab OAuth env vars: " + ", ".join(missing) + ". See .env.example", missing)

class Settings(BaseModel):
    client_id: str
    client_secret: str
    redirect_uri: str
    refresh_token: str

    port: int = 8080
    api_base: str = "https://api.schwabapi.com"
    token_url: Optional[str] = None
    http_timeout: float = Field(15.0, gt=0)
    static_dir: str = "web/dist"
    cors_origins: List[str] = ["*"]

    windows: List[int] = [10, 20, 30]
    history_days: int = Field(30, gt=0)
    token_safety_margin: float = 15.0
    token_default_ttl: float = 1700.0

    def resolved_token_url(self) -> str:
        return self.token_url or f"{self.api_base.rstrip('/')}/v1/oauth/token"

# ---------------- Helpers ----------------
def _read_yaml(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read CONFIG_PATH {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"CONFIG_PATH {path} must contain a mapping")
    # les secrets ne viennent que de l'environnement
    return {k: v for k, v in data.items() if k not in REQUIRED_ENV}

def _from_env(env: Mapping[str, str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for field, var in {**REQUIRED_ENV, **OPTIONAL_ENV}.items():
        val = (env.get(var) or "").strip()
        if not val:
            continue
        if field == "cors_origins":
            out[field] = [o.strip() for o in val.split(",") if o.strip()]
        else:
            out[field] = val
    return out

def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """
    Fichier YAML optionnel (CONFIG_PATH) puis variables d'environnement par-dessus.
    Lève ConfigError si une variable OAuth obligatoire manque, si le fichier
    est illisible ou si une valeur est invalide.
    """
    env = os.environ if env is None else env
    missing = [var for var in REQUIRED_ENV.values() if not (env.get(var) or "").strip()]
    if missing:
        raise ConfigError.missing_env(missing)
    merged = {**_read_yaml(env.get("CONFIG_PATH")), **_from_env(env)}
    try:
        return Settings(**merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}")
