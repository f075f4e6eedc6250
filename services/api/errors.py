# services/api/errors.py
from typing import Any, Dict, Optional

class MetricsError(Exception):
    """Erreur connue : porte son code HTTP et le corps JSON renvoyé au client."""
    status_code = 500

    def payload(self) -> Dict[str, Any]:
        return {"error": str(self)}

class ValidationError(MetricsError):
    status_code = 400

class UpstreamAuthError(MetricsError):
    def __init__(self, status: Optional[int], body: str):
        self.status = status
        self.body = body
        super().__init__(f"Token refresh failed: {status} {body}")

class UpstreamRequestError(MetricsError):
    def __init__(self, status: int, path: str, body: str):
        self.status = status
        self.path = path
        self.body = body
        super().__init__(f"{path} failed: {status} {body}")

class IncompleteDataError(MetricsError):
    status_code = 502

    def __init__(self, raw: Dict[str, Any], message: str = "Incomplete market data"):
        self.raw = raw
        super().__init__(message)

    def payload(self) -> Dict[str, Any]:
        return {"error": str(self), "raw": self.raw}
