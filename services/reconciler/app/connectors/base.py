# services/reconciler/app/connectors/base.py

from typing import Dict, Optional, Any
from dataclasses import dataclass, field

@dataclass(frozen=True)
class OAuthCredentials:
    """Zoho OAuth client credentials"""
    access_token: str
    refresh_token: str
    client_id: str
    client_secret: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary safe for logging"""
        return {
            "access_token": "***REDACTED***",
            "refresh_token": "***REDACTED***",
            "client_id": self.client_id,
            "client_secret": "***REDACTED***",  # Never log secrets
        }

@dataclass
class ZohoRequest:
    """A single Zoho Books API call, relative to the API base URL"""
    method: str
    path: str
    params: Dict[str, Any] = field(default_factory=dict)
    json: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def describe(self) -> str:
        return f"{self.method.upper()} {self.path}"
