# services/reconciler/app/connectors/token_store.py

import asyncio
from typing import Dict, Any, Optional
from datetime import datetime, timezone

import httpx

from .base import OAuthCredentials
from shared.exceptions import TokenRefreshError
from shared.logging_config import get_logger, sanitize_log_data
from shared.metrics import TOKEN_REFRESHES

logger = get_logger(__name__)

class TokenStore:
    """
    Owns the Zoho access token for the process.

    Refreshes are serialized by a lock; a caller holding a token that another
    request already replaced gets the new token without a second exchange.
    """

    def __init__(self, credentials: OAuthCredentials, accounts_url: str, http_client: httpx.AsyncClient):
        self._credentials = credentials
        self._access_token = credentials.access_token
        self._token_url = f"{accounts_url.rstrip('/')}/oauth/v2/token"
        self._http = http_client
        self._lock = asyncio.Lock()
        self.refresh_count = 0
        self.last_refreshed_at: Optional[datetime] = None
        logger.info("Token store initialized", extra={'credentials': credentials.to_dict()})

    def get_current(self) -> str:
        """Current access token"""
        return self._access_token

    async def refresh_and_get(self, stale_token: Optional[str] = None) -> str:
        """
        Refresh the access token and return the new value

        Args:
            stale_token: Token the caller saw rejected. If it has already been
                replaced, the current token is returned as is.

        Raises:
            TokenRefreshError: The identity provider rejected the exchange
        """
        async with self._lock:
            if stale_token is not None and stale_token != self._access_token:
                logger.info("Access token already refreshed by a concurrent request")
                return self._access_token

            await self._refresh()
            return self._access_token

    async def refresh(self) -> None:
        """Exchange the refresh token for a new access token"""
        await self.refresh_and_get()

    async def _refresh(self) -> None:
        params = {
            'refresh_token': self._credentials.refresh_token,
            'client_id': self._credentials.client_id,
            'client_secret': self._credentials.client_secret,
            'grant_type': 'refresh_token'
        }

        logger.info("Refreshing Zoho access token", extra={'params': sanitize_log_data(params)})

        try:
            response = await self._http.post(self._token_url, params=params)
        except httpx.HTTPError as e:
            TOKEN_REFRESHES.labels(status='error').inc()
            logger.error(f"Failed to refresh Zoho token: {e}")
            raise TokenRefreshError(f"Failed to refresh Zoho token: {e}") from e

        if not response.is_success:
            TOKEN_REFRESHES.labels(status='error').inc()
            logger.error(f"Failed to refresh Zoho token: {response.status_code} - {response.text}")
            raise TokenRefreshError(
                f"Failed to refresh Zoho token: HTTP {response.status_code}",
                status_code=response.status_code
            )

        try:
            token_data = response.json()
        except ValueError as e:
            TOKEN_REFRESHES.labels(status='error').inc()
            raise TokenRefreshError("Failed to refresh Zoho token: invalid JSON response") from e

        access_token = token_data.get('access_token') if isinstance(token_data, dict) else None
        if not access_token:
            # Zoho reports a bad refresh token as 200 {"error": "invalid_code"}
            TOKEN_REFRESHES.labels(status='error').inc()
            error = token_data.get('error', 'missing access_token') if isinstance(token_data, dict) else 'missing access_token'
            logger.error(f"Failed to refresh Zoho token: {error}")
            raise TokenRefreshError(f"Failed to refresh Zoho token: {error}")

        self._access_token = access_token
        self.refresh_count += 1
        self.last_refreshed_at = datetime.now(timezone.utc)
        TOKEN_REFRESHES.labels(status='success').inc()
        logger.info("Zoho access token refreshed", extra={'expires_in': token_data.get('expires_in')})

    async def health_check(self) -> Dict[str, Any]:
        """Token state for the health endpoint"""
        return {
            'status': 'healthy' if self._access_token else 'unhealthy',
            'refresh_count': self.refresh_count,
            'last_refreshed_at': self.last_refreshed_at.isoformat() if self.last_refreshed_at else None
        }
