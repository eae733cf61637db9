# services/reconciler/app/connectors/zoho_books.py

from typing import Dict, Any, Optional

import httpx

from .base import ZohoRequest
from .token_store import TokenStore
from shared.exceptions import ZohoRequestError
from shared.logging_config import get_logger
from shared.metrics import ZOHO_REQUESTS

logger = get_logger(__name__)

class ZohoBooksClient:
    """Zoho Books REST client that recovers from an expired access token"""

    def __init__(
        self,
        base_url: str,
        organization_id: str,
        token_store: TokenStore,
        http_client: httpx.AsyncClient,
        invalid_token_code: int = 57
    ):
        self.base_url = base_url.rstrip('/')
        self.organization_id = organization_id
        self.token_store = token_store
        self.invalid_token_code = invalid_token_code
        self._http = http_client

    async def execute(self, request: ZohoRequest, allow_retry: bool = True) -> Dict[str, Any]:
        """
        Issue an authenticated request and return the decoded body

        On an authentication failure the token is refreshed and the request is
        retried exactly once with ``allow_retry=False``.

        Raises:
            ZohoRequestError: Non-auth failure, or auth failure after the retry
            TokenRefreshError: The refresh itself failed
        """
        token = self.token_store.get_current()
        headers = {**request.headers, 'Authorization': f'Zoho-oauthtoken {token}'}
        params = {**request.params, 'organization_id': self.organization_id}

        try:
            response = await self._http.request(
                request.method,
                f"{self.base_url}{request.path}",
                params=params,
                json=request.json,
                headers=headers
            )
        except httpx.HTTPError as e:
            ZOHO_REQUESTS.labels(method=request.method.upper(), status='transport_error').inc()
            logger.error(f"API request failed: {request.describe()} - {e}")
            raise ZohoRequestError(f"API request failed: {request.describe()} - {e}") from e

        ZOHO_REQUESTS.labels(method=request.method.upper(), status=str(response.status_code)).inc()

        if response.is_success:
            try:
                return response.json()
            except ValueError as e:
                raise ZohoRequestError(
                    f"API request failed: {request.describe()} returned invalid JSON",
                    status_code=response.status_code
                ) from e

        error_data = self._error_body(response)

        if self._is_token_expired(response.status_code, error_data) and allow_retry:
            logger.info("Access token expired or invalid. Refreshing token and retrying request...")
            await self.token_store.refresh_and_get(stale_token=token)
            return await self.execute(request, allow_retry=False)

        logger.error(f"API request failed: {request.describe()} - {response.status_code}", extra={
            'status_code': response.status_code,
            'response': error_data
        })
        raise ZohoRequestError(
            f"API request failed: {request.describe()} returned HTTP {response.status_code}",
            status_code=response.status_code,
            response_data=error_data
        )

    async def get(self, path: str, params: Dict[str, Any] = None) -> Dict[str, Any]:
        return await self.execute(ZohoRequest('GET', path, params=params or {}))

    async def post(self, path: str, json: Dict[str, Any], params: Dict[str, Any] = None) -> Dict[str, Any]:
        return await self.execute(ZohoRequest('POST', path, params=params or {}, json=json))

    def _is_token_expired(self, status_code: int, error_data: Optional[Any]) -> bool:
        if status_code == 401:
            return True
        return isinstance(error_data, dict) and error_data.get('code') == self.invalid_token_code

    @staticmethod
    def _error_body(response: httpx.Response) -> Optional[Any]:
        try:
            return response.json()
        except ValueError:
            return response.text or None
