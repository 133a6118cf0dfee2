"""
Shared HTTP plumbing for provider clients

Every provider call goes through `ProviderClient._request`, which:
- uses a bounded httpx timeout (no automatic retries)
- runs inside the provider's circuit breaker
- maps httpx failures into the rankicard exception hierarchy
- records call metrics
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx
import pybreaker

from rankicard.config import EXTERNAL_API_TIMEOUT
from rankicard.exceptions import NetworkFailureError, StaleCredentialError, wrap_external_exception
from rankicard.models.progress import ProviderCredentials
from rankicard.resilience.circuit_breaker import with_circuit_breaker
from rankicard.resilience.metrics import record_api_call

logger = logging.getLogger(__name__)


class ProviderClient:
    """Base class for external provider clients"""

    name: str = "provider"
    service: str = "Provider"

    def __init__(
        self,
        api_url: str,
        token_url: str,
        client_id: str,
        client_secret: str,
        breaker: pybreaker.CircuitBreaker,
        timeout: float = EXTERNAL_API_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            api_url: Base URL of the provider REST API
            token_url: OAuth token endpoint used for refreshes
            client_id: OAuth client id
            client_secret: OAuth client secret
            breaker: Circuit breaker guarding this provider
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.api_url = api_url.rstrip("/")
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.breaker = breaker
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _request(self, method: str, url: str, operation: str, **kwargs: Any) -> Any:
        """
        Send one request and return the decoded JSON body

        Raises:
            StaleCredentialError: provider answered 401
            NetworkFailureError: timeout, transport error, other HTTP error,
                or the circuit is open
        """
        guarded = with_circuit_breaker(self.breaker)(self._send)
        try:
            return await guarded(method, url, operation, **kwargs)
        except pybreaker.CircuitBreakerError as e:
            raise NetworkFailureError(
                message=f"{self.service} circuit is open",
                service=self.service,
                operation=operation,
                cause=e,
                user_message=f"{self.service} is unavailable right now. Please try again later.",
            )

    async def _send(self, method: str, url: str, operation: str, **kwargs: Any) -> Any:
        start = time.monotonic()
        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPStatusError, httpx.TransportError) as e:
            record_api_call(self.breaker.name, success=False, duration=time.monotonic() - start)
            raise wrap_external_exception(e, operation=operation, service=self.service)
        except ValueError as e:
            # Body wasn't JSON
            record_api_call(self.breaker.name, success=False, duration=time.monotonic() - start)
            raise NetworkFailureError(
                message=f"{self.service} returned an unreadable response: {e}",
                service=self.service,
                operation=operation,
                cause=e,
            )

        record_api_call(self.breaker.name, success=True, duration=time.monotonic() - start)
        return data

    async def _get(self, path: str, access_token: str, params: Dict[str, Any], operation: str) -> Any:
        return await self._request(
            "GET",
            f"{self.api_url}{path}",
            operation,
            params=params,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    # ============================================
    # Token refresh
    # ============================================

    def _refresh_request(self, refresh_token: str) -> Dict[str, Any]:
        """Keyword arguments for the refresh POST (provider specific)"""
        return {
            "data": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            }
        }

    def _parse_token_response(self, data: Dict[str, Any], refresh_token: str, now_ts: int) -> ProviderCredentials:
        expires_at = data.get("expires_at")
        if expires_at is None:
            expires_at = now_ts + int(data.get("expires_in", 0))
        return ProviderCredentials(
            provider=self.name,
            access_token=data["access_token"],
            # Providers may omit the refresh token when it didn't rotate
            refresh_token=data.get("refresh_token") or refresh_token,
            expires_at=int(expires_at),
        )

    async def refresh(self, refresh_token: str, now_ts: Optional[int] = None) -> ProviderCredentials:
        """
        Exchange a refresh token for fresh credentials

        A rejected refresh token (400/401) means the user has to reconnect.
        """
        now_ts = int(now_ts if now_ts is not None else time.time())
        try:
            data = await self._request("POST", self.token_url, "refresh_token", **self._refresh_request(refresh_token))
        except NetworkFailureError as e:
            if e.status_code in (400, 401):
                raise StaleCredentialError(
                    message=f"{self.service} rejected the refresh token",
                    service=self.service,
                    status_code=e.status_code,
                    operation="refresh_token",
                    cause=e,
                )
            raise

        try:
            credentials = self._parse_token_response(data, refresh_token, now_ts)
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkFailureError(
                message=f"{self.service} token response is missing fields: {e}",
                service=self.service,
                operation="refresh_token",
                cause=e,
            )

        logger.info(f"Refreshed {self.service} access token (expires at {credentials.expires_at})")
        return credentials
