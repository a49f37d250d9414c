"""OAuth client-credentials token cache for the marketplace REST APIs."""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
import structlog

from listingwatch.config import PLACEHOLDER_CREDENTIALS, settings
from listingwatch.core.exceptions import CredentialsNotConfigured, TransientFetchError

logger = structlog.get_logger(__name__)

# Refresh this many seconds before the upstream expiry
EXPIRY_SAFETY_MARGIN = 60


@dataclass
class CachedToken:
    value: str
    expires_at: float


class TokenCache:
    """Caches one bearer token and refreshes it shortly before expiry.

    Refresh is single-flight: concurrent callers that find the token stale
    wait on the same lock, and only the first performs the exchange.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        token_url: Optional[str] = None,
        scope: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
        timeout: Optional[float] = None,
    ):
        self.client_id = settings.EBAY_APP_ID if client_id is None else client_id
        self.client_secret = settings.EBAY_CERT_ID if client_secret is None else client_secret
        self.token_url = token_url or settings.ebay_oauth_url
        self.scope = scope or settings.EBAY_OAUTH_SCOPE
        self._transport = transport
        self._clock = clock
        self._timeout = timeout or settings.API_REQUEST_TIMEOUT
        self._token: Optional[CachedToken] = None
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def is_configured(self) -> bool:
        return (
            self.client_id not in PLACEHOLDER_CREDENTIALS
            and self.client_secret not in PLACEHOLDER_CREDENTIALS
        )

    def _valid_token(self) -> Optional[str]:
        if self._token and self._clock() < self._token.expires_at:
            return self._token.value
        return None

    async def get_token(self) -> str:
        """Return a valid bearer token, refreshing it when stale.

        Raises:
            CredentialsNotConfigured: If app id / cert id are missing
            TransientFetchError: If the token exchange fails
        """
        if not self.is_configured:
            raise CredentialsNotConfigured("marketplace oauth")

        token = self._valid_token()
        if token:
            return token

        async with self._lock:
            # Another caller may have refreshed while we waited
            token = self._valid_token()
            if token:
                return token
            return await self._refresh()

    def invalidate(self) -> None:
        """Drop the cached token so the next call refreshes it."""
        self._token = None

    async def _refresh(self) -> str:
        logger.info("oauth_token_requested", token_url=self.token_url)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.token_url,
                    auth=(self.client_id, self.client_secret),
                    data={"grant_type": "client_credentials", "scope": self.scope},
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
                response.raise_for_status()
                token_data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "oauth_token_http_error",
                status_code=e.response.status_code,
                error=str(e),
            )
            raise TransientFetchError(
                "marketplace oauth", str(e), status_code=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            logger.error("oauth_token_request_failed", error=str(e))
            raise TransientFetchError("marketplace oauth", str(e)) from e

        access_token = token_data.get("access_token")
        if not access_token:
            raise TransientFetchError("marketplace oauth", "response carried no access_token")

        expires_in = int(token_data.get("expires_in", 7200))
        self._token = CachedToken(
            value=access_token,
            expires_at=self._clock() + expires_in - EXPIRY_SAFETY_MARGIN,
        )
        self.refresh_count += 1
        logger.info("oauth_token_acquired", expires_in=expires_in)
        return access_token
