"""Shared plumbing for providers that speak JSON over HTTP."""

from __future__ import annotations

from abc import abstractmethod
from typing import Any

import httpx

from .errors import ProviderError, ProviderFailure
from .interface import ProviderResult, QuoteProvider
from .models import Quote, validate_quote

DEFAULT_TIMEOUT = 5.0


class HttpQuoteProvider(QuoteProvider):
    """QuoteProvider backed by an ``httpx.AsyncClient``.

    Subclasses implement ``_fetch``, raising ProviderError on any problem;
    ``fetch_quote`` turns that into a failed ProviderResult. One request per
    call, no retries.
    """

    base_url: str

    def __init__(
        self,
        api_key: str | None,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def fetch_quote(self, symbol: str) -> ProviderResult:
        if not self.configured:
            return ProviderResult.fail(ProviderFailure.NOT_CONFIGURED, f"{self.name} has no API key")
        try:
            quote = await self._fetch(symbol.upper())
        except ProviderError as e:
            return ProviderResult.fail(e.failure, str(e))
        if not validate_quote(quote):
            return ProviderResult.fail(ProviderFailure.INVALID_PAYLOAD, f"Rejected invalid quote: {quote}")
        return ProviderResult.ok(quote)

    @abstractmethod
    async def _fetch(self, symbol: str) -> Quote:
        """Fetch and parse one quote. Raise ProviderError on failure."""

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # --- Internal ---

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self._timeout)
        return self._client

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        client = self._get_client()
        try:
            response = await client.get(path, params=params, timeout=self._timeout)
        except httpx.TimeoutException as e:
            raise ProviderError(f"{self.name} timed out: {e!r}", ProviderFailure.TIMEOUT) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} request failed: {e!r}", ProviderFailure.TRANSPORT) from e

        if not response.is_success:
            raise ProviderError(
                f"{self.name} returned HTTP {response.status_code}",
                ProviderFailure.BAD_STATUS,
            )
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"{self.name} returned non-JSON body", ProviderFailure.INVALID_PAYLOAD) from e
