"""Error types for the quote distribution subsystem."""

from __future__ import annotations

from enum import Enum


class ProviderFailure(Enum):
    """Why a single provider call did not produce a quote."""

    TIMEOUT = "timeout"
    BAD_STATUS = "bad_status"
    INVALID_SYMBOL = "invalid_symbol"
    INVALID_PAYLOAD = "invalid_payload"
    TRANSPORT = "transport"
    NOT_CONFIGURED = "not_configured"


class QuoteHubError(Exception):
    """Base class for all quotehub errors."""


class ProviderError(QuoteHubError):
    """A provider call failed.

    Only raised inside provider implementations; the provider turns it into
    a failed ``ProviderResult`` so callers never see it.
    """

    def __init__(self, message: str, failure: ProviderFailure = ProviderFailure.TRANSPORT) -> None:
        super().__init__(message)
        self.failure = failure


class SimulationError(QuoteHubError):
    """The price generator was given an invalid seed (price <= 0)."""


class BusError(QuoteHubError):
    """Publish/subscribe operation on the message bus failed."""


class StoreError(QuoteHubError):
    """Registry or cache operation on the shared store failed."""


class AuthError(QuoteHubError):
    """Access token missing, invalid or expired."""


class InvalidRequestError(QuoteHubError):
    """Caller supplied input that is rejected before any work is dispatched."""


class InvalidSymbolError(InvalidRequestError):
    """Symbol is empty or too long."""


class InvalidBatchError(InvalidRequestError):
    """Symbol batch is empty or exceeds the batch limit."""
