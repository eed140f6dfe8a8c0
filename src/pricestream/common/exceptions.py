import logging
from abc import ABC
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)


class PriceStreamError(Exception, ABC):
    """Base exception for the price pipeline."""

    def __init__(self, message: str, response: Optional[aiohttp.ClientResponse] = None):
        super().__init__(message)
        self.response = response
        self._error_message: Optional[str] = None

    def __str__(self) -> str:
        base_message = super().__str__()
        if self.response is not None and self._error_message:
            return (
                f"{base_message} (Status: {self.response.status}, Message: {self._error_message})"
            )
        return base_message

    async def get_error_details(self) -> str:
        """Asynchronously get error details from response."""
        if self.response is not None:
            try:
                self._error_message = await self.response.text()
            except aiohttp.ClientError:
                self._error_message = "No detailed error message available."

            return f"(Status: {self.response.status}, Message: {self._error_message})"
        return ""


class SourceUnavailableError(PriceStreamError):
    """Raised when a price provider or credential cannot serve a request."""

    def __init__(self, source: str, response: Optional[aiohttp.ClientResponse] = None):
        super().__init__(f"Price source unavailable: {source}", response)
        self.source = source


class RateLimitedError(SourceUnavailableError):
    """Raised on HTTP 429 or a provider-declared rate limit."""

    def __init__(self, source: str, response: Optional[aiohttp.ClientResponse] = None):
        super().__init__(source, response)
        self.args = (f"Rate limited by price source: {source}",)


class BadRequestError(PriceStreamError):
    """Raised on 400 bad request errors."""

    def __init__(self, response: Optional[aiohttp.ClientResponse] = None):
        super().__init__("Bad request - Please check your input parameters", response)


class UnauthorizedError(PriceStreamError):
    """Raised on 401 and 403 authentication errors."""

    def __init__(self, response: Optional[aiohttp.ClientResponse] = None):
        super().__init__("UnauthorizedError - Please check your credentials", response)


class ServerError(PriceStreamError):
    """Raised on 5XX server errors."""

    def __init__(self, response: Optional[aiohttp.ClientResponse] = None):
        super().__init__("Server error - Please try again later", response)


class UnknownError(PriceStreamError):
    """Raised for unexpected errors."""

    def __init__(self, response: Optional[aiohttp.ClientResponse] = None):
        super().__init__("An unexpected error occurred", response)


class EncodingError(PriceStreamError):
    """Raised when a value does not fit the stream schema."""

    def __init__(self, context: str):
        super().__init__(f"Encoding error: {context}")


class LedgerWriteError(PriceStreamError):
    """Raised when the ledger rejects a write."""

    def __init__(self, context: str):
        super().__init__(f"Ledger write failed: {context}")


class WriteConfirmationError(LedgerWriteError):
    """Raised when a submitted write is reverted or never confirmed."""

    def __init__(self, tx_hash: str, context: str):
        super().__init__(f"{tx_hash}: {context}")
        self.tx_hash = tx_hash


class SigningCredentialError(PriceStreamError):
    """Raised when the writer identity cannot be loaded. Fatal at startup."""

    def __init__(self, context: str):
        super().__init__(f"Writer credential unavailable: {context}")


class PersistenceError(PriceStreamError):
    """Raised when the alert store cannot complete an operation."""

    def __init__(self, context: str):
        super().__init__(f"Persistence error: {context}")


class NotificationError(PriceStreamError):
    """Raised when a notification cannot be delivered."""

    def __init__(self, context: str, response: Optional[aiohttp.ClientResponse] = None):
        super().__init__(f"Notification failed: {context}", response)


async def validate_async_response(
    response: aiohttp.ClientResponse, source: str = "http"
) -> bool:
    """
    Map an aiohttp response status onto the pipeline exceptions.

    Args:
        response: The aiohttp ClientResponse object from the API call
        source: Name of the remote service, used in error messages

    Raises
        Various PriceStreamError subclasses based on the error condition
    """
    error_map = {
        400: BadRequestError,
        401: UnauthorizedError,
        403: UnauthorizedError,
        404: BadRequestError,
        500: ServerError,
        502: ServerError,
        503: ServerError,
        504: ServerError,
    }

    if 200 <= response.status < 300:
        return True

    if response.status == 429:
        logger.warning("Rate limited by %s", source)
        raise RateLimitedError(source, response)

    error_text = await response.text()

    if error_class := error_map.get(response.status):
        logger.error("API error from %s: %s - %s", source, response.status, error_text)
        raise error_class(response)

    logger.error("Unknown error from %s: %s - %s", source, response.status, error_text)
    raise UnknownError(response)


__all__ = [
    "PriceStreamError",
    "SourceUnavailableError",
    "RateLimitedError",
    "BadRequestError",
    "UnauthorizedError",
    "ServerError",
    "UnknownError",
    "EncodingError",
    "LedgerWriteError",
    "WriteConfirmationError",
    "SigningCredentialError",
    "PersistenceError",
    "NotificationError",
    "validate_async_response",
]
