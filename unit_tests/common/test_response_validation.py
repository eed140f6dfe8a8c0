"""Tests for HTTP status mapping onto pipeline exceptions."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from pricestream.common.exceptions import (
    BadRequestError,
    LedgerWriteError,
    PriceStreamError,
    RateLimitedError,
    ServerError,
    SourceUnavailableError,
    UnauthorizedError,
    UnknownError,
    WriteConfirmationError,
    validate_async_response,
)


def make_response(status: int, text: str = "details") -> MagicMock:
    response = MagicMock()
    response.status = status
    response.text = AsyncMock(return_value=text)
    return response


@pytest.mark.asyncio
async def test_success_statuses_pass() -> None:
    for status in (200, 201, 204):
        assert await validate_async_response(make_response(status)) is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,error_class",
    [
        (400, BadRequestError),
        (401, UnauthorizedError),
        (403, UnauthorizedError),
        (404, BadRequestError),
        (429, RateLimitedError),
        (500, ServerError),
        (503, ServerError),
        (418, UnknownError),
    ],
)
async def test_error_statuses(status: int, error_class: type) -> None:
    with pytest.raises(error_class):
        await validate_async_response(make_response(status), source="coingecko")


@pytest.mark.asyncio
async def test_rate_limit_is_source_unavailable() -> None:
    with pytest.raises(SourceUnavailableError) as exc_info:
        await validate_async_response(make_response(429), source="coingecko")

    assert exc_info.value.source == "coingecko"
    assert "coingecko" in str(exc_info.value)


@pytest.mark.asyncio
async def test_error_details_from_response() -> None:
    error = ServerError(make_response(502, "bad gateway"))

    details = await error.get_error_details()

    assert details == "(Status: 502, Message: bad gateway)"
    assert "bad gateway" in str(error)


def test_hierarchy() -> None:
    assert issubclass(WriteConfirmationError, LedgerWriteError)
    assert issubclass(LedgerWriteError, PriceStreamError)
    error = WriteConfirmationError("0xabc", "reverted")
    assert error.tx_hash == "0xabc"
    assert "0xabc: reverted" in str(error)
