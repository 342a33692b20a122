from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import httpx
import pytest

from app.services import poster


class _Response:
    def __init__(self, body: object, *, status_code: int = 200) -> None:
        self._body = body
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            request = httpx.Request("POST", "https://poster.example.local")
            raise httpx.HTTPStatusError(
                "error",
                request=request,
                response=httpx.Response(self.status_code, request=request),
            )

    def json(self) -> object:
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class _Client:
    def __init__(self, calls: list[dict[str, Any]], response: _Response | Exception) -> None:
        self._calls = calls
        self._response = response

    async def __aenter__(self) -> "_Client":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        return None

    async def _respond(self) -> _Response:
        if isinstance(self._response, Exception):
            raise self._response
        return self._response

    async def get(self, url: str, params: dict[str, object]) -> _Response:
        self._calls.append({"method": "GET", "url": url, "params": params})
        return await self._respond()

    async def post(self, url: str, params: dict[str, object], json: dict[str, object]) -> _Response:
        self._calls.append({"method": "POST", "url": url, "params": params, "json": json})
        return await self._respond()


def _patch(monkeypatch, response: _Response | Exception) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(
        poster,
        "get_settings",
        lambda: SimpleNamespace(
            poster_token="poster-token",
            poster_api_base_url="https://poster.example.local/api/",
            poster_timeout_seconds=2.0,
        ),
    )
    monkeypatch.setattr(poster.httpx, "AsyncClient", lambda timeout: _Client(calls, response))
    return calls


@pytest.mark.asyncio
async def test_get_client_by_id_parses_first_record(monkeypatch) -> None:
    calls = _patch(
        monkeypatch,
        _Response({"response": [{"client_id": "5", "client_groups_id": "8", "firstname": "Mia"}]}),
    )

    client = await poster.get_client_by_id(5)

    assert client == poster.PosterClient(client_id=5, client_groups_id=8, name="Mia")
    assert calls[0]["url"] == "https://poster.example.local/api/clients.getClient"
    assert calls[0]["params"] == {"client_id": 5, "token": "poster-token"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        _Response({"response": []}),
        _Response({"error": {"code": 10, "message": "Client not found"}}),
        _Response({}, status_code=502),
        _Response(ValueError("not json")),
        httpx.ConnectError("unreachable"),
    ],
)
async def test_get_client_by_id_treats_failures_as_unknown(monkeypatch, response) -> None:
    _patch(monkeypatch, response)

    assert await poster.get_client_by_id(5) is None


@pytest.mark.asyncio
async def test_add_ewallet_payment_sends_major_units(monkeypatch) -> None:
    calls = _patch(monkeypatch, _Response({"response": 1}))

    await poster.add_ewallet_payment(client_id=5, amount=50_000)

    assert calls[0]["url"] == "https://poster.example.local/api/clients.addEWalletPayment"
    assert calls[0]["json"] == {"client_id": 5, "amount": 500.0, "type": 1}


@pytest.mark.asyncio
async def test_add_ewallet_payment_raises_on_provider_error(monkeypatch) -> None:
    _patch(monkeypatch, _Response({"error": "Client is blocked"}))

    with pytest.raises(poster.PosterApiError, match="Client is blocked"):
        await poster.add_ewallet_payment(client_id=5, amount=50_000)


@pytest.mark.asyncio
async def test_add_ewallet_payment_raises_on_http_status(monkeypatch) -> None:
    _patch(monkeypatch, _Response({}, status_code=500))

    with pytest.raises(poster.PosterApiError):
        await poster.add_ewallet_payment(client_id=5, amount=50_000)


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [httpx.ReadTimeout("slow"), asyncio.TimeoutError()])
async def test_add_ewallet_payment_timeout_is_distinct(monkeypatch, error: Exception) -> None:
    _patch(monkeypatch, error)

    with pytest.raises(poster.PosterTimeoutError):
        await poster.add_ewallet_payment(client_id=5, amount=50_000)
