from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from app.core.config import get_settings

logger = structlog.get_logger(__name__)

EWALLET_PAYMENT_TYPE_CASH = 1


class PosterApiError(Exception):
    pass


class PosterTimeoutError(PosterApiError):
    """The request timed out; the provider may still have applied it."""


@dataclass(frozen=True, slots=True)
class PosterClient:
    client_id: int
    client_groups_id: int | None
    name: str | None = None


def _base_url() -> str:
    return get_settings().poster_api_base_url.rstrip("/")


def _timeout() -> float:
    return float(get_settings().poster_timeout_seconds)


def _unwrap(body: object, *, default_error: str) -> Any:
    if isinstance(body, dict):
        if body.get("response") is not None:
            return body["response"]
        error = body.get("error")
        if error:
            raise PosterApiError(str(error))
    raise PosterApiError(default_error)


def _parse_group_id(raw: object) -> int | None:
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


async def get_client_by_id(client_id: int) -> PosterClient | None:
    """Look up a client in the Poster directory; any failure reads as unknown."""
    settings = get_settings()
    try:
        async with httpx.AsyncClient(timeout=_timeout()) as client:
            response = await client.get(
                f"{_base_url()}/clients.getClient",
                params={"client_id": client_id, "token": settings.poster_token},
            )
            response.raise_for_status()
            clients = _unwrap(response.json(), default_error="Failed to get client")
    except Exception:
        logger.warning("poster_get_client_failed", client_id=client_id, exc_info=True)
        return None

    if not isinstance(clients, list) or not clients:
        return None
    record = clients[0]
    if not isinstance(record, dict):
        return None
    return PosterClient(
        client_id=client_id,
        client_groups_id=_parse_group_id(record.get("client_groups_id")),
        name=(record.get("firstname") or record.get("client_name") or None),
    )


async def add_ewallet_payment(*, client_id: int, amount: int) -> None:
    """Credit ``amount`` minor units to the client's e-wallet.

    Poster takes major currency units. No idempotency key is available, so a
    timeout leaves the outcome unknown.
    """
    settings = get_settings()
    body = {
        "client_id": client_id,
        "amount": amount / 100,
        "type": EWALLET_PAYMENT_TYPE_CASH,
    }
    try:
        async with httpx.AsyncClient(timeout=_timeout()) as client:
            response = await asyncio.wait_for(
                client.post(
                    f"{_base_url()}/clients.addEWalletPayment",
                    params={"token": settings.poster_token},
                    json=body,
                ),
                timeout=_timeout(),
            )
            response.raise_for_status()
            _unwrap(response.json(), default_error="Failed to add e-wallet payment")
    except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
        logger.error(
            "promo_wallet_credit_outcome_unknown",
            client_id=client_id,
            amount=amount,
        )
        raise PosterTimeoutError("e-wallet payment timed out") from exc
    except PosterApiError:
        raise
    except (httpx.HTTPError, ValueError) as exc:
        raise PosterApiError("e-wallet payment failed") from exc
