from __future__ import annotations

from typing import Any, TypeVar

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError

from app.core.config import get_settings, parse_group_ids
from app.db.bootstrap import ensure_promo_codes_table
from app.economy.promo.codes import format_promo_code, is_valid_promo_code, normalize_promo_code
from app.economy.promo.errors import (
    PromoCodeAllocationError,
    PromoCodeAlreadyRedeemedError,
    PromoCompensationError,
    PromoWalletCreditError,
)
from app.economy.promo.service import PromoCodeStore, PromoRedemptionService
from app.services.alerts import send_ops_alert
from app.services.analytics import EVENT_PROMO_CODE_CREATE, EVENT_PROMO_CODE_REDEEM, track_event
from app.services.client_auth import ClientAuthError, authenticate_request
from app.services.poster import add_ewallet_payment, get_client_by_id
from app.services.side_effects import spawn_detached
from app.workers.tasks.wallet_passes import enqueue_wallet_pass_refresh

from .promo_codes_models import (
    PromoCodeCreateRequest,
    PromoCodeCreateResponse,
    PromoCodePreviewResponse,
    PromoCodeRedeemRequest,
    PromoCodeRedeemResponse,
)

router = APIRouter(prefix="/promo-codes", tags=["promo-codes"])
logger = structlog.get_logger(__name__)

REDEEM_SUCCESS_MESSAGE = "Promo code redeemed"
WALLET_CREDIT_FAILED_MESSAGE = "Failed to credit e-wallet. Please try again."

PayloadT = TypeVar("PayloadT", bound=BaseModel)


def get_promo_code_store() -> PromoCodeStore:
    return PromoCodeStore()


def require_client_id(request: Request) -> int:
    try:
        return authenticate_request(request, secret=get_settings().jwt_secret)
    except ClientAuthError as exc:
        logger.info("promo_auth_failed", reason=exc.reason, path=request.url.path)
        raise HTTPException(status_code=401, detail={"code": "E_UNAUTHORIZED"}) from exc


async def require_team_client_id(client_id: int = Depends(require_client_id)) -> int:
    client = await get_client_by_id(client_id)
    team_group_ids = parse_group_ids(get_settings().team_group_ids)
    if client is None or client.client_groups_id not in team_group_ids:
        logger.warning("promo_create_forbidden", client_id=client_id)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})
    return client_id


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "E_PROMO_NOT_FOUND"})


def _already_redeemed() -> HTTPException:
    return HTTPException(status_code=400, detail={"code": "E_PROMO_ALREADY_REDEEMED"})


def _wallet_credit_failed() -> HTTPException:
    return HTTPException(
        status_code=500,
        detail={"code": "E_WALLET_CREDIT_FAILED", "message": WALLET_CREDIT_FAILED_MESSAGE},
    )


def _json_body(model: type[BaseModel]) -> dict[str, Any]:
    # Bodies are read in the handler, so the schema is declared by hand.
    return {
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": model.model_json_schema()}},
        }
    }


async def _read_payload(request: Request, model: type[PayloadT]) -> PayloadT:
    """Parse and validate the JSON body.

    Called from the handler body, after the auth dependencies have run, so an
    unauthenticated caller gets 401 even when the body is not valid JSON.
    """
    try:
        raw = await request.json()
    except ValueError as exc:
        raise RequestValidationError(
            [{"type": "json_invalid", "loc": ("body",), "msg": "JSON decode error"}]
        ) from exc
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise RequestValidationError(
            [{**error, "loc": ("body", *error["loc"])} for error in exc.errors()]
        ) from exc


@router.post("", response_model=PromoCodeCreateResponse, openapi_extra=_json_body(PromoCodeCreateRequest))
async def create_promo_code(
    request: Request,
    client_id: int = Depends(require_team_client_id),
    store: PromoCodeStore = Depends(get_promo_code_store),
) -> PromoCodeCreateResponse:
    payload = await _read_payload(request, PromoCodeCreateRequest)
    await ensure_promo_codes_table()
    try:
        created = await store.create(amount=payload.amount, created_by=client_id)
    except PromoCodeAllocationError as exc:
        spawn_detached(
            "promo_allocation_alert",
            send_ops_alert(
                event="promo_code_allocation_exhausted",
                payload={"created_by": client_id, "amount": payload.amount},
            ),
        )
        raise HTTPException(status_code=500, detail={"code": "E_PROMO_ALLOCATION_FAILED"}) from exc

    logger.info("promo_code_created", created_by=client_id, amount=created.amount)
    spawn_detached(
        "promo_create_tracked",
        track_event(
            distinct_id=str(client_id),
            event=EVENT_PROMO_CODE_CREATE,
            properties={"amount": created.amount},
        ),
    )
    return PromoCodeCreateResponse(
        code=created.code,
        amount=created.amount,
        created_at=created.created_at,
    )


@router.get("/{code}", response_model=PromoCodePreviewResponse)
async def preview_promo_code(
    code: str,
    _client_id: int = Depends(require_client_id),
    store: PromoCodeStore = Depends(get_promo_code_store),
) -> PromoCodePreviewResponse:
    normalized = normalize_promo_code(code)
    if not is_valid_promo_code(normalized):
        raise _not_found()

    await ensure_promo_codes_table()
    preview = await store.preview(normalized)
    if preview is None:
        raise _not_found()

    return PromoCodePreviewResponse(
        code=preview.code,
        amount=preview.amount,
        is_redeemed=preview.is_redeemed,
    )


@router.post("/redeem", response_model=PromoCodeRedeemResponse, openapi_extra=_json_body(PromoCodeRedeemRequest))
async def redeem_promo_code(
    request: Request,
    client_id: int = Depends(require_client_id),
    store: PromoCodeStore = Depends(get_promo_code_store),
) -> PromoCodeRedeemResponse:
    code = (await _read_payload(request, PromoCodeRedeemRequest)).code
    await ensure_promo_codes_table()

    # Only picks the error message; the conditional update decides the race.
    existing = await store.preview(code)
    if existing is None:
        raise _not_found()
    if existing.is_redeemed:
        raise _already_redeemed()

    service = PromoRedemptionService(store, credit_wallet=add_ewallet_payment)
    try:
        redeemed = await service.redeem_to_wallet(code, client_id=client_id)
    except PromoCodeAlreadyRedeemedError as exc:
        logger.info("promo_redeem_race_lost", promo_code=format_promo_code(code), client_id=client_id)
        raise _already_redeemed() from exc
    except PromoWalletCreditError as exc:
        raise _wallet_credit_failed() from exc
    except PromoCompensationError as exc:
        spawn_detached(
            "promo_compensation_alert",
            send_ops_alert(
                event="promo_redeem_compensation_failed",
                payload={
                    "promo_code": format_promo_code(code),
                    "client_id": client_id,
                    "amount": existing.amount,
                },
            ),
        )
        raise _wallet_credit_failed() from exc

    spawn_detached("wallet_pass_refresh", enqueue_wallet_pass_refresh(client_id))
    spawn_detached(
        "promo_redeem_tracked",
        track_event(
            distinct_id=str(client_id),
            event=EVENT_PROMO_CODE_REDEEM,
            properties={"amount": redeemed.amount},
        ),
    )
    return PromoCodeRedeemResponse(
        code=redeemed.code,
        amount=redeemed.amount,
        message=REDEEM_SUCCESS_MESSAGE,
    )
