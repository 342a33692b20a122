from __future__ import annotations

import argparse
import asyncio

from app.db.bootstrap import ensure_promo_codes_table
from app.db.models.promo_codes import PROMO_AMOUNT_MAX, PROMO_AMOUNT_MIN
from app.db.session import dispose_engine
from app.economy.promo.codes import format_promo_code, is_valid_promo_code, normalize_promo_code
from app.economy.promo.service import PromoCodeStore


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Promo code operator tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create", help="Issue a new promo code")
    create.add_argument("--amount", type=int, required=True, help="Minor currency units")
    create.add_argument("--created-by", type=int, required=True, help="Poster client id")

    show = subparsers.add_parser("show", help="Print a promo code record")
    show.add_argument("code")

    release = subparsers.add_parser(
        "release",
        help="Clear the redemption of a code whose wallet credit never landed",
    )
    release.add_argument("code")
    release.add_argument("--confirm", action="store_true")
    return parser.parse_args(argv)


def _normalize_code_arg(raw_code: str) -> str:
    normalized = normalize_promo_code(raw_code)
    if not is_valid_promo_code(normalized):
        raise ValueError(f"invalid promo code format: {raw_code}")
    return normalized


async def _create(store: PromoCodeStore, args: argparse.Namespace) -> int:
    if not PROMO_AMOUNT_MIN <= args.amount <= PROMO_AMOUNT_MAX:
        raise ValueError(f"--amount must be in range {PROMO_AMOUNT_MIN}..{PROMO_AMOUNT_MAX}")
    created = await store.create(amount=args.amount, created_by=args.created_by)
    print(f"code={created.code} amount={created.amount} created_at={created.created_at.isoformat()}")  # noqa: T201
    return 0


async def _show(store: PromoCodeStore, args: argparse.Namespace) -> int:
    promo_code = await store.get(_normalize_code_arg(args.code))
    if promo_code is None:
        print(f"not_found code={args.code}")  # noqa: T201
        return 1
    redeemed_at = promo_code.redeemed_at.isoformat() if promo_code.redeemed_at else "-"
    print(  # noqa: T201
        f"code={format_promo_code(promo_code.code)} amount={promo_code.amount} "
        f"created_by={promo_code.created_by} redeemed_by={promo_code.redeemed_by or '-'} "
        f"redeemed_at={redeemed_at}"
    )
    return 0


async def _release(store: PromoCodeStore, args: argparse.Namespace) -> int:
    code = _normalize_code_arg(args.code)
    promo_code = await store.get(code)
    if promo_code is None:
        print(f"not_found code={args.code}")  # noqa: T201
        return 1
    if promo_code.redeemed_by is None:
        print(f"not_redeemed code={format_promo_code(code)}")  # noqa: T201
        return 0
    if not args.confirm:
        print(  # noqa: T201
            f"dry_run code={format_promo_code(code)} redeemed_by={promo_code.redeemed_by}; "
            "check the Poster e-wallet first, then rerun with --confirm"
        )
        return 2

    await store.unredeem(code)
    print(f"released code={format_promo_code(code)} previous_redeemed_by={promo_code.redeemed_by}")  # noqa: T201
    return 0


COMMANDS = {
    "create": _create,
    "show": _show,
    "release": _release,
}


async def _run(argv: list[str] | None = None, *, store: PromoCodeStore | None = None) -> int:
    args = _parse_args(argv)
    await ensure_promo_codes_table()
    try:
        return await COMMANDS[args.command](store or PromoCodeStore(), args)
    finally:
        await dispose_engine()


def main(argv: list[str] | None = None) -> int:
    return asyncio.run(_run(argv))


if __name__ == "__main__":
    raise SystemExit(main())
