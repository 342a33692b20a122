from __future__ import annotations

import jwt
import pytest
from starlette.requests import Request

from app.services.client_auth import (
    ClientAuthError,
    authenticate_request,
    decode_client_id,
    extract_bearer_token,
    issue_client_token,
)

SECRET = "unit-test-secret"


def _request(*, query: str = "", headers: dict[str, str] | None = None) -> Request:
    raw_headers = [(key.lower().encode(), value.encode()) for key, value in (headers or {}).items()]
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/promo-codes/ABC-123",
            "query_string": query.encode(),
            "headers": raw_headers,
        }
    )


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ("Bearer abc.def.ghi", "abc.def.ghi"),
        ("Bearer   abc ", "abc"),
        ("Bearer ", None),
        ("Basic abc", None),
        (None, None),
    ],
)
def test_extract_bearer_token(header: str | None, expected: str | None) -> None:
    assert extract_bearer_token(header) == expected


def test_issued_token_decodes_to_client_id() -> None:
    assert decode_client_id(issue_client_token(42, secret=SECRET), secret=SECRET) == 42


@pytest.mark.parametrize(
    "claims",
    [
        {"sub": "not-a-number"},
        {"sub": "0"},
        {"sub": "-3"},
        {},
    ],
)
def test_decode_rejects_bad_subjects(claims: dict[str, str]) -> None:
    token = jwt.encode(claims, SECRET, algorithm="HS256")

    with pytest.raises(ClientAuthError) as exc_info:
        decode_client_id(token, secret=SECRET)

    assert exc_info.value.reason == "invalid_subject"


def test_decode_rejects_foreign_signature() -> None:
    token = issue_client_token(42, secret="other")

    with pytest.raises(ClientAuthError) as exc_info:
        decode_client_id(token, secret=SECRET)

    assert exc_info.value.reason == "invalid_token"


def test_decode_rejects_expired_token() -> None:
    token = jwt.encode({"sub": "42", "exp": 1}, SECRET, algorithm="HS256")

    with pytest.raises(ClientAuthError):
        decode_client_id(token, secret=SECRET)


def test_query_param_wins_over_header() -> None:
    query_token = issue_client_token(1, secret=SECRET)
    header_token = issue_client_token(2, secret=SECRET)
    request = _request(
        query=f"authenticationToken={query_token}",
        headers={"Authorization": f"Bearer {header_token}"},
    )

    assert authenticate_request(request, secret=SECRET) == 1


def test_session_cookie_is_a_token_source() -> None:
    token = issue_client_token(7, secret=SECRET)
    request = _request(headers={"Cookie": f"tolo_session={token}"})

    assert authenticate_request(request, secret=SECRET) == 7


def test_missing_token() -> None:
    with pytest.raises(ClientAuthError) as exc_info:
        authenticate_request(_request(), secret=SECRET)

    assert exc_info.value.reason == "missing_token"
