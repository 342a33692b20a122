from __future__ import annotations

import jwt
from fastapi import Request

SESSION_COOKIE = "tolo_session"
TOKEN_QUERY_PARAM = "authenticationToken"
JWT_ALGORITHM = "HS256"


class ClientAuthError(Exception):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def extract_bearer_token(authorization_header: str | None) -> str | None:
    if not authorization_header or not authorization_header.startswith("Bearer "):
        return None
    token = authorization_header[len("Bearer ") :].strip()
    return token or None


def extract_request_token(request: Request) -> str | None:
    return (
        request.query_params.get(TOKEN_QUERY_PARAM)
        or extract_bearer_token(request.headers.get("Authorization"))
        or request.cookies.get(SESSION_COOKIE)
        or None
    )


def decode_client_id(token: str, *, secret: str) -> int:
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as exc:
        raise ClientAuthError("invalid_token") from exc

    subject = payload.get("sub")
    try:
        client_id = int(subject)
    except (TypeError, ValueError) as exc:
        raise ClientAuthError("invalid_subject") from exc
    if client_id <= 0:
        raise ClientAuthError("invalid_subject")
    return client_id


def authenticate_request(request: Request, *, secret: str) -> int:
    token = extract_request_token(request)
    if token is None:
        raise ClientAuthError("missing_token")
    return decode_client_id(token, secret=secret)


def issue_client_token(client_id: int, *, secret: str) -> str:
    return jwt.encode({"sub": str(client_id)}, secret, algorithm=JWT_ALGORITHM)
