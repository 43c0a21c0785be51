from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import settings


bearer = HTTPBearer(auto_error=False)


@dataclass(slots=True)
class AuthUser:
    user_id: int
    email: str = ""
    roles: list[str] = field(default_factory=list)


def _decode_token(token: str) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "algorithms": [settings.jwt_algorithm],
        "leeway": settings.jwt_exp_leeway_seconds,
    }

    if settings.jwt_audience:
        kwargs["audience"] = settings.jwt_audience
    else:
        kwargs["options"] = {"verify_aud": False}

    if settings.jwt_issuer:
        kwargs["issuer"] = settings.jwt_issuer

    try:
        payload = jwt.decode(token, settings.jwt_secret, **kwargs)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    return payload


def _parse_user_id(raw: Any) -> int:
    if isinstance(raw, bool):
        raise HTTPException(status_code=401, detail="Invalid user id claim")
    try:
        user_id = int(str(raw).strip())
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=401, detail="Invalid user id claim") from exc
    if user_id < 1:
        raise HTTPException(status_code=401, detail="Invalid user id claim")
    return user_id


def _parse_roles(raw: Any) -> list[str]:
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, list):
        return []
    return [str(r).strip().lower() for r in raw if str(r).strip()]


def _parse_payload(payload: dict[str, Any]) -> AuthUser:
    raw_id = payload.get("sub") or payload.get("user_id")
    if raw_id is None:
        raise HTTPException(status_code=401, detail="Token has no subject")

    return AuthUser(
        user_id=_parse_user_id(raw_id),
        email=str(payload.get("email") or "").strip().lower(),
        roles=_parse_roles(payload.get("roles") or []),
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    x_user_roles: str | None = Header(default=None, alias="X-User-Roles"),
) -> AuthUser:
    if credentials is not None:
        return _parse_payload(_decode_token(credentials.credentials))

    if x_user_id:
        # Trusted gateway headers; the proxy in front is responsible for them.
        return AuthUser(user_id=_parse_user_id(x_user_id), roles=_parse_roles(x_user_roles or ""))

    raise HTTPException(status_code=401, detail="Missing bearer token or X-User-Id header")


def require_role(user: AuthUser, allowed: set[str]) -> None:
    if not allowed.intersection(set(user.roles)):
        raise HTTPException(status_code=403, detail="Forbidden")
