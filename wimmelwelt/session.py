"""
Signed session cookie carrying the logged-in account's id and role.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Response
from jose import JWTError, jwt

from wimmelwelt.config import Settings
from wimmelwelt.db import ROLES

ALGORITHM = "HS256"


@dataclass(frozen=True)
class AuthSession:
    account_id: str
    role: str


def encode_session(session: AuthSession, settings: Settings) -> str:
    now = int(time.time())
    claims = {
        "id": session.account_id,
        "role": session.role,
        "iat": now,
        "exp": now + settings.session_max_age_seconds,
    }
    return jwt.encode(claims, settings.session_secret, algorithm=ALGORITHM)


def decode_session(token: Optional[str], settings: Settings) -> Optional[AuthSession]:
    if not token:
        return None
    try:
        claims = jwt.decode(token, settings.session_secret, algorithms=[ALGORITHM])
    except JWTError:
        return None
    account_id = claims.get("id")
    role = claims.get("role")
    if not isinstance(account_id, str) or not account_id or role not in ROLES:
        return None
    return AuthSession(account_id=account_id, role=role)


def persist_session(response: Response, session: AuthSession, settings: Settings) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        encode_session(session, settings),
        max_age=settings.session_max_age_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )


def clear_session(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        settings.session_cookie_name,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )
