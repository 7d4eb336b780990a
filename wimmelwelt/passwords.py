"""
Password hashing and classification of stored password values.

Stored passwords are either salted bcrypt hashes or legacy plaintext values
written before hashing was introduced. Both forms coexist in the database until
a legacy account logs in and is upgraded.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Optional, Union

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=10)


@dataclass(frozen=True)
class LegacyPlaintext:
    value: str

    def matches(self, password: str) -> bool:
        return secrets.compare_digest(
            self.value.encode("utf-8"), password.encode("utf-8")
        )


@dataclass(frozen=True)
class HashedPassword:
    value: str

    def matches(self, password: str) -> bool:
        try:
            return pwd_context.verify(password, self.value)
        except ValueError:
            # malformed hash behind a recognised prefix
            return False


StoredPassword = Union[LegacyPlaintext, HashedPassword]


def classify_password(stored: Optional[str]) -> Optional[StoredPassword]:
    """Tag a stored password string as hashed or legacy plaintext."""
    if not stored:
        return None
    if pwd_context.identify(stored, required=False):
        return HashedPassword(stored)
    return LegacyPlaintext(stored)


def hash_password(password: Optional[str]) -> Optional[str]:
    if not password:
        return None
    return pwd_context.hash(password)
