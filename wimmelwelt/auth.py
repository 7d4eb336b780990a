"""
Credential resolution across the parent and caregiver account collections.
"""

from __future__ import annotations

import logging
from typing import Optional

from wimmelwelt.db import CAREGIVER_ROLE, PARENT_ROLE, AccountRecord, DbClient
from wimmelwelt.errors import UnauthorizedError
from wimmelwelt.files import FileStorageService
from wimmelwelt.passwords import LegacyPlaintext, classify_password, hash_password
from wimmelwelt.profiles import serialize_account

logger = logging.getLogger(__name__)

LOOKUP_ORDER = (PARENT_ROLE, CAREGIVER_ROLE)


class CredentialResolver:
    """
    Authenticates an email or username against parents first, then caregivers.

    A lookup miss and a wrong password raise the same UnauthorizedError so the
    response does not reveal which accounts exist.
    """

    def __init__(self, db: DbClient, files: Optional[FileStorageService] = None):
        self.db = db
        self.files = files

    def authenticate(self, identifier: str, password: str) -> dict:
        for role in LOOKUP_ORDER:
            record = self.db.find_account_by_identifier(role, identifier)
            if record and self.verify_and_upgrade(record, password):
                return serialize_account(record, self.files)
        raise UnauthorizedError("Invalid credentials.")

    def verify_and_upgrade(self, record: AccountRecord, password: str) -> bool:
        stored = classify_password(record.password)
        if stored is None or not password:
            return False
        if not stored.matches(password):
            return False
        if isinstance(stored, LegacyPlaintext):
            self._upgrade_legacy_password(record, password)
        return True

    def _upgrade_legacy_password(self, record: AccountRecord, password: str) -> None:
        hashed = hash_password(password)
        try:
            self.db.update_password(record.role, record.account_id, hashed)
        except Exception:
            logger.warning(
                "Could not upgrade legacy password for %s %s",
                record.role,
                record.account_id,
                exc_info=True,
            )
            return
        record.password = hashed
        logger.info("Upgraded legacy password for %s %s", record.role, record.account_id)
