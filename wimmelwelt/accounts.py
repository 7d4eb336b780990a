"""
Registration, lookup and update of parent and caregiver accounts.

Uploads embedded in a payload (profile image, logo, concept PDF, galleries) are
stored first and replaced by FileReference dicts before the account is written.
When an upload replaces an older file, the old file is removed only after the
account write succeeded.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from wimmelwelt.db import (
    CAREGIVER_ROLE,
    PARENT_ROLE,
    ROLES,
    AccountRecord,
    DbClient,
)
from wimmelwelt.errors import (
    BadRequestError,
    ConflictError,
    DuplicateRecordError,
    NotFoundError,
)
from wimmelwelt.files import FileReference, FileStorageService, references_equal
from wimmelwelt.passwords import hash_password
from wimmelwelt.profiles import (
    DOCUMENT_BUILDERS,
    UPDATE_BUILDERS,
    serialize_account,
    split_identity,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = {
    PARENT_ROLE: ("email", "phone", "postalCode", "username", "password"),
    CAREGIVER_ROLE: ("email", "phone", "address", "postalCode", "username", "password"),
}

CONFLICT_MESSAGES = {
    PARENT_ROLE: "A parent profile already exists for these credentials.",
    CAREGIVER_ROLE: "A caregiver profile already exists for these credentials.",
}

NOT_FOUND_MESSAGES = {
    PARENT_ROLE: "Parent profile not found.",
    CAREGIVER_ROLE: "Caregiver profile not found.",
}


@dataclass(frozen=True)
class UploadSlot:
    payload_key: str
    name_key: Optional[str]
    field: str
    folder: str
    fallback_extension: str


SINGLE_UPLOADS = {
    PARENT_ROLE: (
        UploadSlot("profileImage", "profileImageName", "profileImageUrl",
                   "parents/profile-images", "png"),
    ),
    CAREGIVER_ROLE: (
        UploadSlot("profileImage", "profileImageName", "profileImageUrl",
                   "caregivers/profile-images", "png"),
        UploadSlot("logoImage", "logoImageName", "logoImageUrl",
                   "caregivers/logos", "png"),
        UploadSlot("conceptFile", "conceptFileName", "conceptUrl",
                   "caregivers/concepts", "pdf"),
    ),
}

GALLERY_UPLOADS = {
    PARENT_ROLE: (),
    CAREGIVER_ROLE: (
        UploadSlot("roomImages", None, "roomImages", "caregivers/room-gallery", "png"),
        UploadSlot("caregiverImages", None, "caregiverImages",
                   "caregivers/team-gallery", "png"),
    ),
}


def parse_children(children: Any) -> list:
    if not children:
        return []
    if isinstance(children, str):
        try:
            parsed = json.loads(children)
        except ValueError:
            logger.warning("Failed to parse children payload")
            return []
        return parsed if isinstance(parsed, list) else []
    return children if isinstance(children, list) else []


def deduplicate_references(refs: list[FileReference]) -> list[FileReference]:
    result: list[FileReference] = []
    for ref in refs:
        if ref and not any(references_equal(existing, ref) for existing in result):
            result.append(ref)
    return result


class _UploadBatch:
    """Tracks files stored during one request and files to drop once it succeeds."""

    def __init__(self, files: FileStorageService):
        self.files = files
        self.stored: list[FileReference] = []
        self.obsolete: list[Any] = []

    def store(self, value: Any, name: Optional[str], slot: UploadSlot) -> Optional[FileReference]:
        ref = self.files.store(value, name, slot.folder, slot.fallback_extension)
        if ref:
            self.stored.append(ref)
        return ref

    def rollback(self) -> None:
        for ref in self.stored:
            self.files.remove(ref)

    def commit(self) -> None:
        for ref in self.obsolete:
            self.files.remove(ref)


class AccountService:
    def __init__(self, db: DbClient, files: FileStorageService):
        self.db = db
        self.files = files

    def serialize(self, record: Optional[AccountRecord]) -> Optional[dict]:
        return serialize_account(record, self.files)

    def create_account(self, role: str, data: dict) -> dict:
        _check_role(role)
        missing = [name for name in REQUIRED_FIELDS[role] if not data.get(name)]
        if missing:
            raise BadRequestError(f"Missing required fields: {', '.join(missing)}")

        data = dict(data)
        if role == PARENT_ROLE:
            data["children"] = parse_children(data.get("children"))

        batch = _UploadBatch(self.files)
        try:
            for slot in SINGLE_UPLOADS[role]:
                data[slot.field] = _as_dict(
                    batch.store(data.get(slot.payload_key), _name(data, slot), slot)
                )
            for slot in GALLERY_UPLOADS[role]:
                items = data.get(slot.payload_key)
                refs = self._build_gallery(items if isinstance(items, list) else [], slot, batch)
                data[slot.field] = [ref.as_dict() for ref in refs]

            identity, profile = split_identity(DOCUMENT_BUILDERS[role](data))
            record = AccountRecord(
                role=role,
                email=identity.get("email"),
                username=identity.get("username"),
                password=hash_password(identity.get("password")),
                profile=profile,
            )
            self.db.insert_account(record)
        except DuplicateRecordError:
            batch.rollback()
            raise ConflictError(CONFLICT_MESSAGES[role])
        except Exception:
            batch.rollback()
            raise
        return self.serialize(record)

    def get_account(self, role: str, account_id: str) -> dict:
        _check_role(role)
        record = self.db.get_account(role, account_id)
        if not record:
            raise NotFoundError(NOT_FOUND_MESSAGES[role])
        return self.serialize(record)

    def find_user(self, account_id: str) -> Optional[dict]:
        for role in ROLES:
            record = self.db.get_account(role, account_id)
            if record:
                return self.serialize(record)
        return None

    def update_account(self, role: str, account_id: str, data: dict) -> dict:
        _check_role(role)
        existing = self.db.get_account(role, account_id)
        if not existing:
            raise NotFoundError(NOT_FOUND_MESSAGES[role])

        data = dict(data)
        if role == PARENT_ROLE and "children" in data:
            data["children"] = parse_children(data["children"])

        batch = _UploadBatch(self.files)
        try:
            for slot in SINGLE_UPLOADS[role]:
                self._replace_single(existing, data, slot, batch)
            for slot in GALLERY_UPLOADS[role]:
                self._replace_gallery(existing, data, slot, batch)

            identity, profile_update = split_identity(UPDATE_BUILDERS[role](data))
            profile = {**existing.profile, **profile_update}
            updated = self.db.update_account(
                role,
                account_id,
                email=identity.get("email") or None,
                username=identity.get("username") or None,
                password=hash_password(identity.get("password")),
                profile=profile,
            )
        except DuplicateRecordError:
            batch.rollback()
            raise ConflictError(CONFLICT_MESSAGES[role])
        except Exception:
            batch.rollback()
            raise

        if updated is None:
            batch.rollback()
            raise NotFoundError(NOT_FOUND_MESSAGES[role])
        batch.commit()
        return self.serialize(updated)

    def _replace_single(
        self, existing: AccountRecord, data: dict, slot: UploadSlot, batch: _UploadBatch
    ) -> None:
        if slot.payload_key not in data:
            data.pop(slot.field, None)
            return
        value = data[slot.payload_key]
        previous = existing.profile.get(slot.field)
        if value is None or value == "null":
            data[slot.field] = None
        elif isinstance(value, str):
            data[slot.field] = _as_dict(batch.store(value, _name(data, slot), slot))
        else:
            data.pop(slot.field, None)
            return
        if previous:
            batch.obsolete.append(previous)

    def _replace_gallery(
        self, existing: AccountRecord, data: dict, slot: UploadSlot, batch: _UploadBatch
    ) -> None:
        if slot.payload_key not in data:
            return
        items = data[slot.payload_key]
        requested = self._build_gallery(items if isinstance(items, list) else [], slot, batch)
        current = [
            ref
            for ref in (self.files.normalize(entry) for entry in existing.profile.get(slot.field) or [])
            if ref
        ]
        for ref in current:
            if not any(references_equal(ref, kept) for kept in requested):
                batch.obsolete.append(ref)
        data[slot.field] = [ref.as_dict() for ref in requested]

    def _build_gallery(
        self, items: list, slot: UploadSlot, batch: _UploadBatch
    ) -> list[FileReference]:
        refs: list[FileReference] = []
        for item in items:
            if isinstance(item, dict) and item.get("dataUrl"):
                ref = batch.store(item["dataUrl"], item.get("fileName"), slot)
            else:
                ref = self.files.normalize(item)
            if ref:
                refs.append(ref)
        return deduplicate_references(refs)


def _check_role(role: str) -> None:
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role!r}")


def _name(data: dict, slot: UploadSlot) -> Optional[str]:
    return data.get(slot.name_key) if slot.name_key else None


def _as_dict(ref: Optional[FileReference]) -> Optional[dict]:
    return ref.as_dict() if ref else None
