"""
Document builders and serializers for parent and caregiver profiles.

Builders take the camelCase payload sent by the app and whitelist, trim and
coerce its fields. Serializers turn an AccountRecord into the public JSON shape,
without the password.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional

from wimmelwelt.db import CAREGIVER_ROLE, PARENT_ROLE, AccountRecord

ALLOWED_GENDERS = {"male", "female", "diverse"}

SINGLE_FILE_FIELDS = ("profileImageUrl", "logoImageUrl", "conceptUrl")
FILE_LIST_FIELDS = ("roomImages", "caregiverImages")

IDENTITY_FIELDS = ("email", "username", "password")


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = value.strip() if isinstance(value, str) else str(value).strip()
    return text or None


def _to_int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def years_since(value: Any, today: Optional[date] = None) -> Optional[int]:
    """Whole years elapsed since ``value``, or None for unparseable or future dates."""
    start = _parse_date(value)
    if not start:
        return None
    today = today or date.today()
    years = today.year - start.year
    if (today.month, today.day) < (start.month, start.day):
        years -= 1
    return years if years >= 0 else None


def _full_name(data: dict) -> Optional[str]:
    parts = [_clean(data.get("firstName")), _clean(data.get("lastName"))]
    return " ".join(p for p in parts if p) or None


def _iso_timestamp(value: float) -> str:
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


def sanitize_children(children: Any) -> list[dict]:
    if not isinstance(children, list):
        return []
    result = []
    for child in children:
        if not isinstance(child, dict):
            continue
        name = _clean(child.get("name"))
        if not name:
            continue
        gender = child.get("gender")
        result.append(
            {
                "name": name,
                "age": _clean(child.get("age")),
                "gender": gender if gender in ALLOWED_GENDERS else None,
                "notes": _clean(child.get("notes")),
            }
        )
    return result


def normalize_schedule(entries: Any) -> list[dict]:
    if not isinstance(entries, list):
        return []
    result = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        item = {
            "startTime": _clean(entry.get("startTime")) or "",
            "endTime": _clean(entry.get("endTime")) or "",
            "activity": _clean(entry.get("activity")) or "",
        }
        if item["startTime"] and item["endTime"] and item["activity"]:
            result.append(item)
    return result


def _clean_list(values: Any) -> list[str]:
    if not isinstance(values, list):
        return []
    return [v for v in (_clean(value) for value in values) if v]


def _date_or_none(value: Any) -> Optional[str]:
    parsed = _parse_date(value)
    return parsed.isoformat() if parsed else None


def build_parent_document(data: dict) -> dict:
    children = sanitize_children(data.get("children"))
    number_of_children = _to_int(
        data.get("numberOfChildren", len(children) or 1), default=None
    ) or len(children) or 1
    return {
        "name": _full_name(data) or _clean(data.get("name")),
        "firstName": _clean(data.get("firstName")),
        "lastName": _clean(data.get("lastName")),
        "email": _clean(data.get("email")),
        "phone": _clean(data.get("phone")),
        "address": _clean(data.get("address")),
        "postalCode": _clean(data.get("postalCode")),
        "username": _clean(data.get("username")) or _clean(data.get("email")),
        "password": data.get("password"),
        "numberOfChildren": number_of_children,
        "childrenAges": _clean(data.get("childrenAges")),
        "notes": _clean(data.get("notes")),
        "children": children,
        "profileImageUrl": data.get("profileImageUrl"),
    }


def build_parent_update(data: dict) -> dict:
    update: dict = {}
    for key in ("firstName", "lastName", "email", "phone", "address", "postalCode",
                "username", "childrenAges", "notes"):
        if key in data:
            update[key] = _clean(data[key])
    if "name" in data:
        update["name"] = _clean(data["name"])
    elif "firstName" in data or "lastName" in data:
        update["name"] = _full_name(data)
    if "password" in data:
        update["password"] = data["password"]
    if "children" in data:
        update["children"] = sanitize_children(data["children"])
        update["numberOfChildren"] = len(update["children"])
    elif "numberOfChildren" in data:
        update["numberOfChildren"] = _to_int(data["numberOfChildren"])
    if "profileImageUrl" in data:
        update["profileImageUrl"] = data["profileImageUrl"]
    return update


def build_caregiver_document(data: dict) -> dict:
    birth_date = _date_or_none(data.get("birthDate"))
    if birth_date:
        age = years_since(birth_date)
    else:
        age = _to_int(data.get("age"), default=None) or None
    return {
        "name": _full_name(data) or _clean(data.get("name")),
        "firstName": _clean(data.get("firstName")),
        "lastName": _clean(data.get("lastName")),
        "email": _clean(data.get("email")),
        "phone": _clean(data.get("phone")),
        "address": _clean(data.get("address")),
        "postalCode": _clean(data.get("postalCode")),
        "city": _clean(data.get("city")),
        "daycareName": _clean(data.get("daycareName")),
        "availableSpots": _to_int(data.get("availableSpots", 0)),
        "childrenCount": _to_int(data.get("childrenCount", 0)),
        "age": age,
        "birthDate": birth_date,
        "caregiverSince": _date_or_none(data.get("caregiverSince")),
        "maxChildAge": _to_int(data.get("maxChildAge"), default=None) or None,
        "hasAvailability": _to_bool(data.get("hasAvailability")),
        "bio": _clean(data.get("bio")),
        "shortDescription": _clean(data.get("shortDescription")),
        "location": data.get("location"),
        "careTimes": normalize_schedule(data.get("careTimes")),
        "dailySchedule": normalize_schedule(data.get("dailySchedule")),
        "mealPlan": _clean(data.get("mealPlan")),
        "roomImages": list(data.get("roomImages") or []),
        "caregiverImages": list(data.get("caregiverImages") or []),
        "closedDays": _clean_list(data.get("closedDays")),
        "username": _clean(data.get("username")) or _clean(data.get("email")),
        "password": data.get("password"),
        "profileImageUrl": data.get("profileImageUrl"),
        "logoImageUrl": data.get("logoImageUrl"),
        "conceptUrl": data.get("conceptUrl"),
    }


def build_caregiver_update(data: dict) -> dict:
    update: dict = {}
    for key in ("firstName", "lastName", "email", "phone", "address", "postalCode",
                "city", "daycareName", "bio", "shortDescription", "mealPlan",
                "username"):
        if key in data:
            update[key] = _clean(data[key])
    if "name" in data:
        update["name"] = _clean(data["name"])
    elif "firstName" in data or "lastName" in data:
        update["name"] = _full_name(data)
    for key in ("availableSpots", "childrenCount"):
        if key in data:
            update[key] = _to_int(data[key])
    if "age" in data:
        update["age"] = _to_int(data["age"], default=None) or None
    if "birthDate" in data:
        update["birthDate"] = _date_or_none(data["birthDate"])
        if update["birthDate"]:
            update["age"] = years_since(update["birthDate"])
    if "caregiverSince" in data:
        update["caregiverSince"] = _date_or_none(data["caregiverSince"])
    if "maxChildAge" in data:
        update["maxChildAge"] = _to_int(data["maxChildAge"], default=None) or None
    if "hasAvailability" in data:
        update["hasAvailability"] = _to_bool(data["hasAvailability"])
    if "location" in data:
        update["location"] = data["location"]
    for key in ("careTimes", "dailySchedule"):
        if key in data:
            update[key] = normalize_schedule(data[key])
    if "closedDays" in data:
        update["closedDays"] = _clean_list(data["closedDays"])
    for key in ("password", "profileImageUrl", "logoImageUrl", "conceptUrl",
                "roomImages", "caregiverImages"):
        if key in data:
            update[key] = data[key]
    return update


def split_identity(document: dict) -> tuple[dict, dict]:
    """Separate the login fields from the rest of the profile."""
    identity = {key: document.get(key) for key in IDENTITY_FIELDS if key in document}
    profile = {k: v for k, v in document.items() if k not in IDENTITY_FIELDS}
    return identity, profile


def _normalize_refs(profile: dict, normalize) -> None:
    for key in SINGLE_FILE_FIELDS:
        if key in profile:
            ref = normalize(profile[key])
            profile[key] = ref.as_dict() if ref else None
    for key in FILE_LIST_FIELDS:
        if key in profile:
            entries: Iterable = profile[key] if isinstance(profile[key], list) else []
            refs = (normalize(entry) for entry in entries)
            profile[key] = [ref.as_dict() for ref in refs if ref]


def serialize_account(record: Optional[AccountRecord], files=None) -> Optional[dict]:
    """Public representation of an account. Never includes the password."""
    if record is None:
        return None
    profile = dict(record.profile)
    profile.pop("password", None)
    if files is not None:
        _normalize_refs(profile, files.normalize)
    if record.role == CAREGIVER_ROLE:
        if profile.get("birthDate"):
            age = years_since(profile["birthDate"])
            if age is not None:
                profile["age"] = age
        if profile.get("caregiverSince"):
            years = years_since(profile["caregiverSince"])
            if years is not None:
                profile["yearsOfExperience"] = years
    return {
        "id": record.account_id,
        **profile,
        "email": record.email,
        "username": record.username,
        "role": record.role,
        "createdAt": _iso_timestamp(record.created_at),
        "updatedAt": _iso_timestamp(record.updated_at),
    }


DOCUMENT_BUILDERS = {
    PARENT_ROLE: build_parent_document,
    CAREGIVER_ROLE: build_caregiver_document,
}

UPDATE_BUILDERS = {
    PARENT_ROLE: build_parent_update,
    CAREGIVER_ROLE: build_caregiver_update,
}
