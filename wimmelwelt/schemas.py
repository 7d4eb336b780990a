"""
Pydantic schemas for the Wimmel Welt API.

Request bodies use the camelCase keys sent by the mobile app. Services receive
``payload.to_data()``, a camelCase dict holding only the keys the client sent, so
that partial updates can tell an omitted field from an explicit null.
"""

from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    def to_data(self) -> dict:
        return self.model_dump(by_alias=True, exclude_unset=True)


class LoginPayload(BaseModel):
    identifier: Optional[str] = None
    password: Optional[str] = None


class StatusResponse(BaseModel):
    status: Literal["ok"]


class ChildPayload(CamelModel):
    name: Optional[str] = None
    age: Optional[Union[str, int]] = None
    gender: Optional[str] = None
    notes: Optional[str] = None


class SchedulePayload(CamelModel):
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    activity: Optional[str] = None


class GalleryItemPayload(CamelModel):
    key: Optional[str] = None
    url: Optional[str] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    uploaded_at: Optional[str] = None
    data_url: Optional[str] = None


class AccountPayload(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    profile_image: Optional[str] = None
    profile_image_name: Optional[str] = None


class ParentPayload(AccountPayload):
    number_of_children: Optional[Union[int, str]] = None
    children_ages: Optional[str] = None
    notes: Optional[str] = None
    children: Optional[Union[list[ChildPayload], str]] = None


class CaregiverPayload(AccountPayload):
    city: Optional[str] = None
    daycare_name: Optional[str] = None
    available_spots: Optional[Union[int, str]] = None
    children_count: Optional[Union[int, str]] = None
    age: Optional[Union[int, str]] = None
    birth_date: Optional[str] = None
    caregiver_since: Optional[str] = None
    max_child_age: Optional[Union[int, str]] = None
    has_availability: Optional[Union[bool, str]] = None
    bio: Optional[str] = None
    short_description: Optional[str] = None
    location: Optional[dict[str, Any]] = None
    care_times: Optional[list[SchedulePayload]] = None
    daily_schedule: Optional[list[SchedulePayload]] = None
    meal_plan: Optional[str] = None
    closed_days: Optional[list[str]] = None
    logo_image: Optional[str] = None
    logo_image_name: Optional[str] = None
    concept_file: Optional[str] = None
    concept_file_name: Optional[str] = None
    room_images: Optional[list[Union[str, GalleryItemPayload]]] = None
    caregiver_images: Optional[list[Union[str, GalleryItemPayload]]] = None


class AttachmentPayload(CamelModel):
    data: Optional[str] = None
    name: Optional[str] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None


class MessagePayload(CamelModel):
    sender_id: Optional[str] = None
    recipient_id: Optional[str] = None
    body: Optional[str] = None
    attachments: list[AttachmentPayload] = Field(default_factory=list)
