"""
HTTP routes for the Wimmel Welt API.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import unquote

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import StreamingResponse

from wimmelwelt.accounts import AccountService
from wimmelwelt.auth import CredentialResolver
from wimmelwelt.config import Settings, get_settings
from wimmelwelt.db import CAREGIVER_ROLE, PARENT_ROLE
from wimmelwelt.dependencies import (
    get_account_service,
    get_credential_resolver,
    get_file_storage,
    get_message_service,
)
from wimmelwelt.errors import BadRequestError, NotFoundError, UnauthorizedError
from wimmelwelt.files import FileStorageService
from wimmelwelt.messages import MessageService
from wimmelwelt.schemas import (
    CaregiverPayload,
    LoginPayload,
    MessagePayload,
    ParentPayload,
    StatusResponse,
)
from wimmelwelt.session import AuthSession, clear_session, decode_session, persist_session
from wimmelwelt.storage import StoredObject

router = APIRouter()

MEMBERSHIP_INVOICE_NAME = "Wimmel-Welt-Mitgliedsbeitrag.pdf"


def _stream(stored: Optional[StoredObject], download_name: str | None = None) -> StreamingResponse:
    if stored is None:
        raise NotFoundError("File not found.")
    headers = {}
    if stored.content_length is not None:
        headers["Content-Length"] = str(stored.content_length)
    if download_name:
        headers["Content-Disposition"] = f'attachment; filename="{download_name}"'
    return StreamingResponse(stored.body, media_type=stored.content_type, headers=headers)


@router.post("/auth/login")
def login(
    payload: LoginPayload,
    response: Response,
    resolver: CredentialResolver = Depends(get_credential_resolver),
    settings: Settings = Depends(get_settings),
):
    if not payload.identifier or not payload.password:
        raise BadRequestError("Username or password missing.")
    user = resolver.authenticate(payload.identifier, payload.password)
    persist_session(response, AuthSession(account_id=user["id"], role=user["role"]), settings)
    return user


@router.get("/auth/me")
def current_user(
    request: Request,
    accounts: AccountService = Depends(get_account_service),
    settings: Settings = Depends(get_settings),
):
    session = decode_session(request.cookies.get(settings.session_cookie_name), settings)
    if not session:
        raise UnauthorizedError("Not logged in.")
    try:
        return accounts.get_account(session.role, session.account_id)
    except NotFoundError:
        raise UnauthorizedError("Not logged in.")


@router.post("/auth/logout", response_model=StatusResponse)
def logout(response: Response, settings: Settings = Depends(get_settings)):
    clear_session(response, settings)
    return StatusResponse(status="ok")


@router.post("/parents", status_code=201)
def create_parent(
    payload: ParentPayload, accounts: AccountService = Depends(get_account_service)
):
    return accounts.create_account(PARENT_ROLE, payload.to_data())


@router.get("/parents/{parent_id}")
def get_parent(parent_id: str, accounts: AccountService = Depends(get_account_service)):
    return accounts.get_account(PARENT_ROLE, parent_id)


@router.patch("/parents/{parent_id}")
def update_parent(
    parent_id: str,
    payload: ParentPayload,
    accounts: AccountService = Depends(get_account_service),
):
    return accounts.update_account(PARENT_ROLE, parent_id, payload.to_data())


@router.post("/caregivers", status_code=201)
def create_caregiver(
    payload: CaregiverPayload, accounts: AccountService = Depends(get_account_service)
):
    return accounts.create_account(CAREGIVER_ROLE, payload.to_data())


@router.get("/caregivers/{caregiver_id}")
def get_caregiver(
    caregiver_id: str, accounts: AccountService = Depends(get_account_service)
):
    return accounts.get_account(CAREGIVER_ROLE, caregiver_id)


@router.patch("/caregivers/{caregiver_id}")
def update_caregiver(
    caregiver_id: str,
    payload: CaregiverPayload,
    accounts: AccountService = Depends(get_account_service),
):
    return accounts.update_account(CAREGIVER_ROLE, caregiver_id, payload.to_data())


@router.get("/users/{user_id}")
def get_user(user_id: str, accounts: AccountService = Depends(get_account_service)):
    user = accounts.find_user(user_id)
    if not user:
        raise NotFoundError("User not found.")
    return user


@router.get("/files/{key:path}")
def stream_file(key: str, files: FileStorageService = Depends(get_file_storage)):
    key = unquote(key)
    if not key:
        raise BadRequestError("Invalid file path.")
    return _stream(files.fetch(key))


@router.get("/documents/membership-invoice")
def download_membership_invoice(
    files: FileStorageService = Depends(get_file_storage),
    settings: Settings = Depends(get_settings),
):
    if not settings.membership_invoice_key:
        raise NotFoundError("The receipt is currently unavailable.")
    return _stream(files.fetch(settings.membership_invoice_key), MEMBERSHIP_INVOICE_NAME)


@router.get("/messages")
def message_overview(
    participant_id: Optional[str] = Query(None, alias="participantId"),
    messages: MessageService = Depends(get_message_service),
):
    return messages.list_conversations(participant_id or "")


@router.get("/messages/{conversation_id}")
def list_messages(
    conversation_id: str, messages: MessageService = Depends(get_message_service)
):
    return messages.list_messages(conversation_id)


@router.post("/messages/{conversation_id}", status_code=201)
def send_message(
    conversation_id: str,
    payload: MessagePayload,
    messages: MessageService = Depends(get_message_service),
):
    data = payload.to_data()
    return messages.send_message(
        conversation_id,
        sender_id=payload.sender_id,
        recipient_id=payload.recipient_id,
        body=payload.body,
        attachments=data.get("attachments", []),
    )
