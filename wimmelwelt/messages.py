"""
Messaging between parents and caregivers.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from wimmelwelt.db import DbClient, MessageRecord
from wimmelwelt.errors import BadRequestError
from wimmelwelt.files import FileStorageService
from wimmelwelt.queue import NotificationQueue

logger = logging.getLogger(__name__)

DEFAULT_ATTACHMENT_NAME = "Attachment"


def _iso(value: float) -> str:
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


class MessageService:
    def __init__(
        self,
        db: DbClient,
        files: FileStorageService,
        notifications: Optional[NotificationQueue] = None,
    ):
        self.db = db
        self.files = files
        self.notifications = notifications

    def serialize(self, record: MessageRecord) -> dict:
        return {
            "id": record.message_id,
            "conversationId": record.conversation_id,
            "participants": record.participants,
            "senderId": record.sender_id,
            "recipientId": record.recipient_id,
            "body": record.body,
            "attachments": [
                ref.as_dict()
                for ref in (self.files.normalize(a) for a in record.attachments)
                if ref
            ],
            "createdAt": _iso(record.created_at),
            "updatedAt": _iso(record.updated_at),
        }

    def list_messages(self, conversation_id: str) -> list[dict]:
        return [self.serialize(m) for m in self.db.list_messages(conversation_id)]

    def list_conversations(self, participant_id: str) -> list[dict]:
        if not participant_id:
            raise BadRequestError("participantId is required.")
        return [self.serialize(m) for m in self.db.list_conversations(participant_id)]

    def send_message(
        self,
        conversation_id: str,
        sender_id: Optional[str],
        recipient_id: Optional[str],
        body: Optional[str],
        attachments: Optional[list] = None,
    ) -> dict:
        text = body.strip() if isinstance(body, str) else ""
        attachments = attachments if isinstance(attachments, list) else []
        if not conversation_id or not sender_id or not recipient_id or (
            not text and not attachments
        ):
            raise BadRequestError("Missing required message fields.")

        stored = self._store_attachments(conversation_id, attachments)
        record = MessageRecord(
            conversation_id=conversation_id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            body=text,
            attachments=stored,
        )
        try:
            self.db.save_message(record)
        except Exception:
            for attachment in stored:
                self.files.remove(attachment)
            raise

        self._schedule_notification(record)
        return self.serialize(record)

    def _store_attachments(self, conversation_id: str, attachments: list) -> list[dict]:
        stored: list[dict] = []
        try:
            for attachment in attachments:
                if not isinstance(attachment, dict) or not attachment.get("data"):
                    continue
                mime_type = attachment.get("mimeType")
                ref = self.files.store(
                    attachment["data"],
                    attachment.get("name") or attachment.get("fileName"),
                    f"messages/attachments/{conversation_id}",
                    mime_type.split("/")[-1] if mime_type else "",
                )
                if not ref:
                    continue
                entry = ref.as_dict()
                entry["mimeType"] = entry["mimeType"] or mime_type
                entry["fileName"] = entry["fileName"] or DEFAULT_ATTACHMENT_NAME
                stored.append(entry)
        except Exception:
            for entry in stored:
                self.files.remove(entry)
            raise
        return stored

    def _schedule_notification(self, record: MessageRecord) -> None:
        if self.notifications is None:
            return
        try:
            self.notifications.enqueue(record.message_id)
        except Exception:
            logger.exception(
                "Failed to queue notification for message %s", record.message_id
            )
