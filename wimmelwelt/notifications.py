"""
E-mail notifications for new messages.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from wimmelwelt.db import ROLES, AccountRecord, DbClient, MessageRecord
from wimmelwelt.mailer import Mailer

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 180
FALLBACK_DISPLAY_NAME = "A Wimmel Welt member"
ATTACHMENTS_ONLY_BODY = "New attachments were sent."


def find_account(db: DbClient, account_id: str) -> Optional[AccountRecord]:
    for role in ROLES:
        record = db.get_account(role, account_id)
        if record:
            return record
    return None


def display_name(record: Optional[AccountRecord]) -> str:
    profile = record.profile if record else {}
    full_name = " ".join(
        part for part in (profile.get("firstName"), profile.get("lastName")) if part
    ).strip()
    return (
        full_name
        or profile.get("daycareName")
        or profile.get("name")
        or FALLBACK_DISPLAY_NAME
    )


def message_preview(body: Optional[str]) -> str:
    preview = re.sub(r"\s+", " ", body or "").strip()
    if len(preview) > PREVIEW_LENGTH:
        return f"{preview[:PREVIEW_LENGTH]}…"
    return preview


def build_notification(
    recipient: AccountRecord,
    sender: Optional[AccountRecord],
    body: str,
    app_url: str,
) -> tuple[str, str]:
    sender_name = display_name(sender)
    preview = message_preview(body)
    lines = [
        f"Hello {display_name(recipient)},",
        "",
        f"{sender_name} sent you a new message on Wimmel Welt.",
    ]
    if preview:
        lines += ["", f'"{preview}"', ""]
    lines += [
        f"You can reply directly in your family centre: {app_url}",
        "",
        "Best wishes",
        "Your Wimmel Welt team",
    ]
    return f"New message from {sender_name}", "\n".join(lines)


def notify_recipient_of_message(
    db: DbClient, mailer: Mailer, message: MessageRecord, app_url: str
) -> bool:
    try:
        recipient = find_account(db, message.recipient_id)
        if not recipient or not recipient.email:
            logger.info("No e-mail address for recipient %s", message.recipient_id)
            return False
        sender = find_account(db, message.sender_id)
        body = message.body or (ATTACHMENTS_ONLY_BODY if message.attachments else "")
        subject, text = build_notification(recipient, sender, body, app_url)
        return mailer.send(recipient.email, subject, text)
    except Exception:
        logger.exception("Notification for message %s failed", message.message_id)
        return False
