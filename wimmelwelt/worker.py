"""
Worker loop that delivers new-message notifications queued by the API.

Run with ``python -m wimmelwelt.worker``. Each queue item is a message id.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from wimmelwelt.config import get_settings
from wimmelwelt.db import DbClient
from wimmelwelt.dependencies import get_db_client, get_mailer, get_queue_client
from wimmelwelt.mailer import Mailer
from wimmelwelt.notifications import notify_recipient_of_message
from wimmelwelt.queue import NotificationQueue

logger = logging.getLogger(__name__)


def process_next(
    *,
    db: Optional[DbClient] = None,
    queue: Optional[NotificationQueue] = None,
    mailer: Optional[Mailer] = None,
    block: bool = True,
    timeout: Optional[int] = None,
) -> bool:
    """
    Fetch and handle one notification from the queue. Returns True if an item was taken.
    """
    db = db or get_db_client()
    queue = queue or get_queue_client()
    mailer = mailer or get_mailer()

    message_id = queue.dequeue(block=block, timeout=timeout)
    if not message_id:
        return False

    message = db.get_message(message_id)
    if not message:
        logger.warning("Received message_id %s from queue but no DB record found", message_id)
        return True

    delivered = notify_recipient_of_message(db, mailer, message, get_settings().app_url)
    logger.info("[%s] notification delivered=%s", message_id, delivered)
    return True


def run_loop(poll_interval_seconds: float = 2.0) -> None:
    """
    Simple polling loop that blocks on the queue. Intended to be run under systemd/supervisor.
    """
    db = get_db_client()
    queue = get_queue_client()
    mailer = get_mailer()
    while True:
        try:
            processed = process_next(
                db=db, queue=queue, mailer=mailer, block=True, timeout=int(poll_interval_seconds)
            )
        except Exception:
            logger.exception("Notification worker iteration failed")
            processed = False
        if not processed:
            time.sleep(poll_interval_seconds)


if __name__ == "__main__":
    logging.basicConfig(level=get_settings().log_level.upper())
    run_loop()
