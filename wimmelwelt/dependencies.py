"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from fastapi import Depends

from wimmelwelt.accounts import AccountService
from wimmelwelt.auth import CredentialResolver
from wimmelwelt.config import get_settings
from wimmelwelt.db import DbClient, InMemoryDbClient, PostgresDbClient
from wimmelwelt.errors import StorageConfigurationError
from wimmelwelt.files import LOCAL_MODE, S3_MODE, FileStorageService
from wimmelwelt.mailer import Mailer, SmtpMailer
from wimmelwelt.messages import MessageService
from wimmelwelt.queue import (
    InMemoryNotificationQueue,
    NotificationQueue,
    RedisNotificationQueue,
)
from wimmelwelt.storage import (
    InMemoryStorageClient,
    LocalStorageClient,
    S3StorageClient,
    StorageClient,
)

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_queue_client: NotificationQueue | None = None
_mailer: Mailer | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so account and message state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(
            settings.database_url,
            connect_timeout_seconds=settings.database_connect_timeout_seconds,
        )
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _storage_client = InMemoryStorageClient()
    elif settings.storage_mode == LOCAL_MODE:
        _storage_client = LocalStorageClient(settings.local_upload_dir)
    else:
        if not settings.aws_s3_bucket:
            raise StorageConfigurationError()
        _storage_client = S3StorageClient(
            bucket=settings.aws_s3_bucket,
            region=settings.aws_region,
            endpoint=settings.aws_s3_endpoint,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            connect_timeout=settings.s3_connect_timeout_seconds,
            read_timeout=settings.s3_read_timeout_seconds,
            max_attempts=settings.s3_max_attempts,
        )
    return _storage_client


def get_file_storage(
    storage: StorageClient = Depends(get_storage_client),
) -> FileStorageService:
    settings = get_settings()
    mode = S3_MODE if settings.use_in_memory_backends else settings.storage_mode
    return FileStorageService(
        storage, mode=mode, max_file_size_bytes=settings.file_upload_max_bytes
    )


def get_queue_client() -> NotificationQueue:
    """
    Return a singleton queue client for dispatching notifications to workers.
    """
    global _queue_client
    if _queue_client:
        return _queue_client

    settings = get_settings()
    if settings.redis_url:
        _queue_client = RedisNotificationQueue(
            url=settings.redis_url,
            queue_key=settings.redis_queue_key,
        )
    else:
        _queue_client = InMemoryNotificationQueue()
    return _queue_client


def get_mailer() -> Mailer:
    global _mailer
    if _mailer:
        return _mailer

    settings = get_settings()
    _mailer = SmtpMailer(
        host=settings.smtp_host,
        port=settings.smtp_port,
        secure=settings.smtp_secure,
        username=settings.smtp_user,
        password=settings.smtp_pass,
        sender=settings.smtp_from,
        timeout=settings.smtp_timeout_seconds,
    )
    return _mailer


def get_account_service(
    db: DbClient = Depends(get_db_client),
    files: FileStorageService = Depends(get_file_storage),
) -> AccountService:
    return AccountService(db, files)


def get_credential_resolver(
    db: DbClient = Depends(get_db_client),
    files: FileStorageService = Depends(get_file_storage),
) -> CredentialResolver:
    return CredentialResolver(db, files)


def get_message_service(
    db: DbClient = Depends(get_db_client),
    files: FileStorageService = Depends(get_file_storage),
    queue: NotificationQueue = Depends(get_queue_client),
) -> MessageService:
    return MessageService(db, files, notifications=queue)
