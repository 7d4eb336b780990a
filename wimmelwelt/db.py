"""
Database abstraction for Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import copy
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

from sqlalchemy import (
    JSON,
    Column,
    Float,
    String,
    UniqueConstraint,
    create_engine,
    or_,
    select,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from wimmelwelt.errors import DuplicateRecordError

PARENT_ROLE = "parent"
CAREGIVER_ROLE = "caregiver"
ROLES = (PARENT_ROLE, CAREGIVER_ROLE)


class DbClient(Protocol):
    """Interface for database access."""

    def find_account_by_identifier(
        self, role: str, identifier: str
    ) -> Optional["AccountRecord"]:
        ...

    def get_account(self, role: str, account_id: str) -> Optional["AccountRecord"]:
        ...

    def insert_account(self, record: "AccountRecord") -> "AccountRecord":
        ...

    def update_account(
        self,
        role: str,
        account_id: str,
        *,
        email: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        profile: Optional[dict] = None,
    ) -> Optional["AccountRecord"]:
        ...

    def update_password(self, role: str, account_id: str, password: str) -> None:
        ...

    def save_message(self, record: "MessageRecord") -> "MessageRecord":
        ...

    def get_message(self, message_id: str) -> Optional["MessageRecord"]:
        ...

    def list_messages(self, conversation_id: str) -> list["MessageRecord"]:
        ...

    def list_conversations(self, participant_id: str) -> list["MessageRecord"]:
        ...


@dataclass
class AccountRecord:
    role: str
    email: Optional[str]
    username: Optional[str]
    password: Optional[str]
    profile: dict = field(default_factory=dict)
    account_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())


@dataclass
class MessageRecord:
    conversation_id: str
    sender_id: str
    recipient_id: str
    body: str
    attachments: list = field(default_factory=list)
    message_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    @property
    def participants(self) -> list[str]:
        return list(dict.fromkeys([self.sender_id, self.recipient_id]))


def latest_per_conversation(messages: list[MessageRecord]) -> list[MessageRecord]:
    """Keep the newest message of every conversation, newest first."""
    latest: Dict[str, MessageRecord] = {}
    for message in sorted(messages, key=lambda m: m.created_at, reverse=True):
        latest.setdefault(message.conversation_id, message)
    return list(latest.values())


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.accounts: Dict[tuple[str, str], AccountRecord] = {}
        self.messages: Dict[str, MessageRecord] = {}
        self._lock = threading.Lock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.accounts.clear()
            self.messages.clear()

    def _check_unique(
        self, role: str, account_id: str, email: Optional[str], username: Optional[str]
    ) -> None:
        for (other_role, other_id), other in self.accounts.items():
            if other_role != role or other_id == account_id:
                continue
            if email and other.email == email:
                raise DuplicateRecordError(role, "email")
            if username and other.username == username:
                raise DuplicateRecordError(role, "username")

    def find_account_by_identifier(
        self, role: str, identifier: str
    ) -> Optional[AccountRecord]:
        if not identifier:
            return None
        with self._lock:
            for (other_role, _), record in self.accounts.items():
                if other_role == role and identifier in (record.email, record.username):
                    return copy.deepcopy(record)
        return None

    def get_account(self, role: str, account_id: str) -> Optional[AccountRecord]:
        with self._lock:
            record = self.accounts.get((role, account_id))
            return copy.deepcopy(record) if record else None

    def insert_account(self, record: AccountRecord) -> AccountRecord:
        with self._lock:
            self._check_unique(
                record.role, record.account_id, record.email, record.username
            )
            self.accounts[(record.role, record.account_id)] = copy.deepcopy(record)
        return record

    def update_account(
        self,
        role: str,
        account_id: str,
        *,
        email: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        profile: Optional[dict] = None,
    ) -> Optional[AccountRecord]:
        with self._lock:
            record = self.accounts.get((role, account_id))
            if not record:
                return None
            self._check_unique(role, account_id, email, username)
            if email is not None:
                record.email = email
            if username is not None:
                record.username = username
            if password is not None:
                record.password = password
            if profile is not None:
                record.profile = copy.deepcopy(profile)
            record.updated_at = time.time()
            return copy.deepcopy(record)

    def update_password(self, role: str, account_id: str, password: str) -> None:
        with self._lock:
            record = self.accounts.get((role, account_id))
            if record:
                record.password = password
                record.updated_at = time.time()

    def save_message(self, record: MessageRecord) -> MessageRecord:
        with self._lock:
            self.messages[record.message_id] = copy.deepcopy(record)
        return record

    def get_message(self, message_id: str) -> Optional[MessageRecord]:
        with self._lock:
            record = self.messages.get(message_id)
            return copy.deepcopy(record) if record else None

    def list_messages(self, conversation_id: str) -> list[MessageRecord]:
        with self._lock:
            items = [
                copy.deepcopy(m)
                for m in self.messages.values()
                if m.conversation_id == conversation_id
            ]
        return sorted(items, key=lambda m: m.created_at)

    def list_conversations(self, participant_id: str) -> list[MessageRecord]:
        with self._lock:
            items = [
                copy.deepcopy(m)
                for m in self.messages.values()
                if participant_id in m.participants
            ]
        return latest_per_conversation(items)


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str, connect_timeout_seconds: int = 10):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        connect_args = {}
        if make_url(database_url).get_backend_name() == "postgresql":
            connect_args["connect_timeout"] = connect_timeout_seconds
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
            connect_args=connect_args,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_account_record(self, row: "AccountRow") -> AccountRecord:
        return AccountRecord(
            role=row.role,
            email=row.email,
            username=row.username,
            password=row.password,
            profile=dict(row.profile or {}),
            account_id=row.account_id,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_message_record(self, row: "MessageRow") -> MessageRecord:
        return MessageRecord(
            conversation_id=row.conversation_id,
            sender_id=row.sender_id,
            recipient_id=row.recipient_id,
            body=row.body,
            attachments=list(row.attachments or []),
            message_id=row.message_id,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def find_account_by_identifier(
        self, role: str, identifier: str
    ) -> Optional[AccountRecord]:
        if not identifier:
            return None
        with self.Session() as session:
            stmt = (
                select(AccountRow)
                .where(
                    AccountRow.role == role,
                    or_(AccountRow.email == identifier, AccountRow.username == identifier),
                )
                .order_by(AccountRow.created_at.asc())
                .limit(1)
            )
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_account_record(row) if row else None

    def get_account(self, role: str, account_id: str) -> Optional[AccountRecord]:
        with self.Session() as session:
            row = session.get(AccountRow, account_id)
            if not row or row.role != role:
                return None
            return self._to_account_record(row)

    def insert_account(self, record: AccountRecord) -> AccountRecord:
        with self.Session() as session:
            session.add(
                AccountRow(
                    account_id=record.account_id,
                    role=record.role,
                    email=record.email,
                    username=record.username,
                    password=record.password,
                    profile=record.profile,
                    created_at=record.created_at,
                    updated_at=record.updated_at,
                )
            )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError(record.role) from exc
        return record

    def update_account(
        self,
        role: str,
        account_id: str,
        *,
        email: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        profile: Optional[dict] = None,
    ) -> Optional[AccountRecord]:
        with self.Session() as session:
            row = session.get(AccountRow, account_id)
            if not row or row.role != role:
                return None
            if email is not None:
                row.email = email
            if username is not None:
                row.username = username
            if password is not None:
                row.password = password
            if profile is not None:
                row.profile = dict(profile)
            row.updated_at = time.time()
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError(role) from exc
            session.refresh(row)
            return self._to_account_record(row)

    def update_password(self, role: str, account_id: str, password: str) -> None:
        with self.Session() as session:
            row = session.get(AccountRow, account_id)
            if not row or row.role != role:
                return
            row.password = password
            row.updated_at = time.time()
            session.commit()

    def save_message(self, record: MessageRecord) -> MessageRecord:
        with self.Session() as session:
            session.add(
                MessageRow(
                    message_id=record.message_id,
                    conversation_id=record.conversation_id,
                    sender_id=record.sender_id,
                    recipient_id=record.recipient_id,
                    body=record.body,
                    attachments=record.attachments,
                    created_at=record.created_at,
                    updated_at=record.updated_at,
                )
            )
            session.commit()
        return record

    def get_message(self, message_id: str) -> Optional[MessageRecord]:
        with self.Session() as session:
            row = session.get(MessageRow, message_id)
            return self._to_message_record(row) if row else None

    def list_messages(self, conversation_id: str) -> list[MessageRecord]:
        with self.Session() as session:
            rows = (
                session.query(MessageRow)
                .filter(MessageRow.conversation_id == conversation_id)
                .order_by(MessageRow.created_at.asc())
                .all()
            )
            return [self._to_message_record(row) for row in rows]

    def list_conversations(self, participant_id: str) -> list[MessageRecord]:
        with self.Session() as session:
            rows = (
                session.query(MessageRow)
                .filter(
                    or_(
                        MessageRow.sender_id == participant_id,
                        MessageRow.recipient_id == participant_id,
                    )
                )
                .order_by(MessageRow.created_at.desc())
                .all()
            )
            return latest_per_conversation([self._to_message_record(row) for row in rows])


Base = declarative_base()


class AccountRow(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("role", "email", name="uq_accounts_role_email"),
        UniqueConstraint("role", "username", name="uq_accounts_role_username"),
    )

    account_id = Column(String, primary_key=True)
    role = Column(String, nullable=False, index=True)
    email = Column(String, nullable=True)
    username = Column(String, nullable=True)
    password = Column(String, nullable=True)
    profile = Column(JSON, nullable=False, default=dict)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class MessageRow(Base):
    __tablename__ = "messages"

    message_id = Column(String, primary_key=True)
    conversation_id = Column(String, nullable=False, index=True)
    sender_id = Column(String, nullable=False, index=True)
    recipient_id = Column(String, nullable=False, index=True)
    body = Column(String, nullable=False, default="")
    attachments = Column(JSON, nullable=False, default=list)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)
