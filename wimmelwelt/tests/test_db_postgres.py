import unittest

from wimmelwelt.db import (
    CAREGIVER_ROLE,
    PARENT_ROLE,
    AccountRecord,
    MessageRecord,
    PostgresDbClient,
)
from wimmelwelt.errors import DuplicateRecordError


class PostgresDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres client logic.
    """

    def setUp(self):
        self.db = PostgresDbClient("sqlite+pysqlite:///:memory:")

    def add_account(self, role=PARENT_ROLE, email="eva@example.com", username="eva"):
        record = AccountRecord(
            role=role,
            email=email,
            username=username,
            password="legacy",
            profile={"firstName": "Eva", "children": [{"name": "Tom"}]},
        )
        return self.db.insert_account(record)

    def test_insert_and_lookup(self):
        record = self.add_account()
        by_username = self.db.find_account_by_identifier(PARENT_ROLE, "eva")
        by_email = self.db.find_account_by_identifier(PARENT_ROLE, "eva@example.com")
        self.assertEqual(by_username.account_id, record.account_id)
        self.assertEqual(by_email.account_id, record.account_id)
        self.assertEqual(by_email.profile["children"], [{"name": "Tom"}])
        self.assertIsNone(self.db.find_account_by_identifier(CAREGIVER_ROLE, "eva"))
        self.assertIsNone(self.db.get_account(CAREGIVER_ROLE, record.account_id))

    def test_unique_email_per_role(self):
        self.add_account()
        with self.assertRaises(DuplicateRecordError):
            self.add_account(username="eva2")
        with self.assertRaises(DuplicateRecordError):
            self.add_account(email="other@example.com")
        self.add_account(role=CAREGIVER_ROLE)

    def test_update_password_and_profile(self):
        record = self.add_account()
        self.db.update_password(PARENT_ROLE, record.account_id, "$2b$10$hashed")
        self.assertEqual(
            self.db.get_account(PARENT_ROLE, record.account_id).password, "$2b$10$hashed"
        )

        updated = self.db.update_account(
            PARENT_ROLE, record.account_id, profile={"firstName": "Eve"}
        )
        self.assertEqual(updated.profile, {"firstName": "Eve"})
        self.assertEqual(updated.email, "eva@example.com")
        self.assertIsNone(self.db.update_account(PARENT_ROLE, "missing", profile={}))

    def test_update_rejects_taken_username(self):
        self.add_account()
        other = self.add_account(email="max@example.com", username="max")
        with self.assertRaises(DuplicateRecordError):
            self.db.update_account(PARENT_ROLE, other.account_id, username="eva")

    def test_messages_and_conversations(self):
        self.db.save_message(MessageRecord("c1", "p1", "k1", "first", created_at=1.0))
        self.db.save_message(MessageRecord("c1", "k1", "p1", "second", created_at=2.0))
        latest_other = self.db.save_message(
            MessageRecord("c2", "p1", "k2", "hello", created_at=3.0)
        )

        history = self.db.list_messages("c1")
        self.assertEqual([m.body for m in history], ["first", "second"])

        overview = self.db.list_conversations("p1")
        self.assertEqual([m.body for m in overview], ["hello", "second"])
        self.assertEqual(self.db.list_conversations("k2")[0].message_id, latest_other.message_id)

        fetched = self.db.get_message(latest_other.message_id)
        self.assertEqual(fetched.participants, ["p1", "k2"])


if __name__ == "__main__":
    unittest.main()
