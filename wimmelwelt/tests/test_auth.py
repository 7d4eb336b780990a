import unittest
from unittest.mock import patch

from wimmelwelt.auth import CredentialResolver
from wimmelwelt.db import CAREGIVER_ROLE, PARENT_ROLE, AccountRecord, InMemoryDbClient
from wimmelwelt.errors import UnauthorizedError
from wimmelwelt.passwords import (
    HashedPassword,
    LegacyPlaintext,
    classify_password,
    hash_password,
)


class PasswordClassificationTests(unittest.TestCase):
    def test_bcrypt_hash_is_recognised(self):
        stored = classify_password(hash_password("secret"))
        self.assertIsInstance(stored, HashedPassword)
        self.assertTrue(stored.matches("secret"))
        self.assertFalse(stored.matches("Secret"))

    def test_anything_else_is_legacy_plaintext(self):
        stored = classify_password("secret")
        self.assertIsInstance(stored, LegacyPlaintext)
        self.assertTrue(stored.matches("secret"))
        self.assertFalse(stored.matches("secret "))

    def test_empty_values(self):
        self.assertIsNone(classify_password(None))
        self.assertIsNone(classify_password(""))
        self.assertIsNone(hash_password(""))


class CredentialResolverTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.resolver = CredentialResolver(self.db)

    def add_account(self, role, username, password, email=None):
        record = AccountRecord(
            role=role,
            email=email or f"{username}@example.com",
            username=username,
            password=password,
            profile={"name": username.title()},
        )
        self.db.insert_account(record)
        return record

    def test_legacy_password_is_upgraded_once(self):
        record = self.add_account(PARENT_ROLE, "lena", "plain-old")

        with patch.object(self.db, "update_password", wraps=self.db.update_password) as update:
            first = self.resolver.authenticate("lena", "plain-old")
            upgraded = self.db.get_account(PARENT_ROLE, record.account_id).password
            second = self.resolver.authenticate("lena@example.com", "plain-old")

        self.assertEqual(first["id"], record.account_id)
        self.assertEqual(second["id"], record.account_id)
        self.assertEqual(update.call_count, 1)
        self.assertIsInstance(classify_password(upgraded), HashedPassword)
        self.assertEqual(
            self.db.get_account(PARENT_ROLE, record.account_id).password, upgraded
        )

    def test_parent_is_checked_before_caregiver(self):
        parent = self.add_account(PARENT_ROLE, "sam", "parent-pass")
        caregiver = self.add_account(CAREGIVER_ROLE, "sam", hash_password("care-pass"))

        user = self.resolver.authenticate("sam", "care-pass")

        self.assertEqual(user["id"], caregiver.account_id)
        self.assertEqual(user["role"], CAREGIVER_ROLE)
        self.assertEqual(
            self.db.get_account(PARENT_ROLE, parent.account_id).password, "parent-pass"
        )

        user = self.resolver.authenticate("sam", "parent-pass")
        self.assertEqual(user["role"], PARENT_ROLE)

    def test_failures_are_indistinguishable(self):
        self.add_account(PARENT_ROLE, "mia", hash_password("right"))

        with self.assertRaises(UnauthorizedError) as wrong_password:
            self.resolver.authenticate("mia", "wrong")
        with self.assertRaises(UnauthorizedError) as unknown:
            self.resolver.authenticate("ghost", "wrong")

        self.assertEqual(wrong_password.exception.message, unknown.exception.message)
        self.assertEqual(wrong_password.exception.status_code, 401)

    def test_empty_password_never_matches(self):
        self.add_account(PARENT_ROLE, "noah", "")
        with self.assertRaises(UnauthorizedError):
            self.resolver.authenticate("noah", "")

    def test_failed_upgrade_still_logs_in(self):
        record = self.add_account(CAREGIVER_ROLE, "ida", "legacy")

        with patch.object(self.db, "update_password", side_effect=RuntimeError("db down")):
            with self.assertLogs("wimmelwelt.auth", level="WARNING"):
                user = self.resolver.authenticate("ida", "legacy")

        self.assertEqual(user["id"], record.account_id)
        self.assertEqual(self.db.get_account(CAREGIVER_ROLE, record.account_id).password, "legacy")

    def test_malformed_hash_fails_closed(self):
        self.add_account(PARENT_ROLE, "kim", "$2b$notahash")
        self.assertIsInstance(classify_password("$2b$notahash"), HashedPassword)
        self.assertFalse(HashedPassword("$2b$notahash").matches("wrong"))
        with self.assertRaises(UnauthorizedError):
            self.resolver.authenticate("kim", "wrong")

    def test_response_never_contains_password(self):
        self.add_account(PARENT_ROLE, "ben", hash_password("pw"))
        user = self.resolver.authenticate("ben", "pw")
        self.assertNotIn("password", user)
        self.assertEqual(user["username"], "ben")


if __name__ == "__main__":
    unittest.main()
