import base64
import unittest

from fastapi.testclient import TestClient

from wimmelwelt.app import create_app
from wimmelwelt.db import CAREGIVER_ROLE, PARENT_ROLE, InMemoryDbClient
from wimmelwelt.dependencies import get_db_client, get_queue_client, get_storage_client
from wimmelwelt.queue import InMemoryNotificationQueue
from wimmelwelt.storage import InMemoryStorageClient

PNG_BYTES = b"\x89PNG\r\n\x1a\nnot-really-a-png"
PDF_BYTES = b"%PDF-1.4\n%fake pdf\n"


def data_url(mime_type: str, content: bytes) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}"


PARENT = {
    "firstName": "Anna",
    "lastName": "Muster",
    "email": "anna@example.com",
    "phone": "0301234567",
    "postalCode": "10115",
    "username": "anna",
    "password": "geheim123",
}

CAREGIVER = {
    "firstName": "Clara",
    "lastName": "Kita",
    "daycareName": "Kleine Strolche",
    "email": "clara@example.com",
    "phone": "0307654321",
    "address": "Hauptstr. 1",
    "postalCode": "10117",
    "username": "clara",
    "password": "sicher456",
}


class BackendApiTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        self.queue = InMemoryNotificationQueue()
        app = create_app()
        app.dependency_overrides[get_db_client] = lambda: self.db
        app.dependency_overrides[get_storage_client] = lambda: self.storage
        app.dependency_overrides[get_queue_client] = lambda: self.queue
        self.client = TestClient(app)

    def register_parent(self, **overrides):
        return self.client.post("/api/parents", json={**PARENT, **overrides})

    def register_caregiver(self, **overrides):
        return self.client.post("/api/caregivers", json={**CAREGIVER, **overrides})

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_register_login_and_session(self):
        created = self.register_parent()
        self.assertEqual(created.status_code, 201)
        parent = created.json()
        self.assertNotIn("password", parent)
        self.assertEqual(parent["role"], PARENT_ROLE)
        self.assertEqual(parent["name"], "Anna Muster")

        login = self.client.post(
            "/api/auth/login", json={"identifier": "anna", "password": "geheim123"}
        )
        self.assertEqual(login.status_code, 200)
        self.assertEqual(login.json()["id"], parent["id"])
        self.assertEqual(login.json()["role"], PARENT_ROLE)
        self.assertNotIn("password", login.json())
        self.assertIn("ww_auth", login.cookies)

        stored = self.db.get_account(PARENT_ROLE, parent["id"])
        self.assertTrue(stored.password.startswith("$2"))
        self.assertNotEqual(stored.password, "geheim123")

        me = self.client.get("/api/auth/me")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["id"], parent["id"])

        logout = self.client.post("/api/auth/logout")
        self.assertEqual(logout.json(), {"status": "ok"})
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)

    def test_login_by_email(self):
        parent = self.register_parent().json()
        login = self.client.post(
            "/api/auth/login",
            json={"identifier": "anna@example.com", "password": "geheim123"},
        )
        self.assertEqual(login.status_code, 200)
        self.assertEqual(login.json()["id"], parent["id"])

    def test_login_failures_share_one_message(self):
        self.register_parent()
        wrong_password = self.client.post(
            "/api/auth/login", json={"identifier": "anna", "password": "nope"}
        )
        unknown_user = self.client.post(
            "/api/auth/login", json={"identifier": "nobody", "password": "nope"}
        )
        self.assertEqual(wrong_password.status_code, 401)
        self.assertEqual(unknown_user.status_code, 401)
        self.assertEqual(wrong_password.json(), unknown_user.json())
        self.assertEqual(wrong_password.json()["message"], "Invalid credentials.")

    def test_login_requires_both_fields(self):
        response = self.client.post("/api/auth/login", json={"identifier": "anna"})
        self.assertEqual(response.status_code, 400)

    def test_me_without_session(self):
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)

    def test_duplicate_email_conflicts(self):
        self.assertEqual(self.register_parent().status_code, 201)
        duplicate = self.register_parent(username="anna2")
        self.assertEqual(duplicate.status_code, 409)
        self.assertIn("message", duplicate.json())
        self.assertEqual(len(self.db.accounts), 1)

    def test_same_email_allowed_across_roles(self):
        self.register_parent()
        response = self.register_caregiver(email=PARENT["email"], username="anna-kita")
        self.assertEqual(response.status_code, 201)

    def test_missing_required_fields(self):
        response = self.client.post("/api/parents", json={"email": "x@example.com"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("phone", response.json()["message"])

    def test_caregiver_uploads_are_served(self):
        response = self.register_caregiver(
            profileImage=data_url("image/png", PNG_BYTES),
            conceptFile=base64.b64encode(PDF_BYTES).decode("ascii"),
            conceptFileName="konzept.pdf",
            roomImages=[{"dataUrl": data_url("image/png", PNG_BYTES), "fileName": "raum.png"}],
        )
        self.assertEqual(response.status_code, 201)
        caregiver = response.json()

        image = caregiver["profileImageUrl"]
        self.assertTrue(image["key"].startswith("caregivers/profile-images/"))
        self.assertTrue(image["url"].startswith("/api/files/"))
        self.assertEqual(image["mimeType"], "image/png")
        self.assertEqual(image["size"], len(PNG_BYTES))

        concept = caregiver["conceptUrl"]
        self.assertTrue(concept["key"].endswith(".pdf"))
        self.assertEqual(concept["fileName"], "konzept.pdf")
        self.assertEqual(len(caregiver["roomImages"]), 1)

        served = self.client.get(image["url"])
        self.assertEqual(served.status_code, 200)
        self.assertEqual(served.content, PNG_BYTES)
        self.assertTrue(served.headers["content-type"].startswith("image/png"))
        self.assertEqual(served.headers["content-length"], str(len(PNG_BYTES)))

    def test_rejected_upload_rolls_back_stored_files(self):
        response = self.register_caregiver(
            profileImage=data_url("image/png", PNG_BYTES),
            logoImage=data_url("application/x-msdownload", b"MZ"),
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Unsupported file format.")
        self.assertEqual(self.storage.stored_objects, {})
        self.assertEqual(self.db.accounts, {})

    def test_replacing_profile_image_removes_old_file(self):
        caregiver = self.register_caregiver(
            profileImage=data_url("image/png", PNG_BYTES)
        ).json()
        old_key = caregiver["profileImageUrl"]["key"]

        updated = self.client.patch(
            f"/api/caregivers/{caregiver['id']}",
            json={"profileImage": data_url("image/png", b"new image"), "bio": "Hallo"},
        )
        self.assertEqual(updated.status_code, 200)
        new_key = updated.json()["profileImageUrl"]["key"]
        self.assertNotEqual(new_key, old_key)
        self.assertEqual(updated.json()["bio"], "Hallo")
        self.assertEqual(updated.json()["daycareName"], "Kleine Strolche")
        self.assertNotIn(old_key, self.storage.stored_objects)
        self.assertIn(new_key, self.storage.stored_objects)

    def test_rejected_upload_on_update_keeps_existing_files(self):
        caregiver = self.register_caregiver(
            profileImage=data_url("image/png", PNG_BYTES)
        ).json()
        old_key = caregiver["profileImageUrl"]["key"]

        response = self.client.patch(
            f"/api/caregivers/{caregiver['id']}",
            json={
                "profileImage": data_url("image/png", b"replacement"),
                "logoImage": data_url("application/x-msdownload", b"MZ"),
            },
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(list(self.storage.stored_objects), [old_key])

        stored = self.client.get(f"/api/caregivers/{caregiver['id']}").json()
        self.assertEqual(stored["profileImageUrl"]["key"], old_key)
        self.assertIsNone(stored["logoImageUrl"])

    def test_gallery_update_keeps_listed_and_drops_the_rest(self):
        caregiver = self.register_caregiver(
            roomImages=[
                {"dataUrl": data_url("image/png", b"one"), "fileName": "one.png"},
                {"dataUrl": data_url("image/png", b"two"), "fileName": "two.png"},
            ]
        ).json()
        kept, dropped = caregiver["roomImages"]

        updated = self.client.patch(
            f"/api/caregivers/{caregiver['id']}", json={"roomImages": [kept["url"]]}
        )
        self.assertEqual(updated.status_code, 200)
        self.assertEqual([ref["key"] for ref in updated.json()["roomImages"]], [kept["key"]])
        self.assertIn(kept["key"], self.storage.stored_objects)
        self.assertNotIn(dropped["key"], self.storage.stored_objects)

    def test_update_password_allows_new_login(self):
        parent = self.register_parent().json()
        response = self.client.patch(
            f"/api/parents/{parent['id']}", json={"password": "neu789"}
        )
        self.assertEqual(response.status_code, 200)
        login = self.client.post(
            "/api/auth/login", json={"identifier": "anna", "password": "neu789"}
        )
        self.assertEqual(login.status_code, 200)

    def test_unknown_profiles(self):
        self.assertEqual(self.client.get("/api/parents/missing").status_code, 404)
        self.assertEqual(
            self.client.patch("/api/caregivers/missing", json={"bio": "x"}).status_code,
            404,
        )
        missing_user = self.client.get("/api/users/missing")
        self.assertEqual(missing_user.status_code, 404)
        self.assertEqual(missing_user.json()["message"], "User not found.")

    def test_find_user_by_id(self):
        caregiver = self.register_caregiver().json()
        response = self.client.get(f"/api/users/{caregiver['id']}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["role"], CAREGIVER_ROLE)

    def test_missing_file_and_invoice(self):
        missing = self.client.get("/api/files/nowhere/missing.png")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["message"], "File not found.")
        self.assertEqual(
            self.client.get("/api/documents/membership-invoice").status_code, 404
        )

    def test_messages_are_stored_and_queued(self):
        parent = self.register_parent().json()
        caregiver = self.register_caregiver().json()

        sent = self.client.post(
            "/api/messages/conv-1",
            json={
                "senderId": parent["id"],
                "recipientId": caregiver["id"],
                "body": "  Hallo!  ",
                "attachments": [
                    {"data": data_url("application/pdf", PDF_BYTES), "name": "plan.pdf"}
                ],
            },
        )
        self.assertEqual(sent.status_code, 201)
        message = sent.json()
        self.assertEqual(message["body"], "Hallo!")
        self.assertEqual(message["conversationId"], "conv-1")
        self.assertEqual(message["participants"], [parent["id"], caregiver["id"]])
        attachment = message["attachments"][0]
        self.assertTrue(attachment["key"].startswith("messages/attachments/conv-1/"))
        self.assertEqual(attachment["fileName"], "plan.pdf")
        self.assertEqual(self.queue.items, [message["id"]])

        history = self.client.get("/api/messages/conv-1")
        self.assertEqual([m["id"] for m in history.json()], [message["id"]])

        overview = self.client.get(
            "/api/messages", params={"participantId": caregiver["id"]}
        )
        self.assertEqual(overview.status_code, 200)
        self.assertEqual(len(overview.json()), 1)

    def test_message_validation(self):
        self.assertEqual(self.client.get("/api/messages").status_code, 400)
        response = self.client.post(
            "/api/messages/conv-1", json={"senderId": "a", "recipientId": "b", "body": " "}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Missing required message fields.")
        self.assertEqual(self.queue.items, [])


if __name__ == "__main__":
    unittest.main()
