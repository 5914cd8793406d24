"""End-to-end tests for the REST API."""

from __future__ import annotations

import sys
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from skye.api import create_app
from skye.config import Settings
from skye.database import Database


class SkyeAPITests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        base = Path(self._tempdir.name)
        self.settings = Settings(database_path=base / "skye.sqlite3", session_file=base / "session.json")
        self.database = Database(self.settings.database_path)
        self.database.initialize()
        self.user_email = "alice@example.com"
        self.user_password = "SuperSecret123!"
        self.user = self.database.create_user("Alice", self.user_email, self.user_password)

    def tearDown(self) -> None:
        self._tempdir.cleanup()

    def _client(self, settings: Settings | None = None) -> TestClient:
        app = create_app(database=self.database, settings=settings or self.settings)
        return TestClient(app)

    def _login(self, client: TestClient) -> str:
        response = client.post(
            "/auth/login",
            json={"email": self.user_email, "password": self.user_password},
        )
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()["token"]

    def test_healthcheck(self) -> None:
        with self._client() as client:
            response = client.get("/healthz")
        self.assertEqual(response.json(), {"status": "ok"})

    def test_login_returns_token_and_identity(self) -> None:
        with self._client() as client:
            response = client.post(
                "/auth/login",
                json={"email": "ALICE@example.com", "password": self.user_password},
            )
        self.assertEqual(response.status_code, 200, response.text)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(
            payload["user"],
            {"id": self.user.id, "name": "Alice", "email": self.user_email},
        )
        self.assertIn("|", payload["token"])

    def test_login_with_wrong_password_is_rejected(self) -> None:
        with self._client() as client:
            response = client.post(
                "/auth/login",
                json={"email": self.user_email, "password": "not-the-password"},
            )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {"success": False, "message": "Invalid credentials"})

    def test_login_validation_errors_are_reported_per_field(self) -> None:
        with self._client() as client:
            response = client.post("/auth/login", json={"email": "not-an-email", "password": "123"})
            missing = client.post("/auth/login", json={})
        self.assertEqual(response.status_code, 422)
        errors = response.json()["errors"]
        self.assertEqual(errors["email"], ["The email must be a valid email address."])
        self.assertEqual(errors["password"], ["The password must be at least 6 characters."])

        self.assertEqual(missing.status_code, 422)
        self.assertEqual(missing.json()["errors"]["email"], ["The email field is required."])

    def test_register_creates_user_and_returns_token(self) -> None:
        with self._client() as client:
            response = client.post(
                "/auth/register",
                json={
                    "name": "  Bob  ",
                    "email": "Bob@Example.com",
                    "password": "hunter22",
                    "password_confirmation": "hunter22",
                },
            )
        self.assertEqual(response.status_code, 201, response.text)
        payload = response.json()
        self.assertEqual(payload["user"]["name"], "Bob")
        self.assertEqual(payload["user"]["email"], "bob@example.com")
        self.assertIn("created_at", payload["user"])
        self.assertIsNotNone(self.database.authenticate_user("bob@example.com", "hunter22"))

    def test_register_rejects_duplicate_email_and_mismatched_confirmation(self) -> None:
        with self._client() as client:
            response = client.post(
                "/auth/register",
                json={
                    "name": "Alice Again",
                    "email": self.user_email,
                    "password": "hunter22",
                    "password_confirmation": "hunter23",
                },
            )
        self.assertEqual(response.status_code, 422)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertEqual(payload["errors"]["email"], ["The email has already been taken."])
        self.assertEqual(payload["errors"]["password"], ["The password confirmation does not match."])

    def test_register_rejects_short_name(self) -> None:
        with self._client() as client:
            response = client.post(
                "/auth/register",
                json={
                    "name": "B",
                    "email": "b@example.com",
                    "password": "hunter22",
                    "password_confirmation": "hunter22",
                },
            )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["errors"]["name"], ["The name must be at least 2 characters."])

    def test_users_requires_authentication(self) -> None:
        with self._client() as client:
            anonymous = client.get("/users")
            bogus = client.get("/users", headers={"Authorization": "Bearer 99|nope"})
        self.assertEqual(anonymous.status_code, 401)
        self.assertEqual(anonymous.headers["www-authenticate"], "Bearer")
        self.assertEqual(bogus.status_code, 401)

    def test_users_listing_is_sorted(self) -> None:
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.database.create_user("beta", "beta@example.com", "password", created_at=base)
        self.database.create_user("Carl", "carl@example.com", "password", created_at=base + timedelta(days=1))

        with self._client() as client:
            token = self._login(client)
            headers = {"Authorization": f"Bearer {token}"}
            default = client.get("/users", headers=headers)
            by_created_desc = client.get(
                "/users",
                headers=headers,
                params={"sort_by": "created_at", "sort_direction": "desc"},
            )
            invalid = client.get("/users", headers=headers, params={"sort_by": "password"})

        self.assertEqual(default.status_code, 200, default.text)
        payload = default.json()
        self.assertEqual([user["name"] for user in payload["users"]], ["Alice", "beta", "Carl"])
        self.assertEqual(payload["total"], 3)
        self.assertEqual(payload["sort_by"], "name")
        self.assertEqual(payload["sort_direction"], "asc")
        self.assertEqual(set(payload["users"][0]), {"id", "name", "email", "created_at"})

        names = [user["name"] for user in by_created_desc.json()["users"]]
        self.assertEqual(names, ["Alice", "Carl", "beta"])

        self.assertEqual(invalid.status_code, 422)
        self.assertIn("sort_by", invalid.json()["errors"])

    def test_current_user_endpoint(self) -> None:
        with self._client() as client:
            token = self._login(client)
            response = client.get("/user", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["email"], self.user_email)

    def test_logout_revokes_every_token(self) -> None:
        with self._client() as client:
            first = self._login(client)
            second = self._login(client)
            response = client.post("/auth/logout", headers={"Authorization": f"Bearer {first}"})
            self.assertEqual(response.status_code, 200, response.text)
            self.assertEqual(response.json(), {"success": True, "message": "Logout successful"})

            after = client.get("/users", headers={"Authorization": f"Bearer {second}"})
        self.assertEqual(after.status_code, 401)

    def test_expired_token_is_rejected(self) -> None:
        expiring = Settings(
            database_path=self.settings.database_path,
            session_file=self.settings.session_file,
            token_ttl=timedelta(seconds=-1),
        )
        with self._client(expiring) as client:
            token = self._login(client)
            response = client.get("/users", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(response.status_code, 401)

    def test_cors_allows_configured_origin(self) -> None:
        with self._client() as client:
            response = client.options(
                "/auth/login",
                headers={
                    "Origin": "http://localhost:5173",
                    "Access-Control-Request-Method": "POST",
                },
            )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["access-control-allow-origin"], "http://localhost:5173")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
