"""Tests for the page controllers, standalone and against the real API."""

from __future__ import annotations

import sys
import tempfile
import unittest
from pathlib import Path
from typing import List

import httpx
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from skye.api import create_app
from skye.client import SkyeClient
from skye.config import Settings
from skye.database import Database
from skye.errors import NetworkError
from skye.listing import SortField, SortIndicator
from skye.models import Credential, OwnerIdentity, UserRecord
from skye.pages import (
    ListingStatus,
    LoginPage,
    Navigator,
    RegisterPage,
    Route,
    UsersPage,
    build_pages,
)
from skye.session import MemoryStore, SessionManager


def _credential() -> Credential:
    return Credential(token="3|stale", owner=OwnerIdentity(id=3, name="Carol", email="carol@example.com"))


def _mock_client(handler, session: SessionManager) -> SkyeClient:
    return SkyeClient("http://api.test", session, transport=httpx.MockTransport(handler))


def _listing(users: List[dict]) -> httpx.Response:
    return httpx.Response(
        200,
        json={"success": True, "users": users, "total": len(users), "sort_by": "name", "sort_direction": "asc"},
    )


class NavigatorTests(unittest.TestCase):
    def test_unknown_route_falls_back_to_login(self) -> None:
        navigator = Navigator(Route.USERS)
        self.assertIs(navigator.go("/dashboard"), Route.LOGIN)
        self.assertIs(navigator.go("/register"), Route.REGISTER)
        self.assertEqual(navigator.history, [Route.USERS, Route.LOGIN, Route.REGISTER])


class FormValidationTests(unittest.TestCase):
    def test_login_requires_valid_email_and_password(self) -> None:
        errors = LoginPage.validate("not-an-email", "")
        self.assertEqual(errors, {"email": "Enter a valid email address", "password": "Password is required"})
        self.assertEqual(LoginPage.validate("a@b.co", "x"), {})

    def test_register_checks_every_field(self) -> None:
        errors = RegisterPage.validate("A", "", "123", "124")
        self.assertEqual(set(errors), {"name", "email", "password", "confirmation"})
        self.assertEqual(errors["confirmation"], "Passwords do not match")
        self.assertEqual(RegisterPage.validate("Al", "al@example.com", "123456", "123456"), {})

    def test_invalid_form_is_not_submitted(self) -> None:
        calls: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500)

        session = SessionManager(MemoryStore())
        navigator = Navigator()
        page = LoginPage(_mock_client(handler, session), navigator)

        outcome = page.submit("", "")

        self.assertFalse(outcome.ok)
        self.assertEqual(calls, [])
        self.assertIs(navigator.route, Route.LOGIN)


class UsersPageTests(unittest.TestCase):
    def test_signed_out_visitor_is_sent_to_login(self) -> None:
        session = SessionManager(MemoryStore())
        navigator = Navigator(Route.USERS)
        page = UsersPage(_mock_client(lambda request: _listing([]), session), session, navigator)

        self.assertFalse(page.open())
        self.assertIs(navigator.route, Route.LOGIN)

    def test_rejected_token_ends_session_and_routes_to_login(self) -> None:
        session = SessionManager(MemoryStore())
        session.establish(_credential())
        navigator = Navigator(Route.USERS)
        client = _mock_client(lambda request: httpx.Response(401, json={"message": "Unauthenticated."}), session)
        pages = build_pages(client, navigator)
        page = pages[Route.USERS]

        page.open()

        self.assertIsNone(session.current())
        self.assertIs(navigator.route, Route.LOGIN)
        self.assertIs(page.status, ListingStatus.ERROR)

    def test_open_moves_signed_in_visitor_to_users(self) -> None:
        session = SessionManager(MemoryStore())
        session.establish(_credential())
        navigator = Navigator(Route.USER_CREATED)
        page = UsersPage(_mock_client(lambda request: _listing([]), session), session, navigator)

        self.assertTrue(page.open())
        self.assertIs(navigator.route, Route.USERS)
        self.assertIs(page.status, ListingStatus.EMPTY)

    def test_empty_listing_is_distinct_from_loading(self) -> None:
        session = SessionManager(MemoryStore())
        session.establish(_credential())
        page = UsersPage(_mock_client(lambda request: _listing([]), session), session, Navigator(Route.USERS))

        ticket = page.begin_fetch()
        self.assertIs(page.status, ListingStatus.LOADING)
        page.complete_fetch(ticket, [])
        self.assertIs(page.status, ListingStatus.EMPTY)

        self.assertIs(page.load(), ListingStatus.EMPTY)
        self.assertEqual(page.records, [])

    def test_listing_is_ordered_by_active_sort(self) -> None:
        users = [
            {"id": 1, "name": "beta", "email": "b@example.com", "created_at": "2024-01-02T00:00:00Z"},
            {"id": 2, "name": "Alpha", "email": "c@example.com", "created_at": "2024-01-03T00:00:00Z"},
            {"id": 3, "name": "gamma", "email": "a@example.com", "created_at": "2024-01-01T00:00:00Z"},
        ]
        session = SessionManager(MemoryStore())
        session.establish(_credential())
        page = UsersPage(_mock_client(lambda request: _listing(users), session), session, Navigator(Route.USERS))

        self.assertIs(page.load(), ListingStatus.READY)
        self.assertEqual([record.name for record in page.records], ["Alpha", "beta", "gamma"])
        self.assertEqual(page.total, 3)

        page.sort_by(SortField.EMAIL)
        self.assertEqual([record.id for record in page.records], [3, 1, 2])
        self.assertIs(page.indicator(SortField.EMAIL), SortIndicator.ASCENDING)
        self.assertIs(page.indicator(SortField.NAME), SortIndicator.INACTIVE)

        page.sort_by(SortField.EMAIL)
        self.assertEqual([record.id for record in page.records], [2, 1, 3])

    def test_stale_response_is_discarded(self) -> None:
        session = SessionManager(MemoryStore())
        session.establish(_credential())
        page = UsersPage(_mock_client(lambda request: _listing([]), session), session, Navigator(Route.USERS))

        first = page.begin_fetch()
        second = page.begin_fetch()
        newer = [UserRecord(id=2, name="New", email="new@example.com", created_at=None)]
        older = [UserRecord(id=1, name="Old", email="old@example.com", created_at=None)]

        self.assertTrue(page.complete_fetch(second, newer))
        self.assertFalse(page.complete_fetch(first, older))
        self.assertEqual(page.records, newer)
        self.assertIs(page.status, ListingStatus.READY)

    def test_network_failure_shows_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        session = SessionManager(MemoryStore())
        session.establish(_credential())
        page = UsersPage(_mock_client(handler, session), session, Navigator(Route.USERS))

        self.assertIs(page.load(), ListingStatus.ERROR)
        self.assertEqual(page.error, NetworkError.default_message)
        self.assertIsNotNone(session.current())


class EndToEndFlowTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        base = Path(self._tempdir.name)
        settings = Settings(database_path=base / "skye.sqlite3", session_file=base / "session.json")
        self.database = Database(settings.database_path)
        self.database.initialize()
        self.database.create_user("Alice", "alice@example.com", "secret1")
        self.http = TestClient(create_app(database=self.database, settings=settings))
        self.session = SessionManager(MemoryStore())
        self.navigator = Navigator()
        self.client = SkyeClient("http://testserver", self.session, http_client=self.http)
        self.pages = build_pages(self.client, self.navigator)

    def tearDown(self) -> None:
        self.client.close()
        self._tempdir.cleanup()

    def test_login_then_list_then_logout(self) -> None:
        login = self.pages[Route.LOGIN]
        outcome = login.submit("alice@example.com", "secret1")

        self.assertTrue(outcome.ok, outcome.error)
        self.assertIs(self.navigator.route, Route.USERS)
        credential = self.session.current()
        self.assertIsNotNone(credential)
        self.assertEqual(credential.owner.email, "alice@example.com")

        users = self.pages[Route.USERS]
        self.assertTrue(users.open())
        self.assertIs(users.status, ListingStatus.READY)
        self.assertEqual([record.email for record in users.records], ["alice@example.com"])

        users.logout()
        self.assertIsNone(self.session.current())
        self.assertIs(self.navigator.route, Route.LOGIN)
        self.assertIsNone(self.database.authenticate_token(credential.token))

    def test_wrong_password_keeps_visitor_on_login(self) -> None:
        outcome = self.pages[Route.LOGIN].submit("alice@example.com", "wrong-password")

        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.error, "Invalid credentials")
        self.assertIs(self.navigator.route, Route.LOGIN)
        self.assertIsNone(self.session.current())

    def test_register_leads_to_confirmation_without_signing_in(self) -> None:
        register = self.pages[Route.REGISTER]
        outcome = register.submit("Bob", "bob@example.com", "hunter22", "hunter22")

        self.assertTrue(outcome.ok, outcome.error)
        self.assertIs(self.navigator.route, Route.USER_CREATED)
        self.assertEqual(self.navigator.state["user"].email, "bob@example.com")
        self.assertIsNone(self.session.current())

    def test_register_surfaces_server_field_errors(self) -> None:
        outcome = self.pages[Route.REGISTER].submit("Alice", "alice@example.com", "hunter22", "hunter22")

        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.field_errors["email"], "The email has already been taken.")
        self.assertIs(self.navigator.route, Route.LOGIN)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
