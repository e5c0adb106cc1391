"""
Unit Tests for Authentication
Tests for: login, signup, profile restore, profile updates, logout
"""
import json

import httpx
import pytest

from bandly.auth import AuthManager, User
from bandly.exceptions import AuthenticationError, ValidationError
from bandly.logging_config import get_user_email


def _router(routes):
    """Answer each "METHOD /path" from a dict of (status, body)"""
    def handler(request: httpx.Request) -> httpx.Response:
        status, body = routes[f"{request.method} {request.url.path}"]
        return httpx.Response(status, json=body)
    return handler


class TestUser:
    """Test the user record"""

    def test_name_falls_back_to_email_prefix(self, test_user_data):
        user = User.from_dict(test_user_data)

        assert user.name == test_user_data["email"].split("@")[0]
        assert user.plan == "free"
        assert user.is_admin is False

    def test_admin_role(self):
        assert User.from_dict({"id": 1, "email": "a@b.com", "role": "admin"}).is_admin is True


class TestLogin:
    """Test login and signup"""

    @pytest.mark.asyncio
    async def test_login_stores_token(self, make_client, session, test_user_data):
        client, transport = make_client(_router({
            "POST /api/auth/login": (200, {"token": "jwt-1", "user": test_user_data}),
        }))
        auth = AuthManager(client, session)

        user = await auth.login(test_user_data["email"], "secret123")

        assert session.get() == "jwt-1"
        assert user.email == test_user_data["email"]
        assert auth.is_authenticated()
        assert get_user_email() == test_user_data["email"]
        assert json.loads(transport.last.content) == {
            "email": test_user_data["email"], "password": "secret123"
        }

    @pytest.mark.asyncio
    async def test_login_failure_raises_and_stores_nothing(self, make_client, session):
        client, _ = make_client(_router({
            "POST /api/auth/login": (401, {"error": "Invalid email or password"}),
        }))
        auth = AuthManager(client, session)

        with pytest.raises(AuthenticationError) as exc:
            await auth.login("a@b.com", "wrong")

        assert exc.value.message == "Invalid email or password"
        assert session.get() is None

    @pytest.mark.asyncio
    async def test_response_without_token_is_rejected(self, make_client, session):
        client, _ = make_client(_router({"POST /api/auth/login": (200, {"user": {}})}))

        with pytest.raises(AuthenticationError):
            await AuthManager(client, session).login("a@b.com", "x")

        assert session.get() is None

    @pytest.mark.asyncio
    async def test_signup_logs_in(self, make_client, session, test_user_data):
        client, transport = make_client(_router({
            "POST /api/auth/signup": (201, {"token": "jwt-2", "user": test_user_data}),
        }))

        user = await AuthManager(client, session).signup(test_user_data["email"], "pw", "Sam")

        assert session.get() == "jwt-2"
        assert user.id == test_user_data["id"]
        assert json.loads(transport.last.content)["name"] == "Sam"


class TestProfile:
    """Test restoring and updating the profile"""

    @pytest.mark.asyncio
    async def test_no_token_skips_request(self, make_client, session):
        client, transport = make_client(_router({}))

        assert await AuthManager(client, session).fetch_profile() is None
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_wrapped_profile(self, make_client, session, test_user_data):
        session.set("t")
        client, _ = make_client(_router({"GET /api/auth/profile": (200, {"user": test_user_data})}))

        user = await AuthManager(client, session).fetch_profile()

        assert user.email == test_user_data["email"]

    @pytest.mark.asyncio
    async def test_bare_profile(self, make_client, session, test_user_data):
        session.set("t")
        client, _ = make_client(_router({"GET /api/auth/profile": (200, test_user_data)}))

        user = await AuthManager(client, session).fetch_profile()

        assert user.id == test_user_data["id"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 500])
    async def test_failed_profile_drops_token(self, make_client, session, status):
        session.set("stale")
        client, _ = make_client(_router({"GET /api/auth/profile": (status, {"error": "nope"})}))

        assert await AuthManager(client, session).fetch_profile() is None
        assert session.get() is None

    @pytest.mark.asyncio
    async def test_update_password_validation(self, make_client, session):
        client, transport = make_client(_router({}))
        auth = AuthManager(client, session)

        with pytest.raises(ValidationError) as mismatch:
            await auth.update_profile(current_password="old", new_password="longenough1",
                                      confirm_password="different1")
        with pytest.raises(ValidationError) as short:
            await auth.update_profile(current_password="old", new_password="short",
                                      confirm_password="short")
        with pytest.raises(ValidationError):
            await auth.update_profile()

        assert mismatch.value.field == "confirmPassword"
        assert short.value.field == "newPassword"
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_update_sends_only_changes(self, make_client, session, test_user_data):
        session.set("t")
        client, transport = make_client(_router({
            "PUT /api/user/profile": (200, {"message": "Profile updated successfully"}),
            "GET /api/auth/profile": (200, {"user": {**test_user_data, "email": "new@b.com"}}),
        }))
        auth = AuthManager(client, session)

        await auth.update_profile(email="new@b.com")

        put = transport.requests[0]
        assert put.method == "PUT"
        assert json.loads(put.content) == {"email": "new@b.com"}
        assert auth.user.email == "new@b.com"

    @pytest.mark.asyncio
    async def test_delete_account_logs_out(self, make_client, session):
        session.set("t")
        client, transport = make_client(_router({"DELETE /api/user/profile": (200, {"message": "ok"})}))

        await AuthManager(client, session).delete_account()

        assert transport.last.method == "DELETE"
        assert session.get() is None

    def test_logout_clears_token(self, make_client, session):
        session.set("t")
        client, _ = make_client(_router({}))

        AuthManager(client, session).logout()

        assert session.get() is None
