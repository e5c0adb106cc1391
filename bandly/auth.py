"""
BandLy Authentication
=====================

  bandly login       Login with email and password
  bandly signup      Create an account
  bandly logout      Forget the stored token
  bandly whoami      Show the current user
  bandly profile     Change email/password or delete the account

The server issues the bearer token; the client only stores it in the
session context and sends it with later requests.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any

from bandly.api_client import BandlyAPIClient
from bandly.exceptions import APIError, AuthenticationError, NetworkError, ValidationError
from bandly.logging_config import get_logger, set_user_email
from bandly.session import SessionContext

logger = get_logger(__name__)


MIN_PASSWORD_LENGTH = 8


@dataclass
class User:
    """Logged-in user"""
    id: int
    email: str
    name: str = ""
    role: Optional[str] = None
    plan: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        email = data.get("email", "")
        return cls(
            id=data.get("id", 0),
            email=email,
            # Server does not return names; fall back to the email prefix
            name=data.get("name") or email.split("@")[0],
            role=data.get("role"),
            plan=data.get("plan"),
            created_at=data.get("createdAt"),
        )


class AuthManager:
    """
    Login state for the CLI.

    Usage:
        auth = AuthManager(client, session)
        user = await auth.login(email, password)
    """

    def __init__(self, client: BandlyAPIClient, session: SessionContext):
        self.client = client
        self.session = session
        self.user: Optional[User] = None

    def is_authenticated(self) -> bool:
        return self.session.is_authenticated

    def _accept_login(self, data: Dict[str, Any], event: str) -> User:
        token = data.get("token")
        if not token:
            raise AuthenticationError(f"{event.capitalize()} failed: no token in response")

        self.session.set(token)
        self.user = User.from_dict(data.get("user") or {})
        set_user_email(self.user.email)
        logger.log_auth_event(event, True, self.user.email)
        return self.user

    async def login(self, email: str, password: str) -> User:
        try:
            data = await self.client.login(email, password)
        except AuthenticationError as e:
            logger.log_auth_event("login", False, email, e.message)
            raise
        return self._accept_login(data, "login")

    async def signup(self, email: str, password: str, name: Optional[str] = None) -> User:
        data = await self.client.signup(email, password, name)
        return self._accept_login(data, "signup")

    async def fetch_profile(self) -> Optional[User]:
        """
        Restore the user behind the stored token.

        Any failure, including a network error, drops the token.
        """
        if not self.session.get():
            self.user = None
            return None

        try:
            data = await self.client.get_profile()
        except (AuthenticationError, APIError, NetworkError) as e:
            logger.warning(f"Failed to fetch user profile: {e}")
            self.session.clear()
            self.user = None
            return None

        # /api/auth/profile answers either {user: {...}} or the user itself
        self.user = User.from_dict(data.get("user") or data)
        set_user_email(self.user.email)
        return self.user

    def logout(self) -> None:
        self.session.clear()
        if self.user:
            logger.log_auth_event("logout", True, self.user.email)
        self.user = None
        set_user_email("")

    async def update_profile(
        self,
        email: Optional[str] = None,
        current_password: Optional[str] = None,
        new_password: Optional[str] = None,
        confirm_password: Optional[str] = None
    ) -> Dict[str, Any]:
        """Validate locally, then PUT only what changed"""
        updates: Dict[str, Any] = {}

        if email and (self.user is None or email != self.user.email):
            updates["email"] = email

        if new_password:
            if new_password != confirm_password:
                raise ValidationError("New passwords do not match", field="confirmPassword")
            if len(new_password) < MIN_PASSWORD_LENGTH:
                raise ValidationError(
                    f"New password must be at least {MIN_PASSWORD_LENGTH} characters long",
                    field="newPassword"
                )
            updates["currentPassword"] = current_password or ""
            updates["newPassword"] = new_password

        if not updates:
            raise ValidationError("No changes to save")

        result = await self.client.update_profile(updates)
        await self.fetch_profile()
        return result

    async def delete_account(self) -> None:
        await self.client.delete_account()
        logger.log_auth_event("delete_account", True, self.user.email if self.user else None)
        self.session.clear()
        self.user = None
