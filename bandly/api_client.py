"""
BandLy API Client

Thin async wrapper over the BandLy REST API. Every call goes through
_request(), which attaches the bearer token from the SessionContext and turns
transport failures into NetworkError. JSON calls additionally map error
statuses to exceptions:

    401 -> AuthenticationError (stored token is cleared)
    403 -> AuthorizationError
    404 -> ResourceNotFoundError
    other non-2xx -> APIError with the server's "error" message

analyze_essay() is the exception: it hands back the raw response so
bandly.essays can decode the success / rate-limit / failure shapes itself.
"""

import time
from typing import Optional, Dict, Any, List

import httpx

from bandly.config import BandlyConfig
from bandly.exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    NetworkError,
    ReportNotFoundError,
    ResourceNotFoundError,
)
from bandly.logging_config import get_logger
from bandly.session import SessionContext

logger = get_logger(__name__)


class BandlyAPIClient:
    """
    API client for the BandLy server.

    Usage:
        async with BandlyAPIClient(config, session) as client:
            profile = await client.get_profile()
    """

    def __init__(
        self,
        config: BandlyConfig,
        session: SessionContext,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.config = config
        self.session = session
        self.base_url = config.api_base_url.rstrip('/')
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=config.timeout,
            transport=transport
        )

    async def __aenter__(self) -> "BandlyAPIClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _get_headers(self, auth: bool = True, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Get request headers"""
        headers = {"Content-Type": "application/json"}
        if auth:
            headers.update(self.session.auth_headers())
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        auth: bool = True,
        headers: Optional[Dict[str, str]] = None
    ) -> httpx.Response:
        """Send a request; raises NetworkError when no response arrives"""
        start = time.perf_counter()
        try:
            response = await self._client.request(
                method,
                "/" + path.lstrip("/"),
                json=json,
                params=params,
                headers=self._get_headers(auth, headers)
            )
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {type(e).__name__}: {e}")
            raise NetworkError() from e

        logger.log_request(method, path, response.status_code, (time.perf_counter() - start) * 1000)
        return response

    @staticmethod
    def error_message(response: httpx.Response, fallback: str) -> str:
        """Server-provided "error" (or "message") field, else fallback"""
        try:
            body = response.json()
        except ValueError:
            return fallback
        if isinstance(body, dict):
            return body.get("error") or body.get("message") or fallback
        return fallback

    def _raise_for_status(self, response: httpx.Response, fallback: str, authed: bool = True) -> None:
        if response.is_success:
            return

        message = self.error_message(response, fallback)
        if response.status_code == 401:
            if authed and self.session.get():
                logger.info("Server rejected the stored token, clearing it")
                self.session.clear()
            raise AuthenticationError(message)
        if response.status_code == 403:
            raise AuthorizationError(message)
        if response.status_code == 404:
            raise ResourceNotFoundError("Resource", message=message)
        raise APIError(message, status_code=response.status_code)

    async def _json_request(
        self,
        method: str,
        path: str,
        fallback: str,
        json: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        auth: bool = True
    ) -> Any:
        response = await self._request(method, path, json=json, params=params, auth=auth)
        self._raise_for_status(response, fallback, authed=auth)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise APIError(f"{fallback} (invalid response body)", status_code=response.status_code) from e

    # ==================== Essays & Reports ====================

    async def analyze_essay(self, text: str, task_type: str) -> httpx.Response:
        """POST /api/essays/analyze; the caller decodes the response"""
        return await self._request(
            "POST", "/api/essays/analyze",
            json={"text": text, "taskType": task_type}
        )

    async def get_report(self, public_id: str) -> Dict[str, Any]:
        """Public report, no login needed"""
        try:
            return await self._json_request(
                "GET", f"/api/reports/{public_id}", "Failed to load report", auth=False
            )
        except ResourceNotFoundError as e:
            raise ReportNotFoundError(public_id) from e

    async def download_report_pdf(self, public_id: str) -> bytes:
        response = await self._request("GET", f"/api/reports/{public_id}/pdf", auth=False)
        if response.status_code == 404:
            raise ReportNotFoundError(public_id)
        if not response.is_success:
            raise APIError("PDF download not available", status_code=response.status_code)
        return response.content

    # ==================== Feedback & Analytics ====================

    async def submit_feedback(self, payload: Dict[str, Any]) -> None:
        """POST /api/feedback; raises on any failure"""
        response = await self._request("POST", "/api/feedback", json=payload)
        if not response.is_success:
            raise APIError("Failed to submit feedback", status_code=response.status_code)

    async def track_event(self, event_type: str, page: str, data: Optional[Dict[str, Any]],
                          session_id: str) -> None:
        response = await self._request(
            "POST", "/api/analytics/event",
            json={"eventType": event_type, "page": page, "data": data},
            auth=False,
            headers={"X-Session-ID": session_id}
        )
        if not response.is_success:
            raise APIError("Analytics event rejected", status_code=response.status_code)

    # ==================== Authentication ====================

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        return await self._json_request(
            "POST", "/api/auth/login", "Login failed",
            json={"email": email, "password": password}, auth=False
        )

    async def signup(self, email: str, password: str, name: Optional[str] = None) -> Dict[str, Any]:
        return await self._json_request(
            "POST", "/api/auth/signup", "Signup failed",
            json={"email": email, "password": password, "name": name}, auth=False
        )

    async def get_profile(self) -> Dict[str, Any]:
        return await self._json_request("GET", "/api/auth/profile", "Failed to load profile")

    # ==================== User account ====================

    async def update_profile(self, updates: Dict[str, Any]) -> Dict[str, Any]:
        return await self._json_request("PUT", "/api/user/profile", "Failed to update profile", json=updates)

    async def delete_account(self) -> None:
        await self._json_request("DELETE", "/api/user/profile", "Failed to delete account")

    async def get_dashboard(self) -> Dict[str, Any]:
        return await self._json_request("GET", "/api/user/dashboard", "Failed to load dashboard")

    async def get_history(self) -> List[Dict[str, Any]]:
        data = await self._json_request("GET", "/api/user/history", "Failed to load essay history")
        return data.get("items") or []

    async def delete_essay(self, essay_id: int) -> None:
        await self._json_request("DELETE", f"/api/user/essays/{essay_id}", "Failed to delete essay")

    # ==================== Admin ====================

    async def list_users(self, page: int = 1, limit: int = 20, search: Optional[str] = None,
                         role: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if search:
            params["search"] = search
        if role:
            params["role"] = role
        return await self._json_request("GET", "/api/sidigi/users", "Failed to load users", params=params)

    async def update_user(self, user_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        return await self._json_request("PUT", f"/api/sidigi/users/{user_id}", "Failed to update user", json=updates)

    async def delete_user(self, user_id: int) -> None:
        await self._json_request("DELETE", f"/api/sidigi/users/{user_id}", "Failed to delete user")

    async def list_blog_posts(self) -> Any:
        return await self._json_request("GET", "/api/sidigi/blog", "Failed to load blog posts")

    async def create_blog_post(self, post: Dict[str, Any]) -> Dict[str, Any]:
        return await self._json_request("POST", "/api/sidigi/blog", "Failed to save blog post", json=post)

    async def update_blog_post(self, post_id: int, post: Dict[str, Any]) -> Dict[str, Any]:
        return await self._json_request("PUT", f"/api/sidigi/blog/{post_id}", "Failed to save blog post", json=post)

    async def delete_blog_post(self, post_id: int) -> None:
        await self._json_request("DELETE", f"/api/sidigi/blog/{post_id}", "Failed to delete blog post")

    async def list_prompts(self) -> Any:
        return await self._json_request("GET", "/api/sidigi/prompts", "Failed to load prompts")

    async def create_prompt(self, prompt: Dict[str, Any]) -> Dict[str, Any]:
        return await self._json_request("POST", "/api/sidigi/prompts", "Failed to save prompt", json=prompt)

    async def update_prompt(self, prompt_id: int, prompt: Dict[str, Any]) -> Dict[str, Any]:
        return await self._json_request("PUT", f"/api/sidigi/prompts/{prompt_id}", "Failed to save prompt", json=prompt)

    async def delete_prompt(self, prompt_id: int) -> None:
        await self._json_request("DELETE", f"/api/sidigi/prompts/{prompt_id}", "Failed to delete prompt")
