"""
Usage analytics

Events go to POST /api/analytics/event tagged with an X-Session-ID that is
kept in the local store. Nothing is sent when the API runs on localhost.
Tracking never raises: a failed event is logged and forgotten.
"""

import secrets
import time
from typing import Any, Dict, Optional

from bandly.exceptions import BandlyError, StorageError
from bandly.logging_config import get_logger, set_session_id
from bandly.storage import LocalStore, ANALYTICS_SESSION_KEY

logger = get_logger(__name__)


def _base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while number:
        number, rem = divmod(number, 36)
        out = digits[rem] + out
    return out or "0"


def generate_session_id() -> str:
    """Time-ordered prefix plus random suffix"""
    return _base36(int(time.time() * 1000)) + secrets.token_hex(6)


class Analytics:
    """
    Usage:
        analytics = Analytics(client, store, enabled=not config.is_local_api)
        await analytics.track_page_view("/history")
    """

    def __init__(self, client, store: LocalStore, enabled: bool = True):
        self.client = client
        self.store = store
        self.enabled = enabled
        self.session_id = self._get_or_create_session_id()
        set_session_id(self.session_id)

    def _get_or_create_session_id(self) -> str:
        try:
            session_id = self.store.get_str(ANALYTICS_SESSION_KEY)
            if not session_id:
                session_id = generate_session_id()
                self.store.put_str(ANALYTICS_SESSION_KEY, session_id)
            return session_id
        except StorageError as e:
            logger.warning(f"Analytics session id not persisted: {e}")
            return generate_session_id()

    async def track_page_view(self, page: str, data: Optional[Dict[str, Any]] = None) -> None:
        await self.track("page_view", page, data)

    async def track_essay_analyze(self, task_type: str, word_count: int,
                                  band_score: Optional[float] = None) -> None:
        await self.track("essay_analyze", "/analyze", {
            "taskType": task_type,
            "wordCount": word_count,
            "bandScore": band_score,
        })

    async def track_pdf_download(self, report_id: str, band_score: Optional[float] = None) -> None:
        await self.track("download_pdf", f"/result/{report_id}", {
            "reportId": report_id,
            "bandScore": band_score,
        })

    async def track_auth(self, event_type: str, plan: Optional[str] = None) -> None:
        await self.track(event_type, "/login", {"plan": plan})

    async def track_funnel_step(self, step: str, page: str = "/",
                                data: Optional[Dict[str, Any]] = None) -> None:
        await self.track("funnel_step", page, {"step": step, **(data or {})})

    async def track(self, event_type: str, page: str, data: Optional[Dict[str, Any]] = None) -> None:
        if not self.enabled:
            logger.debug(f"Analytics (dev): {event_type} {page} {data}")
            return

        try:
            await self.client.track_event(event_type, page, data, self.session_id)
        except BandlyError as e:
            logger.warning(f"Analytics tracking failed: {e.message}")
