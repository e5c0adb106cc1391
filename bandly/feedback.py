"""
BandLy Feedback Prompt Policy

Decides when to ask the user for product feedback without pestering them.
The policy state lives in the local store under "bandly_feedback_state":

    {"hasShown": false, "lastShown": 0, "dismissCount": 0, "hasSubmitted": false}

A prompt is never shown when any of these hold (checked in this order):
  1. the user already submitted feedback
  2. the user dismissed the prompt MAX_DISMISSALS times
  3. the last prompt was less than FEEDBACK_COOLDOWN_MS ago
  4. the current session is younger than MIN_SESSION_TIME_MS
Passing all four only makes the user eligible: an unforced trigger then opens
the prompt with probability DISPLAY_PROBABILITY.

The pure functions (should_show, trigger_check, on_dismiss, on_submit,
reset) never touch storage. FeedbackPromptController wraps them, persists
every transition and schedules the delayed trigger points.

Usage:
    controller = FeedbackPromptController(store, sender=client.submit_feedback,
                                          presenter=prompt_for_feedback)
    async with ViewScope("result") as scope:
        controller.trigger_on_result_view(scope)
        ...
"""

import asyncio
import inspect
import platform
import random
import sys
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

from bandly import __version__
from bandly.exceptions import StorageError, ValidationError
from bandly.logging_config import get_logger
from bandly.storage import LocalStore, FEEDBACK_STATE_KEY

logger = get_logger(__name__)


FEEDBACK_COOLDOWN_MS = 7 * 24 * 60 * 60 * 1000  # 7 days
MAX_DISMISSALS = 3
MIN_SESSION_TIME_MS = 30_000
# Unexplained product heuristic, kept as a tunable rather than a rule
DISPLAY_PROBABILITY = 0.3

RESULT_VIEW_DELAY = 5.0  # seconds, lets the user read their scores first
FEATURE_USE_DELAY = 3.0

MAX_COMMENT_LENGTH = 500


def now_ms() -> int:
    """Current time as epoch milliseconds"""
    return int(time.time() * 1000)


def default_user_agent() -> str:
    py = sys.version_info
    return (
        f"bandly-cli/{__version__} "
        f"({platform.system()} {platform.release()}; Python {py.major}.{py.minor}.{py.micro})"
    )


@dataclass(frozen=True)
class FeedbackState:
    """Persisted prompt policy state"""
    has_shown: bool = False
    last_shown: int = 0  # epoch ms, 0 = never
    dismiss_count: int = 0
    has_submitted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hasShown": self.has_shown,
            "lastShown": self.last_shown,
            "dismissCount": self.dismiss_count,
            "hasSubmitted": self.has_submitted,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedbackState":
        return cls(
            has_shown=bool(data.get("hasShown", False)),
            last_shown=int(data.get("lastShown") or 0),
            dismiss_count=max(0, int(data.get("dismissCount") or 0)),
            has_submitted=bool(data.get("hasSubmitted", False)),
        )


@dataclass
class FeedbackSubmission:
    """What the user typed into the feedback prompt"""
    rating: int
    comment: str = ""
    user_email: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.rating, int) or not 1 <= self.rating <= 5:
            raise ValidationError("Rating must be between 1 and 5", field="rating")
        if len(self.comment) > MAX_COMMENT_LENGTH:
            raise ValidationError(
                f"Comment must be at most {MAX_COMMENT_LENGTH} characters", field="comment"
            )

    def to_payload(self, now: int, user_agent: str, url: str) -> Dict[str, Any]:
        """Body for POST /api/feedback"""
        return {
            "rating": self.rating,
            "comment": self.comment,
            "userEmail": self.user_email or "",
            "timestamp": datetime.fromtimestamp(now / 1000, tz=timezone.utc).isoformat(),
            "userAgent": user_agent,
            "url": url,
        }


FeedbackSender = Callable[[Dict[str, Any]], Awaitable[None]]


# ==================== Policy ====================

def should_show(state: FeedbackState, session_start_time: int, now: int) -> bool:
    """Eligibility gate; True only when none of the four blocking rules apply"""
    if state.has_submitted:
        return False

    if state.dismiss_count >= MAX_DISMISSALS:
        return False

    if state.last_shown and (now - state.last_shown) < FEEDBACK_COOLDOWN_MS:
        return False

    if (now - session_start_time) < MIN_SESSION_TIME_MS:
        return False

    return True


def trigger_check(
    state: FeedbackState,
    force_show: bool,
    now: int,
    session_start_time: int,
    rng: Callable[[], float] = random.random,
    probability: float = DISPLAY_PROBABILITY
) -> Tuple[bool, FeedbackState]:
    """
    Decide whether to open the prompt.

    Returns (should_open, next_state). The state is stamped with
    hasShown/lastShown only when the prompt opens.
    """
    if force_show or (should_show(state, session_start_time, now) and rng() < probability):
        return True, replace(state, has_shown=True, last_shown=now)
    return False, state


def on_dismiss(state: FeedbackState) -> FeedbackState:
    return replace(state, dismiss_count=state.dismiss_count + 1)


async def on_submit(
    state: FeedbackState,
    submission: FeedbackSubmission,
    sender: FeedbackSender,
    now: int,
    user_agent: str,
    url: str
) -> FeedbackState:
    """
    Deliver the feedback and mark it submitted.

    Delivery failures are logged and otherwise ignored: the state is marked
    submitted either way so a dropped request never leads to re-prompting.
    """
    try:
        await sender(submission.to_payload(now, user_agent, url))
        logger.info("Feedback submitted", extra={"rating": submission.rating})
    except Exception as e:
        logger.warning(f"Failed to submit feedback: {type(e).__name__}: {e}")

    return replace(state, has_submitted=True)


def reset() -> FeedbackState:
    return FeedbackState()


# ==================== Scheduling ====================

class ViewScope:
    """
    Owns the delayed callbacks started by one view.

    Closing the scope cancels everything still pending, so a view that has
    been torn down never fires a trigger afterwards.
    """

    def __init__(self, name: str = "view"):
        self.name = name
        self.closed = False
        self._tasks: Set[asyncio.Task] = set()

    def schedule(self, delay: float, callback: Callable[[], Awaitable[Any]]) -> Optional[asyncio.Task]:
        """Run callback after delay seconds; must be called from a running loop"""
        if self.closed:
            logger.debug(f"Scope {self.name} is closed, not scheduling")
            return None

        task = asyncio.get_running_loop().create_task(self._run_later(delay, callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_later(self, delay: float, callback: Callable[[], Awaitable[Any]]) -> Any:
        await asyncio.sleep(delay)
        return await callback()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait(self) -> None:
        """Wait for every scheduled callback to finish"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        self.closed = True
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    async def __aenter__(self) -> "ViewScope":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()


# ==================== Controller ====================

Presenter = Callable[["FeedbackPromptController"], Any]

_debug_controller: Optional["FeedbackPromptController"] = None


class FeedbackPromptController:
    """
    Stateful wrapper around the policy.

    Loads the state once, persists every transition synchronously and calls
    the presenter whenever the prompt opens. The presenter is expected to
    finish by calling dismiss() or submit().
    """

    def __init__(
        self,
        store: LocalStore,
        sender: Optional[FeedbackSender] = None,
        presenter: Optional[Presenter] = None,
        clock: Callable[[], int] = now_ms,
        rng: Callable[[], float] = random.random,
        probability: float = DISPLAY_PROBABILITY,
        user_agent: Optional[str] = None,
        current_url: str = "bandly://cli"
    ):
        self.store = store
        self.sender = sender
        self.presenter = presenter
        self.clock = clock
        self.rng = rng
        self.probability = probability
        self.user_agent = user_agent or default_user_agent()
        self.current_url = current_url

        self.session_start_time = clock()
        self.is_open = False
        self.state = self._load()

    def _load(self) -> FeedbackState:
        try:
            data = self.store.get_json(FEEDBACK_STATE_KEY)
        except StorageError as e:
            logger.warning(f"Failed to load feedback state: {e}")
            return FeedbackState()

        if data is None:
            state = FeedbackState()
            self._persist(state)
            return state

        try:
            return FeedbackState.from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed feedback state: {e}")
            return FeedbackState()

    def _persist(self, state: FeedbackState) -> None:
        try:
            self.store.put_json(FEEDBACK_STATE_KEY, state.to_dict())
        except StorageError as e:
            logger.warning(f"Failed to save feedback state: {e}")

    def _set_state(self, state: FeedbackState) -> None:
        self.state = state
        self._persist(state)

    def should_show(self) -> bool:
        return should_show(self.state, self.session_start_time, self.clock())

    def eligible_in(self, seconds: float) -> bool:
        """Whether the eligibility gate will still be open after a trigger delay"""
        return should_show(self.state, self.session_start_time, self.clock() + int(seconds * 1000))

    async def trigger_check(self, force_show: bool = False) -> bool:
        """Open the prompt if the policy allows it; returns whether it opened"""
        if self.is_open:
            return False

        opened, next_state = trigger_check(
            self.state, force_show, self.clock(), self.session_start_time,
            rng=self.rng, probability=self.probability
        )
        if not opened:
            return False

        self._set_state(next_state)
        self.is_open = True
        logger.debug("Feedback prompt opened", extra={"forced": force_show})

        if self.presenter:
            try:
                result = self.presenter(self)
                if inspect.isawaitable(result):
                    await result
            except BaseException:
                self.is_open = False
                raise
        return True

    # Trigger points

    def trigger_on_result_view(self, scope: ViewScope) -> Optional[asyncio.Task]:
        return scope.schedule(RESULT_VIEW_DELAY, self.trigger_check)

    def trigger_on_feature_use(self, scope: ViewScope) -> Optional[asyncio.Task]:
        return scope.schedule(FEATURE_USE_DELAY, self.trigger_check)

    async def trigger_on_page_leave(self) -> bool:
        return await self.trigger_check()

    async def force_show(self) -> bool:
        return await self.trigger_check(force_show=True)

    # User responses

    def dismiss(self) -> None:
        self.is_open = False
        self._set_state(on_dismiss(self.state))

    async def submit(self, submission: FeedbackSubmission) -> None:
        self.is_open = False
        sender = self.sender or _no_sender
        self._set_state(await on_submit(
            self.state, submission, sender, self.clock(), self.user_agent, self.current_url
        ))

    def reset(self) -> None:
        """Restore defaults and erase the persisted record"""
        self.state = reset()
        self.is_open = False
        try:
            self.store.delete(FEEDBACK_STATE_KEY)
        except StorageError as e:
            logger.warning(f"Failed to erase feedback state: {e}")

    def install_debug_hook(self) -> None:
        """Make this controller the target of force_feedback_prompt()"""
        global _debug_controller
        _debug_controller = self


async def _no_sender(payload: Dict[str, Any]) -> None:
    raise RuntimeError("No feedback endpoint configured")


async def force_feedback_prompt() -> bool:
    """Debug hook: force the prompt open on the installed controller"""
    if _debug_controller is None:
        logger.warning("No feedback controller installed")
        return False
    return await _debug_controller.force_show()
