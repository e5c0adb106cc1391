"""
Essay submission and result contract

Client side of POST /api/essays/analyze:
  - word-count validation before anything is sent
  - decoding the three response shapes the endpoint returns (result,
    rate limit, error) into one outcome type
  - the submission state machine used by the analyze command

    IDLE -> VALIDATING -> REJECTED -> IDLE
                       -> SUBMITTING -> SUCCESS
                                     -> RATE_LIMITED -> IDLE
                                     -> FAILED -> IDLE
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from bandly.exceptions import NetworkError, ValidationError
from bandly.feedback import FeedbackPromptController, ViewScope
from bandly.logging_config import get_logger

logger = get_logger(__name__)


MIN_WORDS = 150
MAX_WORDS = 320

ANALYSIS_FAILED_MESSAGE = "Analysis failed"
NETWORK_ERROR_MESSAGE = "Network error. Please try again."
RATE_LIMIT_FALLBACK_MESSAGE = "Too many requests. Please try again later."


class TaskType(str, Enum):
    """IELTS Writing task"""
    TASK1 = "task1"
    TASK2 = "task2"


# ==================== Validation ====================

def compute_word_count(text: str) -> int:
    """Whitespace-delimited tokens of the trimmed text"""
    return len(text.split())


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: Optional[str] = None


def validate(word_count: int) -> ValidationResult:
    if word_count < MIN_WORDS:
        return ValidationResult(False, "too short")
    if word_count > MAX_WORDS:
        return ValidationResult(False, "too long")
    return ValidationResult(True)


@dataclass
class EssayAnalysisRequest:
    text: str
    task_type: TaskType = TaskType.TASK2

    def __post_init__(self):
        try:
            self.task_type = TaskType(self.task_type)
        except ValueError:
            raise ValidationError(f"Unknown task type: {self.task_type}", field="taskType")

    @property
    def word_count(self) -> int:
        return compute_word_count(self.text)

    def to_payload(self) -> Dict[str, str]:
        return {"text": self.text, "taskType": self.task_type.value}


# ==================== Result ====================

@dataclass(frozen=True)
class BandScores:
    """Task Achievement, Coherence & Cohesion, Lexical Resource, Grammar"""
    ta: float
    cc: float
    lr: float
    gra: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BandScores":
        return cls(
            ta=float(data.get("ta", 0)),
            cc=float(data.get("cc", 0)),
            lr=float(data.get("lr", 0)),
            gra=float(data.get("gra", 0)),
        )


@dataclass(frozen=True)
class EssayAnalysisResult:
    """Scores returned by the server; display-only"""
    public_id: str
    overall: float
    cefr: str
    bands: BandScores
    feedback: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EssayAnalysisResult":
        return cls(
            public_id=str(data.get("publicId") or "local"),
            overall=float(data.get("overall", 0)),
            cefr=str(data.get("cefr", "")),
            bands=BandScores.from_dict(data.get("bands") or {}),
            feedback=str(data.get("feedback") or ""),
            raw=dict(data),
        )


# ==================== Outcomes ====================

@dataclass(frozen=True)
class LocalRejection:
    """Rejected before any request was sent"""
    word_count: int
    reason: str
    kind: str = "rejected"

    @property
    def message(self) -> str:
        return f"Essay must be {MIN_WORDS}-{MAX_WORDS} words ({self.reason}: {self.word_count} words)."


@dataclass(frozen=True)
class AnalysisSuccess:
    result: EssayAnalysisResult
    kind: str = "success"


@dataclass(frozen=True)
class RateLimited:
    """HTTP 429. Quota numbers are whatever the server says."""
    message: str
    suggest_login: bool = False
    user_type: str = ""
    remaining: Optional[int] = None
    kind: str = "rate_limited"


@dataclass(frozen=True)
class AnalysisFailed:
    message: str
    status_code: int = 0
    kind: str = "failed"


@dataclass(frozen=True)
class NetworkFailure:
    message: str = NETWORK_ERROR_MESSAGE
    kind: str = "network"


AnalysisOutcome = Union[AnalysisSuccess, RateLimited, AnalysisFailed, NetworkFailure]
SubmissionOutcome = Union[LocalRejection, AnalysisSuccess, RateLimited, AnalysisFailed, NetworkFailure]


def decode_analysis_response(status_code: int, body: Any) -> AnalysisOutcome:
    """Map a status code and parsed body to an outcome"""
    data = body if isinstance(body, dict) else {}

    if 200 <= status_code < 300:
        if not data:
            return AnalysisFailed(ANALYSIS_FAILED_MESSAGE, status_code)
        try:
            return AnalysisSuccess(EssayAnalysisResult.from_dict(data))
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning(f"Malformed analysis result: {e}")
            return AnalysisFailed(ANALYSIS_FAILED_MESSAGE, status_code)

    if status_code == 429:
        remaining = data.get("remaining")
        return RateLimited(
            message=data.get("message") or data.get("error") or RATE_LIMIT_FALLBACK_MESSAGE,
            suggest_login=bool(data.get("suggestLogin", False)),
            user_type=str(data.get("userType") or ""),
            remaining=remaining if isinstance(remaining, int) else None,
        )

    return AnalysisFailed(data.get("error") or ANALYSIS_FAILED_MESSAGE, status_code)


async def submit_for_analysis(request: EssayAnalysisRequest, client) -> AnalysisOutcome:
    """
    Send the essay for scoring.

    The bearer token is attached by the client when the session has one.
    Never raises for server or transport problems and never retries.
    """
    try:
        response = await client.analyze_essay(request.text, request.task_type.value)
    except NetworkError:
        return NetworkFailure()

    try:
        body = response.json()
    except ValueError:
        body = None

    outcome = decode_analysis_response(response.status_code, body)
    logger.info(
        f"Essay analysis finished: {outcome.kind}",
        extra={"status_code": response.status_code, "task_type": request.task_type.value}
    )
    return outcome


# ==================== Notices ====================

class NoticeKind(str, Enum):
    VALIDATION = "validation"
    LOGIN_SUGGESTION = "login_suggestion"
    RATE_LIMIT = "rate_limit"
    ERROR = "error"
    NETWORK = "network"


@dataclass(frozen=True)
class Notice:
    kind: NoticeKind
    message: str


def notice_for(outcome: SubmissionOutcome) -> Optional[Notice]:
    """User-facing notice for an outcome; None on success"""
    if isinstance(outcome, AnalysisSuccess):
        return None
    if isinstance(outcome, LocalRejection):
        return Notice(NoticeKind.VALIDATION, outcome.message)
    if isinstance(outcome, RateLimited):
        if outcome.suggest_login:
            return Notice(NoticeKind.LOGIN_SUGGESTION, outcome.message)
        return Notice(NoticeKind.RATE_LIMIT, outcome.message)
    if isinstance(outcome, NetworkFailure):
        return Notice(NoticeKind.NETWORK, outcome.message)
    return Notice(NoticeKind.ERROR, outcome.message)


# ==================== State machine ====================

class SubmissionState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    REJECTED = "rejected"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


_OUTCOME_STATES = {
    "success": SubmissionState.SUCCESS,
    "rate_limited": SubmissionState.RATE_LIMITED,
    "failed": SubmissionState.FAILED,
    "network": SubmissionState.FAILED,
}


class SubmissionFlow:
    """
    Drives one essay form.

    The text is kept on every path except success, so the user can edit and
    retry. A submit() while another one is in flight is ignored; that guard
    is best effort, nothing cancels the request already sent.
    """

    def __init__(
        self,
        client,
        feedback: Optional[FeedbackPromptController] = None,
        scope: Optional[ViewScope] = None
    ):
        self.client = client
        self.feedback = feedback
        self.scope = scope

        self.text = ""
        self.task_type = TaskType.TASK2
        self.state = SubmissionState.IDLE
        self.result: Optional[EssayAnalysisResult] = None
        self.last_outcome: Optional[SubmissionOutcome] = None
        self.transitions: List[SubmissionState] = [SubmissionState.IDLE]

    def _move(self, state: SubmissionState) -> None:
        self.state = state
        self.transitions.append(state)

    @property
    def word_count(self) -> int:
        return compute_word_count(self.text)

    @property
    def can_submit(self) -> bool:
        return self.state != SubmissionState.SUBMITTING and validate(self.word_count).valid

    async def submit(self, text: Optional[str] = None,
                     task_type: Optional[TaskType] = None) -> Optional[SubmissionOutcome]:
        if self.state == SubmissionState.SUBMITTING:
            logger.debug("Submission already in progress")
            return None

        if text is not None:
            self.text = text
        if task_type is not None:
            self.task_type = TaskType(task_type)

        self.result = None
        self._move(SubmissionState.VALIDATING)
        count = self.word_count
        check = validate(count)
        if not check.valid:
            outcome: SubmissionOutcome = LocalRejection(count, check.reason)
            self.last_outcome = outcome
            self._move(SubmissionState.REJECTED)
            self._move(SubmissionState.IDLE)
            return outcome

        self._move(SubmissionState.SUBMITTING)
        request = EssayAnalysisRequest(self.text, self.task_type)
        try:
            outcome = await submit_for_analysis(request, self.client)
        except Exception:
            self._move(SubmissionState.FAILED)
            self._move(SubmissionState.IDLE)
            raise
        self.last_outcome = outcome
        self._move(_OUTCOME_STATES[outcome.kind])

        if isinstance(outcome, AnalysisSuccess):
            self.result = outcome.result
            if self.feedback and self.scope:
                self.feedback.trigger_on_result_view(self.scope)
        else:
            self._move(SubmissionState.IDLE)

        return outcome

    def reset(self) -> None:
        """Leave the result view and start a new essay"""
        self.text = ""
        self.result = None
        self.last_outcome = None
        self._move(SubmissionState.IDLE)
