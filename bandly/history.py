"""
Essay history and dashboard helpers
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bandly.essays import BandScores


@dataclass
class EssayHistoryItem:
    id: int
    public_id: str
    task_type: str
    overall: float
    cefr: str
    created_at: datetime
    bands: BandScores
    word_count: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EssayHistoryItem":
        return cls(
            id=int(data.get("id", 0)),
            public_id=str(data.get("publicId", "")),
            task_type=str(data.get("taskType", "")),
            overall=float(data.get("overall", 0)),
            cefr=str(data.get("cefr", "")),
            created_at=parse_timestamp(data.get("createdAt")),
            bands=BandScores.from_dict(data.get("bands") or {}),
            word_count=int(data.get("wordCount", 0)),
        )


@dataclass
class HistoryStats:
    average: float = 0.0
    highest: float = 0.0
    total: int = 0
    this_month: int = 0


@dataclass
class DashboardSummary:
    email: str
    plan: str
    joined_at: Optional[datetime]
    total_essays: int = 0
    average_score: float = 0.0
    monthly_count: int = 0
    improvement: str = ""
    recent_scores: List[float] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DashboardSummary":
        user = data.get("user") or {}
        stats = data.get("stats") or {}
        joined = user.get("joinedAt")
        return cls(
            email=user.get("email", ""),
            plan=user.get("plan", "free"),
            joined_at=parse_timestamp(joined) if joined else None,
            total_essays=int(stats.get("totalEssays", 0)),
            average_score=float(stats.get("averageScore", 0)),
            monthly_count=int(stats.get("monthlyCount", 0)),
            improvement=str(stats.get("improvement", "")),
            recent_scores=[float(s) for s in stats.get("recentScores") or []],
        )


# fromisoformat before 3.11 only takes 3 or 6 fraction digits
_FRACTION = re.compile(r"\.(\d+)(?=[+-]\d\d:\d\d$|$)")


def parse_timestamp(value: Optional[str]) -> datetime:
    """ISO-8601 from the API (Go emits a trailing Z); epoch when missing"""
    if not value:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    value = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value.replace("Z", "+00:00"))
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def filter_and_sort(items: List[EssayHistoryItem], task_filter: str = "all",
                    sort_by: str = "date") -> List[EssayHistoryItem]:
    """Newest first by date, or highest first by score"""
    selected = [i for i in items if task_filter == "all" or i.task_type == task_filter]
    if sort_by == "score":
        return sorted(selected, key=lambda i: i.overall, reverse=True)
    return sorted(selected, key=lambda i: i.created_at, reverse=True)


def calculate_stats(items: List[EssayHistoryItem], now: Optional[datetime] = None) -> HistoryStats:
    if not items:
        return HistoryStats()

    now = now or datetime.now(timezone.utc)
    scores = [i.overall for i in items]
    this_month = sum(
        1 for i in items
        if i.created_at.month == now.month and i.created_at.year == now.year
    )
    return HistoryStats(
        average=sum(scores) / len(scores),
        highest=max(scores),
        total=len(items),
        this_month=this_month,
    )


def band_color(score: float) -> str:
    """rich colour for a band score"""
    if score >= 8.5:
        return "green"
    if score >= 7.0:
        return "blue"
    if score >= 6.0:
        return "yellow"
    if score >= 5.0:
        return "dark_orange"
    return "red"
