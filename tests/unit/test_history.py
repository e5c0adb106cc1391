"""
Unit Tests for Essay History and Dashboard helpers
"""
from datetime import datetime, timezone

import pytest

from bandly.history import (
    DashboardSummary,
    EssayHistoryItem,
    band_color,
    calculate_stats,
    filter_and_sort,
    parse_timestamp,
)


def _item(item_id, task_type, overall, created_at):
    return EssayHistoryItem.from_dict({
        "id": item_id,
        "publicId": f"p{item_id}",
        "taskType": task_type,
        "overall": overall,
        "cefr": "B2",
        "createdAt": created_at,
        "bands": {"ta": overall, "cc": overall, "lr": overall, "gra": overall},
        "wordCount": 250,
    })


@pytest.fixture
def items():
    return [
        _item(1, "task2", 6.0, "2024-05-01T09:00:00Z"),
        _item(2, "task1", 7.5, "2024-05-20T09:00:00Z"),
        _item(3, "task2", 5.5, "2024-04-10T09:00:00Z"),
    ]


class TestParsing:
    """Test API record parsing"""

    def test_parse_go_timestamp(self):
        parsed = parse_timestamp("2024-05-01T09:00:00Z")

        assert parsed == datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value,micro", [
        ("2025-01-15T10:30:00.12345Z", 123450),
        ("2025-01-15T10:30:00.123456789Z", 123456),
        ("2025-01-15T10:30:00.5+05:30", 500000),
    ])
    def test_parse_nano_fractions(self, value, micro):
        parsed = parse_timestamp(value)

        assert parsed.microsecond == micro
        assert parsed.second == 0
        assert parsed.utcoffset() is not None

    def test_missing_timestamp_is_epoch(self):
        assert parse_timestamp(None).year == 1970

    def test_history_item_fields(self, items):
        assert items[0].public_id == "p1"
        assert items[0].bands.gra == 6.0
        assert items[0].word_count == 250

    def test_dashboard_summary(self):
        summary = DashboardSummary.from_dict({
            "user": {"email": "a@b.com", "plan": "pro", "joinedAt": "2024-01-01T00:00:00Z"},
            "stats": {"totalEssays": 4, "averageScore": 6.75, "monthlyCount": 2,
                      "improvement": "+0.5", "recentScores": [6, 7, 7.5]},
        })

        assert summary.plan == "pro"
        assert summary.total_essays == 4
        assert summary.recent_scores == [6.0, 7.0, 7.5]
        assert summary.joined_at.year == 2024


class TestFilterAndSort:
    """Test history list controls"""

    def test_newest_first_by_default(self, items):
        assert [i.id for i in filter_and_sort(items)] == [2, 1, 3]

    def test_highest_score_first(self, items):
        assert [i.id for i in filter_and_sort(items, sort_by="score")] == [2, 1, 3]

    def test_task_filter(self, items):
        assert [i.id for i in filter_and_sort(items, task_filter="task2")] == [1, 3]


class TestStats:
    """Test summary statistics"""

    def test_empty(self):
        stats = calculate_stats([])

        assert stats.total == 0
        assert stats.average == 0.0

    def test_values(self, items):
        stats = calculate_stats(items, now=datetime(2024, 5, 25, tzinfo=timezone.utc))

        assert stats.total == 3
        assert stats.highest == 7.5
        assert stats.average == pytest.approx(19.0 / 3)
        assert stats.this_month == 2


@pytest.mark.parametrize("score,color", [
    (9.0, "green"), (8.5, "green"), (7.0, "blue"), (6.5, "yellow"), (5.0, "dark_orange"), (4.5, "red"),
])
def test_band_color(score, color):
    assert band_color(score) == color
