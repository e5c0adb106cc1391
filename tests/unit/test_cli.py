"""
Unit Tests for the CLI entry point
Tests for: argument parsing, command dispatch, error mapping, rendering
"""
import io
import json

import httpx
import pytest
from rich.console import Console

from bandly.analytics import Analytics
from bandly.auth import AuthManager
from bandly.essays import Notice, NoticeKind
from bandly.feedback import FeedbackPromptController, FeedbackState
from bandly.main import App, create_parser, run_command
from bandly.renderer import ResponseRenderer

RESULT_BODY = {
    "overall": 7.0,
    "cefr": "C1",
    "bands": {"ta": 7, "cc": 7, "lr": 7.5, "gra": 6.5},
    "feedback": "Clear position throughout.",
    "publicId": "abc123",
}


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120, force_terminal=False, color_system=None)


@pytest.fixture
def make_app(make_client, config, session, store, clock, console):
    """App wired to a mock API; nothing is interactive"""
    def _make(handler, output_format="text"):
        config.output_format = output_format
        client, transport = make_client(handler)
        app = App(
            config=config,
            console=console,
            renderer=ResponseRenderer(console),
            session=session,
            client=client,
            auth=AuthManager(client, session),
            analytics=Analytics(client, store, enabled=False),
            feedback=FeedbackPromptController(store, sender=client.submit_feedback, clock=clock, user_agent="ua"),
            interactive=False,
        )
        return app, transport
    return _make


def _output(console) -> str:
    return console.file.getvalue()


class TestParser:
    """Test argument parsing"""

    def test_analyze_defaults_to_task2(self):
        args = create_parser().parse_args(["analyze", "essay.txt"])

        assert args.command == "analyze"
        assert args.file == "essay.txt"
        assert args.task == "task2"

    def test_report_pdf_without_path(self):
        args = create_parser().parse_args(["report", "abc123", "--pdf"])

        assert args.public_id == "abc123"
        assert args.pdf == ""

    def test_feedback_flags_are_exclusive(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["feedback", "--status", "--reset"])

    def test_admin_requires_subcommand(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["admin"])

    def test_global_options(self):
        args = create_parser().parse_args(["--api-url", "https://x.example", "--output-format", "json", "history"])

        assert args.api_url == "https://x.example"
        assert args.output_format == "json"
        assert args.sort == "date"


class TestAnalyzeCommand:
    """Test bandly analyze"""

    @pytest.mark.asyncio
    async def test_success_renders_result(self, make_app, make_essay, tmp_path, console):
        essay = tmp_path / "essay.txt"
        essay.write_text(make_essay(200))
        app, transport = make_app(lambda r: httpx.Response(200, json=RESULT_BODY))
        args = create_parser().parse_args(["analyze", str(essay)])

        assert await run_command(app, args) == 0

        out = _output(console)
        assert "Your IELTS Band Analysis" in out
        assert "C1" in out
        assert "bandly report abc123 --pdf" in out
        assert transport.last.url.path == "/api/essays/analyze"

    @pytest.mark.asyncio
    async def test_json_output(self, make_app, make_essay, tmp_path, console):
        essay = tmp_path / "essay.txt"
        essay.write_text(make_essay(200))
        app, _ = make_app(lambda r: httpx.Response(200, json=RESULT_BODY), output_format="json")
        args = create_parser().parse_args(["analyze", str(essay), "--task", "task1"])

        assert await run_command(app, args) == 0
        assert json.loads(_output(console)) == RESULT_BODY

    @pytest.mark.asyncio
    async def test_login_suggestion_notice(self, make_app, make_essay, tmp_path, console):
        essay = tmp_path / "essay.txt"
        essay.write_text(make_essay(200))
        app, _ = make_app(lambda r: httpx.Response(429, json={
            "message": "Sign up for more free analyses", "suggestLogin": True, "userType": "anonymous",
        }))

        assert await run_command(app, create_parser().parse_args(["analyze", str(essay)])) == 1

        out = _output(console)
        assert "Get more free analyses" in out
        assert "Rate limit reached" not in out

    @pytest.mark.asyncio
    async def test_short_essay_is_not_sent(self, make_app, make_essay, tmp_path, console):
        essay = tmp_path / "essay.txt"
        essay.write_text(make_essay(40))
        app, transport = make_app(lambda r: httpx.Response(200, json=RESULT_BODY))

        assert await run_command(app, create_parser().parse_args(["analyze", str(essay)])) == 1
        assert transport.requests == []
        assert "150-320" in _output(console)


class TestErrorMapping:
    """Test failures become notices and exit code 1"""

    @pytest.mark.asyncio
    async def test_logged_out_whoami(self, make_app, console):
        app, transport = make_app(lambda r: httpx.Response(500))

        assert await run_command(app, create_parser().parse_args(["whoami"])) == 1
        assert "bandly login" in _output(console)
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_json_error_body(self, make_app, console, session):
        session.set("t")
        app, _ = make_app(lambda r: httpx.Response(403, json={"error": "Admin access required"}),
                          output_format="json")

        assert await run_command(app, create_parser().parse_args(["admin", "prompts", "list"])) == 1

        body = json.loads(_output(console))
        assert body["success"] is False
        assert body["error"]["code"] == "NOT_AUTHORIZED"

    @pytest.mark.asyncio
    async def test_missing_report(self, make_app, console):
        app, _ = make_app(lambda r: httpx.Response(404, json={"error": "Report not found"}))

        assert await run_command(app, create_parser().parse_args(["report", "zzz"])) == 1
        assert "Report 'zzz' not found" in _output(console)


class TestOtherCommands:
    """Test a few read-only commands end to end"""

    @pytest.mark.asyncio
    async def test_history_table(self, make_app, console, session, test_user_data):
        session.set("t")

        def handler(request):
            if request.url.path == "/api/auth/profile":
                return httpx.Response(200, json={"user": test_user_data})
            return httpx.Response(200, json={"items": [{
                "id": 3, "publicId": "pub3", "taskType": "task2", "overall": 6.5, "cefr": "B2",
                "createdAt": "2024-05-01T09:00:00Z", "bands": {"ta": 6, "cc": 7, "lr": 6.5, "gra": 6.5},
                "wordCount": 260,
            }]})

        app, _ = make_app(handler)

        assert await run_command(app, create_parser().parse_args(["history"])) == 0
        out = _output(console)
        assert "pub3" in out
        assert "1 essays" in out

    @pytest.mark.asyncio
    async def test_feedback_status_and_reset(self, make_app, console, store):
        app, _ = make_app(lambda r: httpx.Response(200))
        app.feedback.dismiss()

        assert await run_command(app, create_parser().parse_args(["feedback", "--status"])) == 0
        assert "Dismissals" in _output(console)

        assert await run_command(app, create_parser().parse_args(["feedback", "--reset"])) == 0
        assert app.feedback.state == FeedbackState()


class TestRenderer:
    """Test notice rendering"""

    def test_generic_rate_limit_panel(self, console):
        ResponseRenderer(console).render_notice(Notice(NoticeKind.RATE_LIMIT, "Too many requests"))

        out = _output(console)
        assert "Rate limit reached" in out
        assert "Too many requests" in out

    def test_network_notice_mentions_api_url(self, console):
        ResponseRenderer(console).render_notice(Notice(NoticeKind.NETWORK, "Network error. Please try again."))

        assert "BANDLY_API_URL" in _output(console)


class TestEssayToolbar:
    """Test the live word counter"""

    @pytest.mark.parametrize("words,status", [(10, "minimum 150"), (200, "ready"), (400, "maximum 320")])
    def test_status(self, make_essay, words, status):
        from bandly.prompts import word_count_toolbar

        toolbar = word_count_toolbar(make_essay(words))

        assert f"<b>{words}</b> words" in toolbar.value
        assert status in toolbar.value
