#!/usr/bin/env python3
"""
BandLy CLI - Main Entry Point

Usage:
    bandly analyze essay.txt --task task2    # Score an essay file
    bandly analyze                           # Type or paste the essay
    bandly report abc123 --pdf               # Show a report, save its PDF
    bandly login                             # Login to your account
    bandly history --sort score              # Your past essays
    bandly --help                            # Show help
"""

import argparse
import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.prompt import Confirm, Prompt

from bandly import __version__
from bandly.admin import AdminConsole, BlogPost, PromptTemplate
from bandly.analytics import Analytics
from bandly.api_client import BandlyAPIClient
from bandly.auth import AuthManager
from bandly.config import BandlyConfig
from bandly.essays import (
    AnalysisSuccess,
    EssayAnalysisResult,
    SubmissionFlow,
    TaskType,
    compute_word_count,
    notice_for,
)
from bandly.exceptions import (
    AuthenticationError,
    AuthorizationError,
    BandlyError,
    ValidationError,
    error_response,
)
from bandly.feedback import (
    FEATURE_USE_DELAY,
    RESULT_VIEW_DELAY,
    FeedbackPromptController,
    ViewScope,
    force_feedback_prompt,
)
from bandly.history import (
    DashboardSummary,
    EssayHistoryItem,
    calculate_stats,
    filter_and_sort,
)
from bandly.logging_config import get_logger, setup_logging
from bandly.prompts import feedback_presenter, read_essay_interactive
from bandly.renderer import ResponseRenderer
from bandly.session import SessionContext
from bandly.storage import JSONFileStore

logger = get_logger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI"""
    parser = argparse.ArgumentParser(
        prog="bandly",
        description="BandLy - instant IELTS Writing band scores from your terminal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bandly analyze essay.txt                 Score a Task 2 essay
  bandly analyze chart.txt --task task1    Score a Task 1 report
  cat essay.txt | bandly analyze           Read the essay from stdin
  bandly report abc123 --pdf               Save the PDF report
  bandly signup                            Create a free account
  bandly history --task task2 --sort score Best Task 2 essays first

Requirements:
  Essays must be between 150 and 320 words.
  Anonymous users get a small daily quota; logged-in users get more.
        """
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--api-url", type=str, help="BandLy API base URL (or set BANDLY_API_URL)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--log-level", type=str, help="Log level (default: WARNING)")
    parser.add_argument(
        "--output-format",
        choices=["text", "json"],
        help="Output format (default: text)"
    )
    parser.add_argument(
        "--no-feedback",
        action="store_true",
        help="Never show the feedback prompt during this run"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Essays
    analyze_parser = subparsers.add_parser("analyze", help="Score an essay")
    analyze_parser.add_argument("file", nargs="?", help="Essay text file (stdin or editor if omitted)")
    analyze_parser.add_argument(
        "--task", "-t",
        choices=[t.value for t in TaskType],
        default=TaskType.TASK2.value,
        help="IELTS task type (default: task2)"
    )

    report_parser = subparsers.add_parser("report", help="Show a public report")
    report_parser.add_argument("public_id", help="Report ID")
    report_parser.add_argument(
        "--pdf",
        nargs="?",
        const="",
        metavar="PATH",
        help="Also download the PDF (default: ielts-report-<id>.pdf)"
    )

    # Account
    subparsers.add_parser("login", help="Login to BandLy")
    subparsers.add_parser("signup", help="Create an account")
    subparsers.add_parser("logout", help="Logout")
    subparsers.add_parser("whoami", help="Show current user info")

    profile_parser = subparsers.add_parser("profile", help="Update or delete your account")
    profile_parser.add_argument("--email", type=str, help="New email address")
    profile_parser.add_argument("--password", action="store_true", help="Change password")
    profile_parser.add_argument("--delete", action="store_true", help="Delete your account")

    history_parser = subparsers.add_parser("history", help="Your essay history")
    history_parser.add_argument("--task", choices=["all", "task1", "task2"], default="all")
    history_parser.add_argument("--sort", choices=["date", "score"], default="date")

    subparsers.add_parser("dashboard", help="Your progress summary")

    delete_parser = subparsers.add_parser("delete-essay", help="Delete an essay from your history")
    delete_parser.add_argument("essay_id", type=int)

    # Feedback
    feedback_parser = subparsers.add_parser("feedback", help="Send product feedback")
    feedback_group = feedback_parser.add_mutually_exclusive_group()
    feedback_group.add_argument("--force", action="store_true", help="Open the feedback prompt now (default)")
    feedback_group.add_argument("--status", action="store_true", help="Show feedback prompt state")
    feedback_group.add_argument("--reset", action="store_true", help="Reset feedback prompt state")

    # Admin
    admin_parser = subparsers.add_parser("admin", help="Admin back-office")
    admin_sub = admin_parser.add_subparsers(dest="admin_command", required=True)

    users_parser = admin_sub.add_parser("users", help="List users")
    users_parser.add_argument("--page", type=int, default=1)
    users_parser.add_argument("--search", type=str)
    users_parser.add_argument("--role", choices=["user", "admin"])

    set_user_parser = admin_sub.add_parser("set-user", help="Change a user's plan or role")
    set_user_parser.add_argument("user_id", type=int)
    set_user_parser.add_argument("--plan", choices=["free", "pro"])
    set_user_parser.add_argument("--role", choices=["user", "admin"])

    delete_user_parser = admin_sub.add_parser("delete-user", help="Delete a user")
    delete_user_parser.add_argument("user_id", type=int)

    blog_parser = admin_sub.add_parser("blog", help="Manage blog posts")
    blog_parser.add_argument("action", choices=["list", "create", "update", "delete"])
    blog_parser.add_argument("--id", type=int, dest="item_id")
    blog_parser.add_argument("--title", type=str)
    blog_parser.add_argument("--content-file", type=str)
    blog_parser.add_argument("--slug", type=str)
    blog_parser.add_argument("--excerpt", type=str)
    blog_parser.add_argument("--category", type=str)
    blog_parser.add_argument("--tags", type=str, help="Comma separated")
    blog_parser.add_argument("--read-time", type=str)
    blog_parser.add_argument("--publish", action="store_true")
    blog_parser.add_argument("--unpublish", action="store_true")

    prompts_parser = admin_sub.add_parser("prompts", help="Manage AI prompt templates")
    prompts_parser.add_argument("action", choices=["list", "create", "update", "delete"])
    prompts_parser.add_argument("--id", type=int, dest="item_id")
    prompts_parser.add_argument("--name", type=str)
    prompts_parser.add_argument("--prompt-file", type=str)
    prompts_parser.add_argument("--description", type=str)
    prompts_parser.add_argument("--type", type=str, dest="prompt_type")
    prompts_parser.add_argument("--activate", action="store_true")
    prompts_parser.add_argument("--deactivate", action="store_true")

    return parser


@dataclass
class App:
    """Everything a command needs, wired once per run"""
    config: BandlyConfig
    console: Console
    renderer: ResponseRenderer
    session: SessionContext
    client: BandlyAPIClient
    auth: AuthManager
    analytics: Analytics
    feedback: FeedbackPromptController
    interactive: bool

    @property
    def json_output(self) -> bool:
        return self.config.output_format == "json"


def build_config(args: argparse.Namespace) -> BandlyConfig:
    config = BandlyConfig.load_default()
    if args.api_url:
        config.api_base_url = args.api_url.rstrip("/")
    if args.verbose:
        config.verbose = True
        config.log_level = "DEBUG"
    if args.log_level:
        config.log_level = args.log_level
    if args.output_format:
        config.output_format = args.output_format
    return config


def build_app(args: argparse.Namespace, console: Console) -> App:
    config = build_config(args)
    setup_logging(config.log_level, config.log_file, config.json_logs)

    store = JSONFileStore(config.storage_file)
    session = SessionContext(store)
    client = BandlyAPIClient(config, session)
    interactive = sys.stdin.isatty() and config.output_format == "text" and not args.no_feedback

    feedback = FeedbackPromptController(
        store,
        sender=client.submit_feedback,
        presenter=feedback_presenter(console),
        current_url=f"bandly://{args.command or 'help'}"
    )
    feedback.install_debug_hook()

    return App(
        config=config,
        console=console,
        renderer=ResponseRenderer(console),
        session=session,
        client=client,
        auth=AuthManager(client, session),
        analytics=Analytics(client, store, enabled=not config.is_local_api),
        feedback=feedback,
        interactive=interactive,
    )


async def keep_view_open(app: App, scope: ViewScope, delay: float) -> None:
    """
    Let a scheduled feedback trigger fire before the command exits.

    Waits only when the trigger could actually open the prompt; otherwise
    the scope is closed right away and the trigger is cancelled.
    """
    if app.interactive and app.feedback.eligible_in(delay):
        await scope.wait()
    scope.close()


# ==================== Essays ====================

async def read_essay(app: App, file: Optional[str], task: TaskType) -> str:
    if file:
        return Path(file).read_text(encoding="utf-8")
    if not sys.stdin.isatty():
        return sys.stdin.read()

    app.console.print("[bold]Paste or type your essay.[/bold] [dim]Esc+Enter to submit.[/dim]")
    label = "Task 1" if task == TaskType.TASK1 else "Task 2"
    return await read_essay_interactive(label)


async def cmd_analyze(app: App, args: argparse.Namespace) -> int:
    task = TaskType(args.task)
    text = await read_essay(app, args.file, task)

    async with ViewScope("result") as scope:
        flow = SubmissionFlow(app.client, feedback=app.feedback if app.interactive else None, scope=scope)

        if app.json_output:
            outcome = await flow.submit(text, task)
        else:
            app.renderer.render_word_count(compute_word_count(text))
            with app.console.status("[cyan]Analyzing your essay...[/cyan]"):
                outcome = await flow.submit(text, task)

        if not isinstance(outcome, AnalysisSuccess):
            notice = notice_for(outcome)
            if app.json_output:
                app.console.print_json(data=error_response(
                    BandlyError(notice.message, code=notice.kind.value.upper())
                ))
            else:
                app.renderer.render_notice(notice)
            return 1

        result = outcome.result
        await app.analytics.track_essay_analyze(task.value, compute_word_count(text), result.overall)

        if app.json_output:
            app.console.print_json(data=result.raw)
            return 0

        app.renderer.render_result(result)
        # "local" results were not saved, so there is no report to fetch
        if result.public_id != "local":
            app.console.print(f"[dim]Download the PDF with:[/dim] [cyan]bandly report {result.public_id} --pdf[/cyan]")
        await keep_view_open(app, scope, RESULT_VIEW_DELAY)
    return 0


async def cmd_report(app: App, args: argparse.Namespace) -> int:
    data = await app.client.get_report(args.public_id)
    result = EssayAnalysisResult.from_dict(data)

    if app.json_output:
        app.console.print_json(data=data)
    else:
        app.renderer.render_result(result)

    if args.pdf is None:
        return 0

    async with ViewScope("report") as scope:
        path = Path(args.pdf or f"ielts-report-{result.public_id}.pdf")
        pdf = await app.client.download_report_pdf(result.public_id)
        path.write_bytes(pdf)
        await app.analytics.track_pdf_download(result.public_id, result.overall)
        app.renderer.render_success(f"PDF saved to {path}")

        if app.interactive:
            app.feedback.trigger_on_feature_use(scope)
            await keep_view_open(app, scope, FEATURE_USE_DELAY)
    return 0


# ==================== Account ====================

async def cmd_login(app: App, args: argparse.Namespace) -> int:
    email = Prompt.ask("[bold]Email[/bold]", console=app.console)
    password = Prompt.ask("[bold]Password[/bold]", password=True, console=app.console)

    user = await app.auth.login(email, password)
    await app.analytics.track_auth("login", user.plan)
    app.console.print("\n[green]✓ Login successful![/green]")
    app.console.print(f"Welcome, [bold]{user.name}[/bold]!")
    return 0


async def cmd_signup(app: App, args: argparse.Namespace) -> int:
    email = Prompt.ask("[bold]Email[/bold]", console=app.console)
    name = Prompt.ask("[bold]Name[/bold] [dim](optional)[/dim]", default="", console=app.console)
    password = Prompt.ask("[bold]Password[/bold]", password=True, console=app.console)

    user = await app.auth.signup(email, password, name or None)
    await app.analytics.track_auth("signup", user.plan)
    app.console.print("\n[green]✓ Account created![/green]")
    app.console.print(f"Welcome, [bold]{user.name}[/bold]! You now get more free analyses every day.")
    return 0


async def cmd_logout(app: App, args: argparse.Namespace) -> int:
    app.auth.logout()
    app.renderer.render_success("Logged out")
    return 0


async def require_user(app: App):
    user = await app.auth.fetch_profile()
    if user is None:
        raise AuthenticationError("Please login first")
    return user


async def cmd_whoami(app: App, args: argparse.Namespace) -> int:
    user = await require_user(app)
    app.renderer.render_user(user)
    return 0


async def cmd_profile(app: App, args: argparse.Namespace) -> int:
    await require_user(app)

    if args.delete:
        confirmation = Prompt.ask(
            "This permanently deletes all your essays and data. Type [bold]DELETE[/bold] to confirm",
            console=app.console
        )
        if confirmation != "DELETE":
            app.renderer.render_info("Cancelled")
            return 0
        await app.auth.delete_account()
        await app.analytics.track_funnel_step("account_deleted", "/profile")
        app.renderer.render_success("Your account has been deleted.")
        return 0

    current_password = new_password = confirm_password = None
    if args.password:
        current_password = Prompt.ask("Current password", password=True, console=app.console)
        new_password = Prompt.ask("New password", password=True, console=app.console)
        confirm_password = Prompt.ask("Confirm new password", password=True, console=app.console)

    await app.auth.update_profile(
        email=args.email,
        current_password=current_password,
        new_password=new_password,
        confirm_password=confirm_password
    )
    await app.analytics.track_funnel_step("profile_updated", "/profile", {
        "emailChanged": bool(args.email),
        "passwordChanged": bool(new_password),
    })
    app.renderer.render_success("Profile updated successfully!")
    return 0


async def cmd_history(app: App, args: argparse.Namespace) -> int:
    await require_user(app)
    await app.analytics.track_page_view("/history")

    items = [EssayHistoryItem.from_dict(i) for i in await app.client.get_history()]
    app.renderer.render_history(filter_and_sort(items, args.task, args.sort), calculate_stats(items))
    return 0


async def cmd_dashboard(app: App, args: argparse.Namespace) -> int:
    await require_user(app)
    await app.analytics.track_page_view("/dashboard")

    summary = DashboardSummary.from_dict(await app.client.get_dashboard())
    app.renderer.render_dashboard(summary)
    return 0


async def cmd_delete_essay(app: App, args: argparse.Namespace) -> int:
    await require_user(app)
    if not Confirm.ask(f"Delete essay {args.essay_id}? This cannot be undone", default=False, console=app.console):
        return 0

    await app.client.delete_essay(args.essay_id)
    await app.analytics.track_funnel_step("essay_deleted", "/history", {"essayId": args.essay_id})
    app.renderer.render_success(f"Essay {args.essay_id} deleted")
    return 0


# ==================== Feedback ====================

async def cmd_feedback(app: App, args: argparse.Namespace) -> int:
    if args.status:
        app.renderer.render_feedback_status(app.feedback.state, app.feedback.should_show())
        return 0

    if args.reset:
        app.feedback.reset()
        app.renderer.render_success("Feedback prompt state reset")
        return 0

    if not sys.stdin.isatty():
        raise ValidationError("Feedback needs an interactive terminal")
    await force_feedback_prompt()
    return 0


# ==================== Admin ====================

def _read_optional_file(path: Optional[str]) -> Optional[str]:
    return Path(path).read_text(encoding="utf-8") if path else None


async def cmd_admin(app: App, args: argparse.Namespace) -> int:
    admin = AdminConsole(app.client)
    command = args.admin_command

    if command == "users":
        app.renderer.render_users(await admin.list_users(page=args.page, search=args.search, role=args.role))
    elif command == "set-user":
        await admin.update_user(args.user_id, plan=args.plan, role=args.role)
        app.renderer.render_success(f"User {args.user_id} updated")
    elif command == "delete-user":
        if Confirm.ask(f"Delete user {args.user_id}? This cannot be undone", default=False, console=app.console):
            await admin.delete_user(args.user_id)
            app.renderer.render_success(f"User {args.user_id} deleted")
    elif command == "blog":
        await _admin_blog(app, admin, args)
    elif command == "prompts":
        await _admin_prompts(app, admin, args)
    return 0


def _require_id(args: argparse.Namespace) -> int:
    if args.item_id is None:
        raise ValidationError("--id is required for this action", field="id")
    return args.item_id


async def _admin_blog(app: App, admin: AdminConsole, args: argparse.Namespace) -> None:
    if args.action == "list":
        app.renderer.render_blog_posts(await admin.list_blog_posts())
        return

    if args.action == "delete":
        post_id = _require_id(args)
        await admin.delete_blog_post(post_id)
        app.renderer.render_success(f"Blog post {post_id} deleted")
        return

    content = _read_optional_file(args.content_file)
    if args.action == "create":
        post = BlogPost(
            title=args.title or "",
            content=content or "",
            slug=args.slug or "",
            excerpt=args.excerpt or "",
            category=args.category or "general",
            tags=args.tags or [],
            read_time=args.read_time or "5 min",
            is_published=args.publish,
        )
    else:
        post_id = _require_id(args)
        existing = {p.id: p for p in await admin.list_blog_posts()}
        if post_id not in existing:
            raise BandlyError(f"Blog post {post_id} not found", code="NOT_FOUND")
        post = existing[post_id]
        post.title = args.title or post.title
        post.content = content if content is not None else post.content
        post.slug = args.slug or post.slug
        post.excerpt = args.excerpt if args.excerpt is not None else post.excerpt
        post.category = args.category or post.category
        if args.tags is not None:
            post.tags = [t.strip() for t in args.tags.split(",") if t.strip()]
        post.read_time = args.read_time or post.read_time
        if args.publish:
            post.is_published = True
        if args.unpublish:
            post.is_published = False

    await admin.save_blog_post(post)
    app.renderer.render_success(f"Blog post '{post.title}' saved")


async def _admin_prompts(app: App, admin: AdminConsole, args: argparse.Namespace) -> None:
    if args.action == "list":
        app.renderer.render_prompts(await admin.list_prompts())
        return

    if args.action == "delete":
        prompt_id = _require_id(args)
        await admin.delete_prompt(prompt_id)
        app.renderer.render_success(f"Prompt {prompt_id} deleted")
        return

    text = _read_optional_file(args.prompt_file)
    if args.action == "create":
        prompt = PromptTemplate(
            name=args.name or "",
            prompt=text or "",
            description=args.description or "",
            type=args.prompt_type or "scoring",
            is_active=not args.deactivate,
        )
    else:
        prompt_id = _require_id(args)
        existing = {p.id: p for p in await admin.list_prompts()}
        if prompt_id not in existing:
            raise BandlyError(f"Prompt {prompt_id} not found", code="NOT_FOUND")
        prompt = existing[prompt_id]
        prompt.name = args.name or prompt.name
        prompt.prompt = text if text is not None else prompt.prompt
        prompt.description = args.description if args.description is not None else prompt.description
        prompt.type = args.prompt_type or prompt.type
        if args.activate:
            prompt.is_active = True
        if args.deactivate:
            prompt.is_active = False

    await admin.save_prompt(prompt)
    app.renderer.render_success(f"Prompt '{prompt.name}' saved")


COMMANDS = {
    "analyze": cmd_analyze,
    "report": cmd_report,
    "login": cmd_login,
    "signup": cmd_signup,
    "logout": cmd_logout,
    "whoami": cmd_whoami,
    "profile": cmd_profile,
    "history": cmd_history,
    "dashboard": cmd_dashboard,
    "delete-essay": cmd_delete_essay,
    "feedback": cmd_feedback,
    "admin": cmd_admin,
}


async def run_command(app: App, args: argparse.Namespace) -> int:
    """Run one command and map every failure to a notice and exit code 1"""
    try:
        return await COMMANDS[args.command](app, args)
    except AuthenticationError as e:
        logger.debug(f"Authentication error: {e.message}")
        if app.json_output:
            app.console.print_json(data=error_response(e))
        else:
            app.renderer.render_login_required()
        return 1
    except AuthorizationError as e:
        if app.json_output:
            app.console.print_json(data=error_response(e))
        else:
            app.renderer.render_error("Not authorized", "This command needs an admin account.")
        return 1
    except ValidationError as e:
        if app.json_output:
            app.console.print_json(data=error_response(e))
        else:
            app.renderer.render_warning(e.message)
        return 1
    except BandlyError as e:
        if app.config.verbose:
            logger.log_error_with_context(e, args.command)
        if app.json_output:
            app.console.print_json(data=error_response(e))
        else:
            app.renderer.render_error(e.message)
        return 1
    finally:
        if app.interactive:
            await app.feedback.trigger_on_page_leave()
        await app.client.aclose()


def main():
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args()

    console = Console()

    if not args.command:
        parser.print_help()
        sys.exit(0)

    app = build_app(args, console)

    try:
        exit_code = asyncio.run(run_command(app, args))
    except KeyboardInterrupt:
        console.print("\n\nGoodbye! 👋")
        sys.exit(0)
    except OSError as e:
        console.print(f"\n[red]❌ Error: {e}[/red]")
        sys.exit(1)
    except Exception as e:
        if app.config.verbose:
            import traceback
            traceback.print_exc()
        else:
            console.print(f"\n[red]❌ Error: {e}[/red]")
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
