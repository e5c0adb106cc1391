"""
Terminal rendering for the BandLy CLI

Every command prints through ResponseRenderer so the look stays consistent:
panels for results and notices, tables for lists.
"""

from typing import List, Optional

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.box import ROUNDED

from bandly.admin import BlogPost, PromptTemplate, UserPage
from bandly.auth import User
from bandly.essays import (
    EssayAnalysisResult,
    MAX_WORDS,
    MIN_WORDS,
    Notice,
    NoticeKind,
)
from bandly.feedback import FeedbackState
from bandly.history import DashboardSummary, EssayHistoryItem, HistoryStats, band_color


BAND_LABELS = {
    "ta": "Task Achievement",
    "cc": "Coherence & Cohesion",
    "lr": "Lexical Resource",
    "gra": "Grammar Range & Accuracy",
}


def format_band(score: float) -> str:
    return f"{score:.1f}"


class ResponseRenderer:
    """Renders command output with rich formatting"""

    def __init__(self, console: Console):
        self.console = console

    # ==================== Status messages ====================

    def render_error(self, message: str, details: Optional[str] = None):
        """Render an error message"""
        error_panel = Panel(
            f"[bold red]{message}[/bold red]" +
            (f"\n\n[dim]{details}[/dim]" if details else ""),
            title="[red]Error[/red]",
            border_style="red"
        )
        self.console.print(error_panel)

    def render_warning(self, message: str):
        self.console.print(f"[yellow]⚠️  {message}[/yellow]")

    def render_success(self, message: str):
        self.console.print(f"[green]✅ {message}[/green]")

    def render_info(self, message: str):
        self.console.print(f"[blue]ℹ️  {message}[/blue]")

    def render_login_required(self):
        self.console.print("\n[red]✗ Authentication required[/red]")
        self.console.print("\nPlease login first:")
        self.console.print("  [cyan]bandly login[/cyan]    Login to your account")
        self.console.print("  [cyan]bandly signup[/cyan]   Create a free account")

    # ==================== Essays ====================

    def render_word_count(self, count: int):
        hint = ""
        if count < MIN_WORDS:
            hint = f" [yellow](minimum {MIN_WORDS})[/yellow]"
        elif count > MAX_WORDS:
            hint = f" [yellow](maximum {MAX_WORDS})[/yellow]"
        self.console.print(f"[dim]{count} words[/dim]{hint}")

    def render_notice(self, notice: Notice):
        """Notice for a non-successful submission"""
        if notice.kind == NoticeKind.LOGIN_SUGGESTION:
            body = Group(
                Text(notice.message),
                Text(""),
                Text.from_markup("Run [cyan]bandly signup[/cyan] to create a free account, "
                                 "or [cyan]bandly login[/cyan] if you already have one."),
            )
            self.console.print(Panel(
                body,
                title="[bold magenta]🎓 Get more free analyses[/bold magenta]",
                border_style="magenta",
                box=ROUNDED
            ))
        elif notice.kind == NoticeKind.RATE_LIMIT:
            self.console.print(Panel(
                f"{notice.message}\n\n[dim]Please try again later.[/dim]",
                title="[yellow]Rate limit reached[/yellow]",
                border_style="yellow"
            ))
        elif notice.kind == NoticeKind.VALIDATION:
            self.render_warning(notice.message)
        elif notice.kind == NoticeKind.NETWORK:
            self.render_error(notice.message, "Check your connection or the API URL (BANDLY_API_URL).")
        else:
            self.render_error(notice.message)

    def render_result(self, result: EssayAnalysisResult):
        """Overall band, CEFR level, four criteria and the written feedback"""
        color = band_color(result.overall)
        header = Text.from_markup(
            f"[dim]Overall Band Score[/dim]\n"
            f"[bold {color}]{format_band(result.overall)}[/bold {color}]\n"
            f"CEFR Level: [bold]{result.cefr or '-'}[/bold]"
        )
        header.justify = "center"

        bands = Table(box=None, show_header=False, expand=True, padding=(0, 2))
        bands.add_column("Criterion")
        bands.add_column("Band", justify="right")
        for key, label in BAND_LABELS.items():
            score = getattr(result.bands, key)
            bands.add_row(label, f"[{band_color(score)}]{format_band(score)}[/{band_color(score)}]")

        parts = [header, Text(""), bands]
        if result.feedback:
            parts += [Text(""), Text.from_markup("[bold]Detailed Feedback[/bold]"), Text(result.feedback)]

        self.console.print(Panel(
            Group(*parts),
            title="[bold cyan]Your IELTS Band Analysis[/bold cyan]",
            border_style="cyan",
            subtitle=f"[dim]report {result.public_id}[/dim]"
        ))

    # ==================== Account ====================

    def render_user(self, user: User):
        table = Table(show_header=False, box=ROUNDED)
        table.add_column("Field", style="dim")
        table.add_column("Value")
        table.add_row("Name", user.name)
        table.add_row("Email", user.email)
        if user.plan:
            table.add_row("Plan", user.plan)
        if user.role:
            table.add_row("Role", user.role)
        if user.created_at:
            table.add_row("Member since", user.created_at)
        self.console.print(table)

    def render_history(self, items: List[EssayHistoryItem], stats: HistoryStats):
        if not items:
            self.render_info("No essays yet. Run [cyan]bandly analyze[/cyan] to score your first one.")
            return

        self.console.print(
            f"[bold]{stats.total}[/bold] essays · average [bold]{stats.average:.1f}[/bold] · "
            f"best [bold]{stats.highest:.1f}[/bold] · {stats.this_month} this month"
        )

        table = Table(box=ROUNDED)
        table.add_column("ID", justify="right", style="dim")
        table.add_column("Date")
        table.add_column("Task")
        table.add_column("Overall", justify="right")
        table.add_column("CEFR")
        table.add_column("TA/CC/LR/GRA")
        table.add_column("Words", justify="right")
        table.add_column("Report", style="dim")

        for item in items:
            color = band_color(item.overall)
            b = item.bands
            table.add_row(
                str(item.id),
                item.created_at.strftime("%b %d, %Y %H:%M"),
                item.task_type,
                f"[{color}]{format_band(item.overall)}[/{color}]",
                item.cefr,
                f"{b.ta:g}/{b.cc:g}/{b.lr:g}/{b.gra:g}",
                str(item.word_count),
                item.public_id,
            )
        self.console.print(table)

    def render_dashboard(self, summary: DashboardSummary):
        lines = [
            f"[bold]{summary.email}[/bold]  [dim]({summary.plan} plan)[/dim]",
            "",
            f"Total essays:   {summary.total_essays}",
            f"Average score:  {summary.average_score:.1f}",
            f"This month:     {summary.monthly_count}",
        ]
        if summary.improvement:
            lines.append(f"Improvement:    {summary.improvement}")
        if summary.recent_scores:
            lines.append(f"Recent scores:  {', '.join(format_band(s) for s in summary.recent_scores)}")
        self.console.print(Panel("\n".join(lines), title="[bold cyan]Dashboard[/bold cyan]", border_style="cyan"))

    # ==================== Feedback ====================

    def render_feedback_status(self, state: FeedbackState, eligible: bool):
        table = Table(show_header=False, box=ROUNDED, title="Feedback prompt")
        table.add_column("Field", style="dim")
        table.add_column("Value")
        table.add_row("Shown before", "yes" if state.has_shown else "no")
        table.add_row("Last shown (epoch ms)", str(state.last_shown or "never"))
        table.add_row("Dismissals", str(state.dismiss_count))
        table.add_row("Submitted", "yes" if state.has_submitted else "no")
        table.add_row("Eligible now", "yes" if eligible else "no")
        self.console.print(table)

    # ==================== Admin ====================

    def render_users(self, page: UserPage):
        table = Table(box=ROUNDED, title=f"Users (page {page.pagination.page}/{page.pagination.total_pages})")
        table.add_column("ID", justify="right", style="dim")
        table.add_column("Email")
        table.add_column("Plan")
        table.add_column("Role")
        table.add_column("Essays", justify="right")
        table.add_column("Joined")
        for user in page.users:
            table.add_row(
                str(user.id), user.email, user.plan,
                f"[magenta]{user.role}[/magenta]" if user.role == "admin" else user.role,
                str(user.essay_count), user.created_at[:10]
            )
        self.console.print(table)
        self.console.print(f"[dim]{page.pagination.total} users total[/dim]")

    def render_blog_posts(self, posts: List[BlogPost]):
        table = Table(box=ROUNDED, title="Blog posts")
        table.add_column("ID", justify="right", style="dim")
        table.add_column("Title")
        table.add_column("Slug", style="dim")
        table.add_column("Category")
        table.add_column("Status")
        for post in posts:
            status = "[green]published[/green]" if post.is_published else "[yellow]draft[/yellow]"
            table.add_row(str(post.id or ""), post.title, post.slug, post.category, status)
        self.console.print(table)

    def render_prompts(self, prompts: List[PromptTemplate]):
        table = Table(box=ROUNDED, title="AI prompt templates")
        table.add_column("ID", justify="right", style="dim")
        table.add_column("Name")
        table.add_column("Type")
        table.add_column("Active")
        table.add_column("Description")
        for prompt in prompts:
            table.add_row(
                str(prompt.id or ""), prompt.name, prompt.type,
                "[green]yes[/green]" if prompt.is_active else "[dim]no[/dim]",
                prompt.description
            )
        self.console.print(table)
