"""
Interactive input for the BandLy CLI

- Multi-line essay editor with a live word counter (prompt_toolkit)
- The feedback prompt shown when the policy opens it (rich prompts)
"""

from typing import Callable, Awaitable

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.key_binding import KeyBindings
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt

from bandly.essays import MAX_WORDS, MIN_WORDS, compute_word_count
from bandly.exceptions import ValidationError
from bandly.feedback import FeedbackPromptController, FeedbackSubmission, MAX_COMMENT_LENGTH


def word_count_toolbar(text: str) -> HTML:
    count = compute_word_count(text)
    if count < MIN_WORDS:
        status = f"<style fg='ansiyellow'>minimum {MIN_WORDS}</style>"
    elif count > MAX_WORDS:
        status = f"<style fg='ansired'>maximum {MAX_WORDS}</style>"
    else:
        status = "<style fg='ansigreen'>ready</style>"
    return HTML(f" <b>{count}</b> words ({status})   Esc+Enter to submit, Ctrl+C to cancel")


def _create_key_bindings() -> KeyBindings:
    kb = KeyBindings()

    @kb.add('escape', 'enter')
    def submit(event):
        """Escape + Enter submits the essay"""
        event.current_buffer.validate_and_handle()

    return kb


async def read_essay_interactive(task_label: str) -> str:
    """Multi-line editor; Enter inserts a newline"""
    session: PromptSession = PromptSession(
        multiline=True,
        key_bindings=_create_key_bindings(),
    )
    return await session.prompt_async(
        HTML(f"<b>{task_label}</b> ❯ "),
        bottom_toolbar=lambda: word_count_toolbar(session.default_buffer.text),
        prompt_continuation="  ",
    )


def feedback_presenter(console: Console) -> Callable[[FeedbackPromptController], Awaitable[None]]:
    """Presenter for FeedbackPromptController that asks in the terminal"""

    async def present(controller: FeedbackPromptController) -> None:
        console.print(Panel(
            "We'd love to hear how BandLy is working for you.\n"
            "[dim]It takes less than a minute.[/dim]",
            title="[bold cyan]💬 Quick feedback[/bold cyan]",
            border_style="cyan"
        ))

        try:
            if not Confirm.ask("Share feedback now?", default=True, console=console):
                controller.dismiss()
                return

            rating = IntPrompt.ask(
                "How would you rate BandLy? (1-5)",
                choices=["1", "2", "3", "4", "5"],
                console=console
            )
            comment = Prompt.ask(
                f"Anything we could improve? [dim](optional, max {MAX_COMMENT_LENGTH} chars)[/dim]",
                default="",
                console=console
            )
            email = Prompt.ask("Email for follow-up [dim](optional)[/dim]", default="", console=console)
        except (KeyboardInterrupt, EOFError):
            console.print()
            controller.dismiss()
            return

        try:
            submission = FeedbackSubmission(
                rating=rating,
                comment=comment[:MAX_COMMENT_LENGTH],
                user_email=email or None
            )
        except ValidationError:
            controller.dismiss()
            return

        await controller.submit(submission)
        console.print("[green]✅ Thanks for your feedback![/green]")

    return present
