"""CLI progress handler using Rich.

Status lines and spinners go to stderr; stdout carries only the review.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Set

from rich.console import Console
from rich.status import Status

from pr_review.interfaces.io import ReviewProgress

if TYPE_CHECKING:
    from pr_review.agents.registry import AgentDescriptor
    from pr_review.providers.base import ModelInfo


class CLIReviewProgress(ReviewProgress):
    """Rich-based progress handler for review and continuation runs.

    Normal mode shows a spinner with the number of finished agents and a
    check mark per agent. Verbose mode disables the spinner and instead
    echoes every agent's output framed by its name. Quiet mode prints
    nothing.
    """

    def __init__(
        self,
        quiet: bool = False,
        verbose: bool = False,
        console: Optional[Console] = None,
    ) -> None:
        self.quiet = quiet
        self.verbose = verbose and not quiet
        self.console = console or Console(stderr=True)
        self._status: Optional[Status] = None
        self._framed: Set[str] = set()

    @property
    def _spinner_enabled(self) -> bool:
        return not self.quiet and not self.verbose and self.console.is_terminal

    def _start_status(self, text: str) -> None:
        if not self._spinner_enabled:
            return
        if self._status is None:
            self._status = self.console.status(text, spinner="dots")
            self._status.start()
        else:
            self._status.update(text)

    def _note(self, text: str, style: str) -> None:
        if not self.quiet:
            self.console.print(text, style=style, markup=False, highlight=False)

    def stop(self) -> None:
        """Stop any running spinner."""
        if self._status is not None:
            self._status.stop()
            self._status = None

    def model_resolved(self, model: "ModelInfo") -> None:
        if self.verbose:
            self._note(f"• Using model: {model.qualified_id}", "blue")

    def agents_started(self, agents: List["AgentDescriptor"]) -> None:
        if self.verbose:
            self._note(f"• Running agents: {', '.join(a.id for a in agents)}", "blue")
            self.console.print()
        self._start_status(f"Running agents... (0/{len(agents)})")

    def agent_fragment(self, agent: "AgentDescriptor", delta: str) -> None:
        if not self.verbose:
            return
        if agent.id not in self._framed:
            self._framed.add(agent.id)
            self.console.print(f"\n━━━ {agent.name} ━━━", style="yellow", markup=False)
        self.console.out(delta, end="", highlight=False)

    def agent_completed(self, agent: "AgentDescriptor", completed: int, total: int) -> None:
        if self.verbose:
            self.console.print(f"\n━━━ end {agent.name} ━━━\n", style="yellow", markup=False)
            return
        if self._spinner_enabled:
            self.console.print(f"[green]✓[/green] {agent.name}")
            self._start_status(f"Running agents... ({completed}/{total})")

    def agents_completed(self, total: int) -> None:
        self.stop()
        if not self.verbose and not self.quiet:
            self.console.print(f"[green]✓[/green] Agents complete ({total}/{total})")

    def synthesis_started(self) -> None:
        if self.verbose:
            self._note("• Running summarizer...", "blue")
            self.console.print()
        self._start_status("Generating summary...")

    def session_loaded(self) -> None:
        self.stop()
        if not self.quiet:
            self.console.print("[green]✓[/green] Session loaded")

    def output_started(self) -> None:
        self.stop()

    def warn(self, message: str) -> None:
        self._note(f"! {message}", "yellow")

    def error(self, message: str) -> None:
        """Errors are shown even in quiet mode."""
        self.stop()
        self.console.print(f"❌ {message}", style="red", markup=False, highlight=False)
