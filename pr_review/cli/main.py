"""pr-review command line interface."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console

from pr_review import __version__
from pr_review.agents.registry import DEFAULT_REGISTRY
from pr_review.cli.handlers import CLIReviewProgress
from pr_review.cli.output import open_output_writer
from pr_review.core.exceptions import ReviewError
from pr_review.core.settings import Settings, get_settings
from pr_review.git.commands import GitCommands, large_diff_warning
from pr_review.review.contracts import ReviewRequest
from pr_review.review.service import create_continuation_handler, create_orchestrator

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the CLI.

    Args:
        verbose: Enable info level logging
    """
    log_level = logging.INFO if verbose else logging.WARNING
    log_format = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
    date_format = "%H:%M:%S"

    logging.basicConfig(
        level=log_level, format=log_format, datefmt=date_format, stream=sys.stderr, force=True
    )

    settings = get_settings()
    if settings.debug:
        logging.getLogger().setLevel(logging.DEBUG)
    elif not verbose:
        logging.getLogger().setLevel(settings.log_level.upper())


def _agent_help() -> str:
    lines = [f"{d.id}: {d.description}" for d in DEFAULT_REGISTRY.descriptors()]
    return "Comma-separated list of agents to run (default: all). " + "; ".join(lines)


EXAMPLES = """\b
Examples:
  pr-review main
  pr-review --cached
  pr-review main...feature-branch src/
  pr-review --agents bug,test main
  pr-review --context "Focus on auth security" main
  pr-review --verbose main

\b
  # Continue chatting about the last review
  pr-review -c "What about edge cases in the auth flow?"
"""


def _read_context(values: Tuple[str, ...]) -> str:
    parts = []
    for value in values:
        if value == "-":
            parts.append(click.get_text_stream("stdin").read())
        else:
            parts.append(value)
    return "\n\n".join(part for part in parts if part)


async def _review(
    settings: Settings,
    request: ReviewRequest,
    color: str,
    progress: CLIReviewProgress,
) -> None:
    with open_output_writer(color) as writer:
        orchestrator = create_orchestrator(settings, writer, progress)
        await orchestrator.run_review(request)
        writer.write("\n")


async def _continue(
    settings: Settings,
    message: str,
    model_id: Optional[str],
    color: str,
    progress: CLIReviewProgress,
) -> None:
    with open_output_writer(color) as writer:
        handler = create_continuation_handler(settings, writer, progress)
        await handler.continue_review(message, Path.cwd(), model_id)
        writer.write("\n")


@click.command(
    context_settings={"ignore_unknown_options": True, "help_option_names": ["-h", "--help"]},
    epilog=EXAMPLES,
)
@click.option("--agents", "-a", "agents", metavar="NAMES", help=_agent_help())
@click.option(
    "--continue", "-c", "continue_message", metavar="MSG", help="Continue chatting about the last review"
)
@click.option(
    "--context",
    "contexts",
    multiple=True,
    metavar="TEXT",
    help="Additional context for the review; '-' reads it from stdin",
)
@click.option("--model", "-m", "model_id", metavar="ID", help="Model to use")
@click.option("--quiet", "-q", is_flag=True, help="Suppress progress output")
@click.option("--verbose", "-v", is_flag=True, help="Show each agent's output before the summary")
@click.option(
    "--color",
    type=click.Choice(["auto", "always", "never"]),
    default="auto",
    show_default=True,
    help="Render the review as coloured markdown",
)
@click.argument("git_args", nargs=-1, type=click.UNPROCESSED)
@click.version_option(version=__version__)
def main(
    agents: Optional[str],
    continue_message: Optional[str],
    contexts: Tuple[str, ...],
    model_id: Optional[str],
    quiet: bool,
    verbose: bool,
    color: str,
    git_args: Tuple[str, ...],
) -> None:
    """Ask specialized AI agents to review code changes.

    GIT_ARGS are passed directly to 'git diff', so any git diff syntax works.
    """
    setup_logging(verbose)
    settings = get_settings()
    progress = CLIReviewProgress(quiet=quiet, verbose=verbose, console=Console(stderr=True))

    try:
        if continue_message is not None:
            asyncio.run(_continue(settings, continue_message, model_id, color, progress))
            return

        if agents is not None:
            agent_ids = tuple(name.strip() for name in agents.split(",") if name.strip())
            if not agent_ids:
                raise click.BadParameter("no agents given", param_hint="'--agents'")
        else:
            agent_ids = tuple(DEFAULT_REGISTRY.all_ids())
        for agent_id in agent_ids:
            DEFAULT_REGISTRY.get(agent_id)

        extra_context = _read_context(contexts)

        cwd = Path.cwd()
        diff = GitCommands(cwd).get_diff(git_args, settings.default_context_lines)
        if not diff:
            click.echo("No changes found to review.", err=True)
            sys.exit(1)

        warning = large_diff_warning(diff, settings.large_diff_tokens)
        if warning:
            progress.warn(warning)

        request = ReviewRequest(
            diff_text=diff,
            working_directory=cwd,
            selected_agent_ids=agent_ids,
            model_selector=model_id,
            extra_context=extra_context,
        )
        asyncio.run(_review(settings, request, color, progress))
    except KeyboardInterrupt:
        sys.exit(130)
    except ReviewError as e:
        progress.error(e.message)
        sys.exit(1)
    finally:
        progress.stop()


if __name__ == "__main__":
    main()
