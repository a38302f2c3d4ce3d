"""Tests for the pr-review command line."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from pr_review.cli.main import _read_context, main
from pr_review.core.exceptions import ModelInvocationFailed
from pr_review.review.contracts import ReviewRequest

DIFF = "diff --git a/app.py b/app.py\n-    return a + b\n+    return a - b"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def cli_settings(test_settings):
    with patch("pr_review.cli.main.get_settings", return_value=test_settings):
        yield test_settings


@pytest.fixture
def fake_diff():
    with patch("pr_review.cli.main.GitCommands") as git_commands:
        git_commands.return_value.get_diff.return_value = DIFF
        yield git_commands.return_value


@pytest.fixture
def fake_orchestrator():
    """Replaces the engine with one that writes a canned review."""
    orchestrator = MagicMock()

    def create(settings, writer, progress):
        async def run_review(request):
            writer.write("## Summary\nLooks wrong.")

        orchestrator.run_review = AsyncMock(side_effect=run_review)
        return orchestrator

    with patch("pr_review.cli.main.create_orchestrator", side_effect=create):
        yield orchestrator


class TestHelp:
    def test_help_lists_agents(self, runner):
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        for agent_id in ("bug", "test", "impact", "quality"):
            assert f"{agent_id}:" in result.output
        assert "pr-review -c" in result.output


class TestReview:
    def test_review_streams_to_stdout(self, runner, cli_settings, fake_diff, fake_orchestrator):
        result = runner.invoke(main, ["-q", "--color", "never", "main"])

        assert result.exit_code == 0, result.output
        assert "## Summary\nLooks wrong.\n" in result.output
        fake_diff.get_diff.assert_called_once_with(("main",), cli_settings.default_context_lines)

    def test_request_carries_options(self, runner, cli_settings, fake_diff, fake_orchestrator):
        result = runner.invoke(
            main,
            ["-q", "--color", "never", "-a", "quality, bug", "-m", "openai/gpt-4o", "--context", "auth", "--cached"],
        )

        assert result.exit_code == 0, result.output
        request: ReviewRequest = fake_orchestrator.run_review.call_args.args[0]
        assert request.selected_agent_ids == ("quality", "bug")
        assert request.model_selector == "openai/gpt-4o"
        assert request.extra_context == "auth"
        assert request.diff_text == DIFF
        fake_diff.get_diff.assert_called_once_with(("--cached",), cli_settings.default_context_lines)

    def test_all_agents_by_default(self, runner, cli_settings, fake_diff, fake_orchestrator):
        runner.invoke(main, ["-q", "--color", "never"])

        request = fake_orchestrator.run_review.call_args.args[0]
        assert request.selected_agent_ids == ("bug", "test", "impact", "quality")

    def test_unknown_agent_exits_before_git(self, runner, cli_settings, fake_diff):
        result = runner.invoke(main, ["--agents", "bug,security"])

        assert result.exit_code == 1
        assert "Unknown agent: security" in result.output
        fake_diff.get_diff.assert_not_called()

    def test_empty_agent_list_is_a_usage_error(self, runner, cli_settings, fake_diff):
        result = runner.invoke(main, ["--agents", " , "])

        assert result.exit_code == 2

    def test_empty_diff(self, runner, cli_settings, fake_diff):
        fake_diff.get_diff.return_value = ""

        result = runner.invoke(main, ["main"])

        assert result.exit_code == 1
        assert "No changes found to review." in result.output

    def test_engine_failure_exits_nonzero(self, runner, cli_settings, fake_diff):
        orchestrator = MagicMock()
        orchestrator.run_review = AsyncMock(side_effect=ModelInvocationFailed(RuntimeError("quota")))

        with patch("pr_review.cli.main.create_orchestrator", return_value=orchestrator):
            result = runner.invoke(main, ["--color", "never"])

        assert result.exit_code == 1
        assert "Model invocation failed: quota" in result.output


class TestContinue:
    def test_without_previous_session(self, runner, cli_settings):
        result = runner.invoke(main, ["-c", "What about edge cases?"])

        assert result.exit_code == 1
        assert "No previous review session found" in result.output

    def test_continue_skips_git(self, runner, cli_settings, fake_diff):
        handler = MagicMock()
        handler.continue_review = AsyncMock(return_value="answer")

        with patch("pr_review.cli.main.create_continuation_handler", return_value=handler):
            result = runner.invoke(main, ["--color", "never", "-c", "why?", "-m", "gpt-4o"])

        assert result.exit_code == 0, result.output
        message, _cwd, model_id = handler.continue_review.call_args.args
        assert (message, model_id) == ("why?", "gpt-4o")
        fake_diff.get_diff.assert_not_called()


class TestReadContext:
    def test_joins_values(self):
        assert _read_context(("one", "two")) == "one\n\ntwo"

    def test_dash_reads_stdin(self, runner):
        with patch("pr_review.cli.main.click.get_text_stream") as stream:
            stream.return_value.read.return_value = "from stdin"

            assert _read_context(("-", "flag")) == "from stdin\n\nflag"
