"""Tests for output writer selection and the progress handler."""

from __future__ import annotations

import io
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console

from pr_review.cli.handlers import CLIReviewProgress
from pr_review.cli.output import (
    PipedWriter,
    PlainWriter,
    create_output_writer,
    open_output_writer,
    should_use_color,
)
from pr_review.core.exceptions import ModelInvocationFailed, ReviewError
from tests.fakes import make_model, make_registry


class _TTY(io.StringIO):
    def isatty(self) -> bool:
        return True


class TestShouldUseColor:
    def test_never(self):
        assert not should_use_color("never", _TTY())

    def test_always(self):
        assert should_use_color("always", io.StringIO())

    def test_auto_follows_terminal(self):
        assert should_use_color("auto", _TTY())
        assert not should_use_color("auto", io.StringIO())

    def test_no_color_env_wins(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "1")

        assert not should_use_color("always", _TTY())


class TestCreateOutputWriter:
    def test_plain_when_colour_off(self):
        assert isinstance(create_output_writer("never"), PlainWriter)

    def test_plain_when_no_renderer_installed(self):
        with patch("pr_review.cli.output.shutil.which", return_value=None):
            assert isinstance(create_output_writer("always"), PlainWriter)

    def test_prefers_mdriver(self):
        with patch("pr_review.cli.output.shutil.which", return_value="/usr/bin/x"), patch(
            "pr_review.cli.output.PipedWriter"
        ) as piped:
            create_output_writer("always")

        assert piped.call_args.args[0][0] == "mdriver"


@pytest.fixture
def renderer():
    """A fake renderer process behind PipedWriter."""
    process = MagicMock()
    process.stdin.closed = False
    process.wait.return_value = 0
    with patch("pr_review.cli.output.subprocess.Popen", return_value=process):
        yield process


class TestPipedWriter:
    def test_write_flushes_each_fragment(self, renderer):
        writer = PipedWriter(["mdriver"])

        writer.write("## Summary")

        renderer.stdin.write.assert_called_once_with("## Summary")
        renderer.stdin.flush.assert_called_once()

    def test_broken_pipe_becomes_review_error(self, renderer):
        renderer.stdin.flush.side_effect = BrokenPipeError()
        writer = PipedWriter(["mdriver"])

        with pytest.raises(ReviewError, match="mdriver stopped reading") as exc_info:
            writer.write("text")

        assert isinstance(exc_info.value.__cause__, BrokenPipeError)

    def test_close_reports_non_zero_exit(self, renderer):
        renderer.wait.return_value = 2

        with pytest.raises(ReviewError, match="mdriver exited with code 2"):
            PipedWriter(["mdriver"]).close()

    def test_close_without_check_is_quiet(self, renderer):
        renderer.wait.return_value = 2
        renderer.stdin.close.side_effect = BrokenPipeError()

        PipedWriter(["mdriver"]).close(check=False)

        renderer.wait.assert_called_once()


class TestOpenOutputWriter:
    def test_body_error_is_not_replaced_by_renderer_exit(self, renderer):
        renderer.wait.return_value = 1
        cause = ModelInvocationFailed(RuntimeError("overloaded"))

        with patch("pr_review.cli.output.shutil.which", return_value="/usr/bin/mdriver"):
            with pytest.raises(ModelInvocationFailed) as exc_info:
                with open_output_writer("always") as writer:
                    writer.write("partial")
                    raise cause

        assert exc_info.value is cause
        renderer.wait.assert_called_once()

    def test_renderer_exit_reported_after_success(self, renderer):
        renderer.wait.return_value = 1

        with patch("pr_review.cli.output.shutil.which", return_value="/usr/bin/mdriver"):
            with pytest.raises(ReviewError, match="exited with code 1"):
                with open_output_writer("always") as writer:
                    writer.write("done")

    def test_plain_writer_closes_cleanly(self, capsys):
        with open_output_writer("never") as writer:
            writer.write("plain")

        assert capsys.readouterr().out == "plain"


def make_progress(**kwargs):
    buffer = io.StringIO()
    console = Console(file=buffer, force_terminal=False, width=120)
    return CLIReviewProgress(console=console, **kwargs), buffer


class TestCLIReviewProgress:
    @pytest.fixture
    def agent(self):
        return make_registry("bug").get("bug")

    def test_quiet_prints_only_errors(self, agent):
        progress, buffer = make_progress(quiet=True)

        progress.model_resolved(make_model())
        progress.agents_started([agent])
        progress.agent_completed(agent, 1, 1)
        progress.agents_completed(1)
        progress.warn("big diff")
        progress.error("boom")

        assert buffer.getvalue() == "❌ boom\n"

    def test_verbose_frames_agent_output(self, agent):
        progress, buffer = make_progress(verbose=True)

        progress.model_resolved(make_model())
        progress.agents_started([agent])
        progress.agent_fragment(agent, "found ")
        progress.agent_fragment(agent, "it")
        progress.agent_completed(agent, 1, 1)

        output = buffer.getvalue()
        assert "• Using model: anthropic/fake-model" in output
        assert "• Running agents: bug" in output
        assert output.count("━━━ Bug ━━━") == 1
        assert "found it" in output
        assert "━━━ end Bug ━━━" in output

    def test_normal_mode_reports_completion(self, agent):
        progress, buffer = make_progress()

        progress.agents_started([agent])
        progress.agent_completed(agent, 1, 1)
        progress.agents_completed(1)
        progress.session_loaded()

        output = buffer.getvalue()
        assert "Agents complete (1/1)" in output
        assert "Session loaded" in output
