"""Output writers for the synthesized review.

When colour is wanted and a markdown renderer is installed, the review is
piped through it as it streams; otherwise it goes to stdout unchanged.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from contextlib import contextmanager
from typing import IO, Iterator, List, Literal, Optional, Union

import click

from pr_review.core.exceptions import ReviewError

logger = logging.getLogger(__name__)

ColorMode = Literal["auto", "always", "never"]

MDRIVER_ARGS = ["mdriver", "--color", "always"]
BAT_ARGS = [
    "bat",
    "--language",
    "markdown",
    "--style",
    "plain",
    "--color",
    "always",
    "--paging",
    "never",
]


def should_use_color(color_mode: ColorMode, stream: Optional[IO[str]] = None) -> bool:
    if color_mode == "never" or "NO_COLOR" in os.environ:
        return False
    if color_mode == "always":
        return True
    stream = stream or sys.stdout
    return hasattr(stream, "isatty") and stream.isatty()


class PlainWriter:
    def __init__(self, stream: Optional[IO[str]] = None):
        self.stream = stream

    def write(self, text: str) -> None:
        click.echo(text, file=self.stream, nl=False)

    def close(self, check: bool = True) -> None:
        pass


class PipedWriter:
    """Streams text into a renderer process that writes to our stdout."""

    def __init__(self, args: List[str]):
        self.args = args
        self.process = subprocess.Popen(args, stdin=subprocess.PIPE, text=True, bufsize=1)

    def write(self, text: str) -> None:
        assert self.process.stdin is not None
        try:
            self.process.stdin.write(text)
            self.process.stdin.flush()
        except BrokenPipeError as e:
            raise ReviewError(f"{self.args[0]} stopped reading the review output") from e

    def close(self, check: bool = True) -> None:
        """Close the renderer's input and wait for it to exit.

        Args:
            check: Raise ReviewError when the renderer exits non-zero
        """
        stdin = self.process.stdin
        if stdin is not None and not stdin.closed:
            try:
                stdin.close()
            except BrokenPipeError:
                logger.debug(f"{self.args[0]} closed its input early")
        code = self.process.wait()
        if code == 0:
            return
        if check:
            raise ReviewError(f"{self.args[0]} exited with code {code}")
        logger.debug(f"{self.args[0]} exited with code {code}")


OutputWriter = Union[PlainWriter, PipedWriter]


def create_output_writer(color_mode: ColorMode = "auto") -> OutputWriter:
    """Pick the writer for the given colour policy.

    mdriver is preferred over bat; without either the output is plain.
    """
    if not should_use_color(color_mode):
        return PlainWriter()

    for args in (MDRIVER_ARGS, BAT_ARGS):
        if shutil.which(args[0]):
            logger.debug(f"Rendering output through {args[0]}")
            return PipedWriter(args)

    return PlainWriter()


@contextmanager
def open_output_writer(color_mode: ColorMode = "auto") -> Iterator[OutputWriter]:
    """Yield a writer and close it on exit.

    A renderer's exit status is only reported when the body succeeded, so
    it never replaces the error that is already propagating.
    """
    writer = create_output_writer(color_mode)
    try:
        yield writer
    except BaseException:
        writer.close(check=False)
        raise
    writer.close()
