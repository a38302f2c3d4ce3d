"""Diff retrieval through the git command line."""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from pr_review.core.exceptions import GitError

logger = logging.getLogger(__name__)

_UNIFIED_SHORT = re.compile(r"^-U\d+$")
_UNIFIED_LONG = re.compile(r"^--unified=\d+$")


def normalize_diff_args(git_args: Sequence[str], default_context_lines: int = 10) -> List[str]:
    """Ensure the diff carries unified context lines.

    ``-U<n>``, ``-U <n>`` and ``--unified=<n>`` are honoured as given;
    otherwise ``-U<default_context_lines>`` is prepended.
    """
    args: List[str] = []
    has_unified = False
    index = 0
    while index < len(git_args):
        arg = git_args[index]
        if _UNIFIED_SHORT.match(arg) or _UNIFIED_LONG.match(arg):
            has_unified = True
            args.append(arg)
        elif arg == "-U":
            has_unified = True
            if index + 1 < len(git_args) and git_args[index + 1].isdigit():
                index += 1
                args.append(f"-U{git_args[index]}")
        else:
            args.append(arg)
        index += 1

    if not has_unified:
        args.insert(0, f"-U{default_context_lines}")
    return args


class GitCommands:
    """Git command execution scoped to one working directory."""

    def __init__(self, cwd: Path):
        self.cwd = Path(cwd)

    def _run_git(self, *args: str) -> subprocess.CompletedProcess[str]:
        """Helper to run git command"""
        full_cmd = ["git"] + list(args)
        logger.debug(f"Running {' '.join(full_cmd)}")

        try:
            result = subprocess.run(full_cmd, cwd=self.cwd, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise GitError("git diff failed: git executable not found") from e

        if result.returncode != 0:
            stderr = result.stderr.strip() or f"exit code {result.returncode}"
            raise GitError(f"git {args[0]} failed: {stderr}")

        return result

    def get_diff(self, git_args: Sequence[str], default_context_lines: int = 10) -> str:
        """Run ``git diff`` with the given arguments.

        Returns:
            The diff text with surrounding whitespace stripped; empty when
            there are no changes

        Raises:
            GitError: If git is missing or exits non-zero
        """
        args = normalize_diff_args(git_args, default_context_lines)
        result = self._run_git("diff", *args)
        return result.stdout.strip()


def estimate_tokens(text: str) -> int:
    """Rough token count at four characters per token."""
    return -(-len(text) // 4)


def large_diff_warning(diff_text: str, threshold: int) -> Optional[str]:
    """Warning text for diffs estimated above threshold tokens, else None."""
    tokens = estimate_tokens(diff_text)
    if tokens <= threshold:
        return None
    return (
        f"Large diff (~{round(tokens / 1000)}k tokens). "
        "Consider reviewing a smaller set of changes."
    )
