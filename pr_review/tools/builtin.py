"""pr-review - Built-in tools (read, grep, glob, ls, write)

Every path argument is resolved against the conversation's working
directory and rejected if it escapes it. Tools never raise to the caller:
failures come back as a ToolResult carrying an ``error`` entry in its
metadata, so the model can see what went wrong and carry on.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiofiles
from pydantic import AliasChoices, BaseModel, Field, ValidationError

from pr_review.core.security import SecurityError, safe_path, validate_pattern
from pr_review.tools.framework import Tool, ToolContext, ToolResult

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 50000


def _error(title: str, message: str, **metadata: Any) -> ToolResult:
    return ToolResult(title=title, output=message, metadata={"error": message, **metadata})


async def _run_ripgrep(args: List[str], ctx: ToolContext) -> tuple[int, str, str]:
    process = await asyncio.create_subprocess_exec(
        "rg",
        *args,
        cwd=str(ctx.working_directory),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    return (
        process.returncode or 0,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
    )


class ReadToolArgs(BaseModel):
    """Arguments for Read tool - accepts both camelCase and snake_case parameter names."""

    filePath: str = Field(
        validation_alias=AliasChoices("filePath", "file_path", "path"),
        description="Path to file (relative to the repository root)",
    )
    limit: Optional[int] = Field(default=2000, description="Max lines to read")
    offset: Optional[int] = Field(default=1, description="Line number to start from (1-based)")


class ReadTool(Tool):
    """Read file contents"""

    id = "read"
    description = (
        "Read a file from the repository. Returns the requested lines prefixed "
        "with their line numbers. Use offset/limit for large files."
    )
    args_model = ReadToolArgs

    async def execute(self, args: Dict[str, Any], ctx: ToolContext) -> ToolResult:
        """Read a file

        Args:
            args: Raw tool arguments (will be validated)
            ctx: Tool execution context

        Returns:
            ToolResult with numbered file content
        """
        try:
            validated = ReadToolArgs(**args)
        except ValidationError as e:
            return _error("Invalid arguments", str(e))

        limit = validated.limit if isinstance(validated.limit, int) and validated.limit > 0 else 2000
        offset = validated.offset if isinstance(validated.offset, int) else 1

        try:
            full_path = safe_path(validated.filePath, ctx.working_directory)
        except SecurityError as e:
            logger.warning(f"Read blocked by security policy: {e}")
            return _error(f"Security Error: {validated.filePath}", str(e), security_error=True)

        if not full_path.is_file():
            return _error("File not found", f"File not found: {validated.filePath}")

        try:
            async with aiofiles.open(full_path, mode="r", encoding="utf-8", errors="replace") as f:
                all_lines = await f.readlines()
        except OSError as e:
            logger.error(f"Read tool failed: {e}")
            return _error(f"Error reading: {validated.filePath}", str(e))

        start_line = max(0, offset - 1)
        end_line = min(start_line + limit, len(all_lines))
        numbered = [
            f"{number:>6}\t{line.rstrip()}"
            for number, line in enumerate(all_lines[start_line:end_line], start=start_line + 1)
        ]

        return ToolResult(
            title=f"Read: {validated.filePath}",
            output="\n".join(numbered)[:MAX_OUTPUT_CHARS],
            metadata={
                "path": str(full_path),
                "lines_read": len(numbered),
                "start_line": start_line + 1,
                "end_line": end_line,
                "total_lines": len(all_lines),
            },
        )


class GrepToolArgs(BaseModel):
    """Arguments for Grep tool"""

    pattern: str = Field(description="Regex pattern to search")
    include: Optional[str] = Field(default=None, description="Glob pattern for files")
    max_results: int = Field(default=100, description="Max results to return")


class GrepTool(Tool):
    """Search file contents using regex patterns"""

    id = "grep"
    description = (
        "Search file contents in the repository with a regular expression "
        "(ripgrep syntax). Returns matching lines as path:line:text."
    )
    args_model = GrepToolArgs

    async def execute(self, args: Dict[str, Any], ctx: ToolContext) -> ToolResult:
        """Search for patterns in files

        Args:
            args: Raw tool arguments (will be validated)
            ctx: Tool execution context

        Returns:
            ToolResult with search results
        """
        try:
            validated = GrepToolArgs(**args)
        except ValidationError as e:
            return _error("Invalid arguments", str(e))

        query = validated.pattern
        logger.debug(f"Searching: {query}")

        try:
            validate_pattern(query, max_length=1000)
            rg_args = ["--line-number", "--no-heading", "--color", "never", "-e", query]
            if validated.include:
                validate_pattern(validated.include, max_length=500)
                rg_args += ["--glob", validated.include]
            returncode, stdout, stderr = await _run_ripgrep(rg_args, ctx)
        except SecurityError as e:
            logger.warning(f"Pattern blocked by security policy: {e}")
            return _error(f"Security Error: {query}", str(e), security_error=True)
        except OSError as e:
            logger.error(f"Grep tool failed: {e}")
            return _error(f"Error searching: {query}", str(e))

        # rg exits 1 when nothing matched
        if returncode not in (0, 1):
            return _error(f"Error searching: {query}", stderr.strip() or f"rg exited {returncode}")

        lines = [line for line in stdout.splitlines() if line][: validated.max_results]
        return ToolResult(
            title=f"Grep: {query}",
            output="\n".join(lines) if lines else "No matches found",
            metadata={"matches": len(lines)},
        )


class GlobToolArgs(BaseModel):
    """Arguments for Glob tool"""

    pattern: str = Field(description="Glob pattern")
    max_results: int = Field(default=100, description="Max results to return")


class GlobTool(Tool):
    """Find files using glob patterns"""

    id = "glob"
    description = (
        "Find files in the repository whose path matches a glob pattern "
        "(e.g. '**/*.py'). Respects .gitignore."
    )
    args_model = GlobToolArgs

    async def execute(self, args: Dict[str, Any], ctx: ToolContext) -> ToolResult:
        try:
            validated = GlobToolArgs(**args)
        except ValidationError as e:
            return _error("Invalid arguments", str(e))

        pattern = validated.pattern
        logger.debug(f"Finding: {pattern}")

        try:
            validate_pattern(pattern, max_length=500)
            returncode, stdout, stderr = await _run_ripgrep(["--files", "--glob", pattern], ctx)
        except SecurityError as e:
            logger.warning(f"Pattern blocked by security policy: {e}")
            return _error(f"Security Error: {pattern}", str(e), security_error=True)
        except OSError as e:
            logger.error(f"Glob tool failed: {e}")
            return _error(f"Error finding: {pattern}", str(e))

        if returncode not in (0, 1):
            return _error(f"Error finding: {pattern}", stderr.strip() or f"rg exited {returncode}")

        lines = sorted(line for line in stdout.splitlines() if line)[: validated.max_results]
        return ToolResult(
            title=f"Glob: {pattern}",
            output="\n".join(lines) if lines else "No files found",
            metadata={"matches": len(lines)},
        )


class ListToolArgs(BaseModel):
    """Arguments for List tool"""

    path: str = Field(default=".", description="Directory to list (relative to the repository root)")


class ListTool(Tool):
    """List a directory"""

    id = "ls"
    description = "List the entries of a directory in the repository. Directories end with '/'."
    args_model = ListToolArgs

    async def execute(self, args: Dict[str, Any], ctx: ToolContext) -> ToolResult:
        try:
            validated = ListToolArgs(**args)
            directory = safe_path(validated.path, ctx.working_directory)
        except ValidationError as e:
            return _error("Invalid arguments", str(e))
        except SecurityError as e:
            return _error(f"Security Error: {args.get('path')}", str(e), security_error=True)

        if not directory.is_dir():
            return _error("Not a directory", f"Not a directory: {validated.path}")

        entries = sorted(
            f"{entry.name}/" if entry.is_dir() else entry.name
            for entry in directory.iterdir()
            if entry.name != ".git"
        )
        return ToolResult(
            title=f"List: {validated.path}",
            output="\n".join(entries),
            metadata={"entries": len(entries)},
        )


class WriteToolArgs(BaseModel):
    """Arguments for Write tool - accepts both camelCase and snake_case parameter names."""

    filePath: str = Field(
        validation_alias=AliasChoices("filePath", "file_path", "path"),
        description="Path to file (relative to the repository root)",
    )
    content: str = Field(description="Content to write")


class WriteTool(Tool):
    """Write content to files"""

    id = "write"
    description = "Write content to a file in the repository, creating parent directories."
    args_model = WriteToolArgs
    read_only = False

    async def execute(self, args: Dict[str, Any], ctx: ToolContext) -> ToolResult:
        try:
            validated = WriteToolArgs(**args)
            full_path = safe_path(validated.filePath, ctx.working_directory)
        except ValidationError as e:
            return _error("Invalid arguments", str(e))
        except SecurityError as e:
            logger.warning(f"Write blocked by security policy: {e}")
            return _error(f"Security Error: {args.get('filePath')}", str(e), security_error=True)

        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(full_path, mode="w", encoding="utf-8") as f:
                await f.write(validated.content)
        except OSError as e:
            logger.error(f"Write tool failed: {e}")
            return _error(f"Error writing: {validated.filePath}", str(e))

        return ToolResult(
            title=f"Wrote: {validated.filePath}",
            output=f"Wrote {len(validated.content)} characters to {validated.filePath}",
            metadata={"path": str(full_path), "bytes": len(validated.content.encode("utf-8"))},
        )
