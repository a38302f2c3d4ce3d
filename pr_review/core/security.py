"""Input validation for tool arguments supplied by the model.

Agents explore the repository through tools whose arguments come straight
from model output. These helpers confine every path to the working
directory and reject patterns that would hang the search tools.

All validation functions raise SecurityError on validation failure.
"""

from __future__ import annotations

from pathlib import Path

from pr_review.core.exceptions import SecurityError

__all__ = ["SecurityError", "safe_path", "validate_pattern"]


def safe_path(path_str: str, base_dir: Path) -> Path:
    """Resolve a model-supplied path and confine it to base_dir.

    Relative paths are taken relative to base_dir. Absolute paths are
    accepted only when they already point inside base_dir.

    Args:
        path_str: Path as supplied by the model
        base_dir: Working directory the tool is scoped to

    Returns:
        Resolved absolute Path inside base_dir

    Raises:
        SecurityError: If the path is empty, contains a null byte, or
            resolves outside base_dir (including through symlinks)

    Examples:
        >>> safe_path("src/app.py", Path("/repo"))
        PosixPath('/repo/src/app.py')

        >>> safe_path("../etc/passwd", Path("/repo"))  # Raises SecurityError
    """
    if not path_str:
        raise SecurityError("Path cannot be empty")

    if "\x00" in path_str:
        raise SecurityError(f"Null byte detected in path: {path_str!r}")

    base_resolved = base_dir.resolve()
    candidate = Path(path_str).expanduser()
    if not candidate.is_absolute():
        candidate = base_resolved / candidate

    try:
        resolved = candidate.resolve(strict=False)
    except (OSError, RuntimeError) as e:
        raise SecurityError(f"Invalid path: {path_str}") from e

    try:
        resolved.relative_to(base_resolved)
    except ValueError as e:
        raise SecurityError(f"Path outside working directory: {path_str}") from e

    return resolved


def validate_pattern(pattern: str, max_length: int = 1000) -> str:
    """Validate a regex or glob pattern to prevent ReDoS and injection.

    Args:
        pattern: Pattern string to validate
        max_length: Maximum allowed pattern length

    Returns:
        Validated pattern string

    Raises:
        SecurityError: If pattern contains dangerous constructs or is too long
    """
    if not pattern:
        raise SecurityError("Pattern cannot be empty")

    if len(pattern) > max_length:
        raise SecurityError(f"Pattern exceeds maximum length of {max_length}: {len(pattern)}")

    literal_dangerous = [
        "(?R)",
        "(?0)",
        "(.*?){100,}",
        "(.+?){100,}",
        "){100,}",
        "){50,}",
    ]
    for dangerous in literal_dangerous:
        if dangerous in pattern:
            raise SecurityError(f"Pattern contains dangerous construct (ReDoS risk): {pattern}")

    if "\x00" in pattern:
        raise SecurityError("Null byte detected in pattern")

    return pattern
