"""Git integration."""

from pr_review.git.commands import GitCommands, estimate_tokens, large_diff_warning, normalize_diff_args

__all__ = ["GitCommands", "estimate_tokens", "large_diff_warning", "normalize_diff_args"]
