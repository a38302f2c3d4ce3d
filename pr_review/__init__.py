"""pr-review - multi-agent code review with a synthesized, resumable report."""

__version__ = "0.1.0"
