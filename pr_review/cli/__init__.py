"""Command line shell for pr-review."""
