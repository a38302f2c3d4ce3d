"""Core configuration, error taxonomy and path validation."""
