"""Review agent definitions."""

from pr_review.agents.registry import (
    DEFAULT_REGISTRY,
    SYNTHESIS_INSTRUCTIONS,
    AgentDescriptor,
    AgentRegistry,
)

__all__ = ["AgentDescriptor", "AgentRegistry", "DEFAULT_REGISTRY", "SYNTHESIS_INSTRUCTIONS"]
