"""Conversation handles and their persisted logs."""

from pr_review.session.conversation import (
    Conversation,
    ConversationConfig,
    ConversationDefaults,
    ConversationOpener,
    FragmentHandler,
)
from pr_review.session.log import SessionLog, promote_session
from pr_review.session.models import ConversationTurn, SessionHeader

__all__ = [
    "Conversation",
    "ConversationConfig",
    "ConversationDefaults",
    "ConversationOpener",
    "ConversationTurn",
    "FragmentHandler",
    "SessionHeader",
    "SessionLog",
    "promote_session",
]
