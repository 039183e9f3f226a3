"""Shared data model for the tutoring response pipeline."""

from tutor.models.conversation import (
    AccessibilityNeed,
    AgeGroup,
    ConversationContext,
    ConversationMessage,
    LearningStyle,
    MessageRole,
    ResponseOutcome,
    TokenUsage,
    TutorResponse,
)

__all__ = [
    "AccessibilityNeed",
    "AgeGroup",
    "ConversationContext",
    "ConversationMessage",
    "LearningStyle",
    "MessageRole",
    "ResponseOutcome",
    "TokenUsage",
    "TutorResponse",
]
