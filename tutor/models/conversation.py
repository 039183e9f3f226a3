"""Core data model for tutoring conversations.

Covers: age tiers, personalization options, conversation messages and
context, and the typed reply handed back to the session layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class AgeGroup(Enum):
    """Fixed child-age tiers. Every policy table is keyed on this."""

    YOUNG = "ages6to9"
    MIDDLE = "ages10to13"
    TEEN = "ages14to16"


class MessageRole(Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class LearningStyle(Enum):
    VISUAL = "visual"
    AUDITORY = "auditory"
    KINESTHETIC = "kinesthetic"
    READING_WRITING = "reading_writing"
    MULTIMODAL = "multimodal"


class AccessibilityNeed(Enum):
    LARGE_TEXT = "large-text"
    SIMPLE_LANGUAGE = "simple-language"
    STEP_BY_STEP = "step-by-step"
    REPETITION = "repetition"
    VISUAL_DESCRIPTIONS = "visual-descriptions"
    ATTENTION_SUPPORT = "attention-support"
    PROCESSING_TIME = "processing-time"


class ResponseOutcome(Enum):
    """How the pipeline disposed of a completion.

    Safety vetoes are ordinary outcomes, not errors: the child always
    receives a coherent message.
    """

    DELIVERED = "delivered"
    CONTENT_BLOCKED = "content_blocked"  # ContentFilter vetoed
    SANITIZATION_BLOCKED = "sanitization_blocked"  # ResponseSanitizer vetoed
    FALLBACK = "fallback"  # provider unavailable, canned reply


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Messages ---


@dataclass(frozen=True)
class ConversationMessage:
    """A single chat turn. Sequences of these are kept in chronological order."""

    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=_utcnow)
    token_count: int | None = None  # None = not precomputed

    def to_provider(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


# --- Context ---


@dataclass(frozen=True)
class ConversationContext:
    """Everything the caller knows about the current tutoring session.

    Owned by the caller. The pipeline reads it and builds new sequences
    rather than mutating ``history``.
    """

    child_id: str
    age_group: AgeGroup
    subject: str
    topic: str
    session_id: str
    history: tuple[ConversationMessage, ...] = ()
    learning_style: LearningStyle | None = None
    accessibility_needs: frozenset[AccessibilityNeed] = frozenset()
    interests: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationContext:
        """Build a context from loosely-typed session data.

        Raises ``ValueError`` for an unknown age group, learning style or
        accessibility need.
        """
        history = tuple(
            ConversationMessage(
                role=MessageRole(m["role"]),
                content=m.get("content", ""),
                timestamp=_parse_timestamp(m.get("timestamp")),
                token_count=m.get("token_count"),
            )
            for m in data.get("history", [])
        )
        style = data.get("learning_style")
        return cls(
            child_id=data["child_id"],
            age_group=AgeGroup(data["age_group"]),
            subject=data.get("subject", ""),
            topic=data.get("topic", ""),
            session_id=data["session_id"],
            history=history,
            learning_style=LearningStyle(style) if style else None,
            accessibility_needs=frozenset(
                AccessibilityNeed(n) for n in data.get("accessibility_needs", [])
            ),
            interests=tuple(data.get("interests", [])),
        )


def _parse_timestamp(value: Any) -> datetime:
    if value is None:
        return _utcnow()
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


# --- Reply ---


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class TutorResponse:
    """The reply returned by ``ResponseOrchestrator.generate_response``."""

    content: str
    token_usage: TokenUsage
    model: str
    filtered: bool
    age_appropriate: bool
    outcome: ResponseOutcome = ResponseOutcome.DELIVERED
    timestamp: datetime = field(default_factory=_utcnow)
    warnings: list[str] = field(default_factory=list)
    confidence: float | None = None  # None when the filter did not run
    safety_score: float | None = None  # None when the sanitizer did not run
