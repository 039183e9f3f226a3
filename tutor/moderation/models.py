"""Data models for content filtering."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ViolationKind(Enum):
    PROFANITY = "inappropriate_language"
    VIOLENCE = "violence"
    SEXUAL = "sexual_content"
    HATE = "hate_speech"
    BULLYING = "bullying"
    DANGEROUS_ACTIVITY = "dangerous_activities"
    PERSONAL_INFO = "personal_information"
    ADULT_TOPIC = "adult_topics"
    COMPLEX_LANGUAGE = "complex_language"
    EMOTIONAL_CONTENT = "emotional_content"
    COMMERCIAL = "commercial_content"
    MEDICAL_ADVICE = "medical_advice"
    LEGAL_ADVICE = "legal_advice"


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def escalate(self, other: Severity) -> Severity:
        """Return the more severe of the two."""
        return self if self.rank >= other.rank else other


_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


@dataclass
class ContentViolation:
    """A single policy breach found in generated text."""

    kind: ViolationKind
    severity: Severity
    description: str
    span: str  # offending text
    replacement: str | None = None
    start: int | None = None  # offset within the text the stage inspected
    end: int | None = None


@dataclass
class FilterResult:
    """Outcome of one ``ContentFilter.filter`` pass."""

    is_appropriate: bool
    filtered_content: str
    violations: list[ContentViolation] = field(default_factory=list)
    confidence: float = 1.0
    warnings: list[str] = field(default_factory=list)

    def count(self, severity: Severity) -> int:
        return sum(1 for v in self.violations if v.severity is severity)
