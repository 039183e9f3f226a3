"""Age-tier policy table.

One ``AgePolicy`` per ``AgeGroup``. Every rule that varies by age reads
its value from here, so adding a rule means adding a field that each tier
must define.
"""

from __future__ import annotations

from dataclasses import dataclass

from tutor.models.conversation import AgeGroup


@dataclass(frozen=True)
class AgePolicy:
    """All per-tier thresholds and copy."""

    age_group: AgeGroup
    # Language complexity
    max_sentence_length: int
    max_syllables_per_word: int
    # Topics
    blocked_topics: tuple[str, ...]
    # Emotional content: hits of a single emotion needed to violate
    # (None = never violates) and to warn.
    emotion_violation_hits: int | None
    emotion_warning_hits: int
    # Generation
    temperature: float
    max_tokens: int
    complexity_label: str  # simple | balanced | advanced
    safety_level: str  # high | medium | standard
    # Conversational difficulty offset used by the complexity analyzer
    conceptual_offset: int
    # Canned copy
    content_fallback: str
    sanitization_fallback: str
    unavailable_fallback: str


AGE_POLICIES: dict[AgeGroup, AgePolicy] = {
    AgeGroup.YOUNG: AgePolicy(
        age_group=AgeGroup.YOUNG,
        max_sentence_length=15,
        max_syllables_per_word=3,
        blocked_topics=(
            "death", "violence", "adult relationships", "politics", "religion",
            "finances", "complex emotions", "war", "disease", "disasters",
        ),
        emotion_violation_hits=2,
        emotion_warning_hits=3,
        temperature=0.8,
        max_tokens=150,
        complexity_label="simple",
        safety_level="high",
        conceptual_offset=-20,
        content_fallback=(
            "I want to make sure I give you the best answer for learning! Could you "
            "ask your question in a different way? Maybe your teacher or parent can "
            "help you ask it too!"
        ),
        sanitization_fallback=(
            "I want to make sure my answer is perfect for you! Let's try a different "
            "question about learning. What would you like to know?"
        ),
        unavailable_fallback=(
            "I'm having trouble thinking right now, but let's keep learning! Can you "
            "tell me more about what you'd like to know?"
        ),
    ),
    AgeGroup.MIDDLE: AgePolicy(
        age_group=AgeGroup.MIDDLE,
        max_sentence_length=25,
        max_syllables_per_word=4,
        blocked_topics=(
            "graphic violence", "sexual content", "substance abuse", "extreme politics",
            "adult financial topics", "mature relationships", "conspiracy theories",
        ),
        emotion_violation_hits=None,
        emotion_warning_hits=3,
        temperature=0.7,
        max_tokens=200,
        complexity_label="balanced",
        safety_level="medium",
        conceptual_offset=0,
        content_fallback=(
            "I need to be careful about the topics we discuss to make sure they're "
            "appropriate for your learning. Could you try asking your question "
            "differently, or maybe focus on a specific part you'd like to understand?"
        ),
        sanitization_fallback=(
            "I need to be extra careful about my responses to keep our conversation "
            "safe and educational. Could you ask your question in a different way?"
        ),
        unavailable_fallback=(
            "I'm experiencing some technical difficulties. While I work on that, why "
            "don't you try exploring this topic a bit more on your own?"
        ),
    ),
    AgeGroup.TEEN: AgePolicy(
        age_group=AgeGroup.TEEN,
        max_sentence_length=35,
        max_syllables_per_word=6,
        blocked_topics=(
            "graphic violence", "explicit sexual content", "substance abuse details",
            "self-harm", "extreme ideologies", "illegal activities",
        ),
        emotion_violation_hits=None,
        emotion_warning_hits=3,
        temperature=0.6,
        max_tokens=300,
        complexity_label="advanced",
        safety_level="standard",
        conceptual_offset=15,
        content_fallback=(
            "I want to ensure our conversation stays focused on educational topics "
            "that are appropriate for your learning goals. Could you rephrase your "
            "question or be more specific about what you'd like to learn?"
        ),
        sanitization_fallback=(
            "I want to ensure our conversation stays focused on safe, educational "
            "topics. Please rephrase your question or try a different approach."
        ),
        unavailable_fallback=(
            "I'm currently unable to process your request due to technical issues. "
            "Please try again in a few moments, or consider researching this topic "
            "independently."
        ),
    ),
}

_missing = set(AgeGroup) - set(AGE_POLICIES)
if _missing:
    raise RuntimeError(f"No age policy defined for: {sorted(g.value for g in _missing)}")


def get_policy(age_group: AgeGroup) -> AgePolicy:
    """Return the policy for *age_group*."""
    return AGE_POLICIES[age_group]
