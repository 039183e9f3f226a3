"""Tests for the content filter and its detector stages."""

import pytest

from tutor.models.conversation import AgeGroup
from tutor.moderation.content_filter import (
    FAIL_SAFE_MESSAGE,
    ContentFilter,
    DetectorStage,
    calculate_confidence,
)
from tutor.moderation.models import ContentViolation, Severity, ViolationKind
from tutor.policy.age_policy import AGE_POLICIES


@pytest.fixture(scope="module")
def content_filter():
    return ContentFilter()


# --- Personal information ---


@pytest.mark.parametrize("age_group", list(AgeGroup))
def test_phone_number_is_one_critical_violation(content_filter, age_group):
    result = content_filter.filter("My number is 555-123-4567, call me!", age_group)

    assert len(result.violations) == 1
    violation = result.violations[0]
    assert violation.kind is ViolationKind.PERSONAL_INFO
    assert violation.kind.value == "personal_information"
    assert violation.severity is Severity.CRITICAL
    assert not result.is_appropriate
    assert "[personal information removed]" in result.filtered_content
    assert "555" not in result.filtered_content


@pytest.mark.parametrize("age_group", list(AgeGroup))
def test_email_redacted_even_in_educational_context(content_filter, age_group):
    text = "It is important to learn safety: never share kid@example.com online."
    result = content_filter.filter(text, age_group)

    assert any(
        v.kind is ViolationKind.PERSONAL_INFO and v.severity is Severity.CRITICAL
        for v in result.violations
    )
    assert not result.is_appropriate
    assert "kid@example.com" not in result.filtered_content
    assert "[personal information removed]" in result.filtered_content


# --- Lexical stages ---


def test_profanity_rewritten_to_milder_word(content_filter):
    result = content_filter.filter("That idea is stupid.", AgeGroup.MIDDLE)

    assert result.filtered_content == "That idea is silly."
    assert result.is_appropriate
    profanity = [v for v in result.violations if v.kind is ViolationKind.PROFANITY]
    assert len(profanity) == 1
    assert profanity[0].severity is Severity.MEDIUM
    assert result.confidence < 1.0


def test_word_in_two_patterns_yields_one_violation(content_filter):
    # "stupid" is listed in both profanity patterns.
    result = content_filter.filter("stupid", AgeGroup.TEEN)
    assert sum(1 for v in result.violations if v.kind is ViolationKind.PROFANITY) == 1


def test_violence_severity_depends_on_age(content_filter):
    young = content_filter.filter("The knife was sharp.", AgeGroup.YOUNG)
    teen = content_filter.filter("The knife was sharp.", AgeGroup.TEEN)

    young_violence = [v for v in young.violations if v.kind is ViolationKind.VIOLENCE]
    teen_violence = [v for v in teen.violations if v.kind is ViolationKind.VIOLENCE]
    assert young_violence[0].severity is Severity.CRITICAL
    assert teen_violence[0].severity is Severity.MEDIUM

    assert not young.is_appropriate
    assert young.filtered_content == "The [removed] was sharp."
    assert teen.is_appropriate
    assert teen.filtered_content == "The knife was sharp."


def test_economics_terms_lenient_for_older_tiers(content_filter):
    middle = content_filter.filter("Saving money is smart.", AgeGroup.MIDDLE)
    young = content_filter.filter("Saving money is smart.", AgeGroup.YOUNG)

    assert middle.is_appropriate
    assert middle.violations[0].severity is Severity.LOW
    assert not young.is_appropriate
    assert "[removed]" in young.filtered_content


# --- Complexity, topics, emotion ---


def test_long_sentence_warns_without_rewrite(content_filter):
    text = (
        "I like to read big books about cats and dogs and birds and fish "
        "and frogs and bugs every day"
    )
    result = content_filter.filter(text, AgeGroup.YOUNG)

    complex_language = [v for v in result.violations if v.kind is ViolationKind.COMPLEX_LANGUAGE]
    assert len(complex_language) == 1
    assert complex_language[0].severity is Severity.MEDIUM
    assert "Content may be too complex for ages6to9" in result.warnings
    assert result.filtered_content == text
    assert result.is_appropriate


def test_critical_word_is_abbreviated(content_filter):
    result = content_filter.filter(
        "Consider antidisestablishmentarianism carefully.", AgeGroup.YOUNG
    )

    assert result.filtered_content == "Consider anti. carefully."
    critical = [
        v
        for v in result.violations
        if v.kind is ViolationKind.COMPLEX_LANGUAGE and v.severity is Severity.CRITICAL
    ]
    assert [v.span for v in critical] == ["antidisestablishmentarianism"]
    assert not result.is_appropriate


def test_blocked_topic_is_high_violation(content_filter):
    result = content_filter.filter("Conspiracy theories can be fun.", AgeGroup.MIDDLE)

    topics = [v for v in result.violations if v.span == "conspiracy theories"]
    assert len(topics) == 1
    assert topics[0].severity is Severity.HIGH
    assert not result.is_appropriate
    assert result.filtered_content == "Conspiracy theories can be fun."


def test_emotion_density_violates_only_for_youngest(content_filter):
    text = "I was scared and afraid."
    young = content_filter.filter(text, AgeGroup.YOUNG)
    teen = content_filter.filter(text, AgeGroup.TEEN)

    assert any(v.kind is ViolationKind.EMOTIONAL_CONTENT for v in young.violations)
    assert not any(v.kind is ViolationKind.EMOTIONAL_CONTENT for v in teen.violations)
    assert young.is_appropriate


# --- Decision, confidence, fail-safe ---


def test_clean_text_is_idempotent(content_filter):
    text = "Plants need sunlight and water to grow."
    first = content_filter.filter(text, AgeGroup.YOUNG)
    assert first.is_appropriate
    assert first.violations == []

    second = content_filter.filter(first.filtered_content, AgeGroup.YOUNG)
    assert second.filtered_content == first.filtered_content == text
    assert second.violations == []


def test_confidence_penalties():
    def low(n):
        return [
            ContentViolation(ViolationKind.PROFANITY, Severity.LOW, "x", "x") for _ in range(n)
        ]

    long_enough = "a" * 30
    assert calculate_confidence("short", []) == pytest.approx(1.0)
    assert calculate_confidence(long_enough, low(4)) == pytest.approx(0.7)
    assert calculate_confidence(long_enough, low(7)) == pytest.approx(0.45)
    critical = [ContentViolation(ViolationKind.VIOLENCE, Severity.CRITICAL, "x", "x")] * 5
    assert calculate_confidence(long_enough, critical) == 0.0


class ExplodingStage(DetectorStage):
    name = "exploding"

    def run(self, text, policy, lexicon, context=None):
        raise RuntimeError("detector bug")


def test_stage_error_fails_safe():
    result = ContentFilter(stages=[ExplodingStage()]).filter("Hello there", AgeGroup.TEEN)

    assert not result.is_appropriate
    assert result.filtered_content == FAIL_SAFE_MESSAGE
    assert len(result.violations) == 1
    assert result.violations[0].severity is Severity.CRITICAL
    assert result.confidence == 0.0


def test_stats(content_filter):
    stats = content_filter.stats()
    assert stats["age_groups_supported"] == len(AGE_POLICIES) == 3
    assert stats["stages"] == 7
    assert stats["patterns_loaded"] > 0
