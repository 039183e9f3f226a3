"""Content filter for generated tutoring replies.

Runs an ordered table of detector stages over the model's output. Each
stage reports violations and may hand a locally rewritten text to the next
stage. Stages are independent objects so they can be tested alone and
reordered by passing a different ``stages`` sequence.

Default order:

1. profanity        lexical, rewrites to milder words
2. violence         lexical, age-tiered severity, redacts high/critical
3. adult topics     lexical, age-tiered severity, redacts high/critical
4. personal info    structural, always critical, always redacted
5. complexity       sentence length and syllables, rewrites only when critical
6. blocked topics   substring match against the tier's list, no rewrite
7. emotion density  emotion-lexicon hits, warns or violates
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Mapping, Sequence

from tutor.models.conversation import AgeGroup
from tutor.moderation.lexicon import Lexicon, default_lexicon
from tutor.moderation.models import ContentViolation, FilterResult, Severity, ViolationKind
from tutor.policy.age_policy import AgePolicy, get_policy
from tutor.utils.text_metrics import (
    Span,
    count_syllables,
    merge_overlapping,
    rewrite_spans,
    split_sentences,
    split_words,
    strip_placeholders,
)

logger = logging.getLogger(__name__)

FAIL_SAFE_MESSAGE = (
    "I'm sorry, but I can't provide a response right now. "
    "Please try asking your question in a different way."
)

_SEVERITY_PENALTY = {
    Severity.CRITICAL: 0.3,
    Severity.HIGH: 0.2,
    Severity.MEDIUM: 0.1,
    Severity.LOW: 0.05,
}


# ---------------------------------------------------------------------------
# Stage plumbing
# ---------------------------------------------------------------------------


@dataclass
class StageOutcome:
    """What a stage found. ``text`` is None when the stage left it unchanged."""

    violations: list[ContentViolation] = field(default_factory=list)
    text: str | None = None
    warnings: list[str] = field(default_factory=list)


class DetectorStage:
    """Base class for filter stages."""

    name = "stage"

    def run(
        self,
        text: str,
        policy: AgePolicy,
        lexicon: Lexicon,
        context: Mapping[str, str] | None = None,
    ) -> StageOutcome:
        raise NotImplementedError


SeverityRule = Callable[[Lexicon, str, AgeGroup], Severity]
RewriteRule = Callable[[Lexicon, str, Severity], "str | None"]


class LexicalStage(DetectorStage):
    """Regex matcher + severity rule + rewrite rule.

    Overlapping matches (from several patterns, or the same word listed in
    two patterns) are merged into one violation whose severity is the most
    severe of the matches.
    """

    def __init__(
        self,
        name: str,
        kind: ViolationKind,
        patterns: Callable[[Lexicon], Sequence[re.Pattern[str]]],
        severity: SeverityRule,
        rewrite: RewriteRule,
        describe: Callable[[str], str],
    ) -> None:
        self.name = name
        self.kind = kind
        self._patterns = patterns
        self._severity = severity
        self._rewrite = rewrite
        self._describe = describe

    def run(self, text, policy, lexicon, context=None):
        spans = []
        for pattern in self._patterns(lexicon):
            for match in pattern.finditer(text):
                severity = self._severity(lexicon, match.group(0), policy.age_group)
                spans.append(Span(match.start(), match.end(), severity))

        merged = merge_overlapping(spans, lambda a, b: a.escalate(b))
        outcome = StageOutcome()
        replacements: list[tuple[Span, str]] = []
        for span in merged:
            matched = text[span.start:span.end]
            severity: Severity = span.payload
            new_text = self._rewrite(lexicon, matched, severity)
            outcome.violations.append(
                ContentViolation(
                    kind=self.kind,
                    severity=severity,
                    description=self._describe(matched),
                    span=matched,
                    replacement=new_text,
                    start=span.start,
                    end=span.end,
                )
            )
            if new_text is not None:
                replacements.append((span, new_text))

        if replacements:
            outcome.text = rewrite_spans(text, replacements)
        return outcome


def _redact_if_severe(lexicon_attr: str) -> RewriteRule:
    def rule(lexicon: Lexicon, word: str, severity: Severity) -> str | None:
        if severity in (Severity.HIGH, Severity.CRITICAL):
            return getattr(lexicon, lexicon_attr).redaction
        return None

    return rule


PROFANITY_STAGE = LexicalStage(
    name="profanity",
    kind=ViolationKind.PROFANITY,
    patterns=lambda lex: lex.profanity.patterns,
    severity=lambda lex, word, age: lex.profanity.severity,
    rewrite=lambda lex, word, severity: lex.profanity.replacement_for(word),
    describe=lambda word: "Inappropriate language detected",
)

VIOLENCE_STAGE = LexicalStage(
    name="violence",
    kind=ViolationKind.VIOLENCE,
    patterns=lambda lex: lex.violence.patterns,
    severity=lambda lex, word, age: lex.violence.severity_for(word, age),
    rewrite=_redact_if_severe("violence"),
    describe=lambda word: f'Violence-related content: "{word}"',
)

ADULT_TOPIC_STAGE = LexicalStage(
    name="adult_topics",
    kind=ViolationKind.ADULT_TOPIC,
    patterns=lambda lex: lex.adult.patterns,
    severity=lambda lex, word, age: lex.adult.severity_for(word, age),
    rewrite=_redact_if_severe("adult"),
    describe=lambda word: f'Adult content detected: "{word}"',
)

PERSONAL_INFO_STAGE = LexicalStage(
    name="personal_information",
    kind=ViolationKind.PERSONAL_INFO,
    patterns=lambda lex: lex.personal_info,
    severity=lambda lex, word, age: Severity.CRITICAL,
    rewrite=lambda lex, word, severity: lex.personal_info_redaction,
    describe=lambda word: "Personal information detected and removed",
)


class ComplexityStage(DetectorStage):
    """Sentence length and syllables-per-word against the tier's maxima.

    Only warns, except when a word is critically complex: then each such
    word is abbreviated to its first four letters.
    """

    name = "complexity"

    def run(self, text, policy, lexicon, context=None):
        outcome = StageOutcome()
        plain = strip_placeholders(text)
        worst = Severity.LOW

        max_len = policy.max_sentence_length
        for sentence in split_sentences(plain):
            word_count = len(split_words(sentence))
            if word_count > max_len:
                severity = Severity.HIGH if word_count > max_len * 1.5 else Severity.MEDIUM
                worst = worst.escalate(severity)
                outcome.violations.append(
                    ContentViolation(
                        kind=ViolationKind.COMPLEX_LANGUAGE,
                        severity=severity,
                        description=(
                            f"Sentence too long for {policy.age_group.value}: "
                            f"{word_count} words (max: {max_len})"
                        ),
                        span=sentence,
                    )
                )

        max_syl = policy.max_syllables_per_word
        critical_words: list[str] = []
        for word in split_words(plain):
            syllables = count_syllables(word)
            if syllables <= max_syl:
                continue
            if syllables > max_syl * 2.5:
                severity = Severity.CRITICAL
                critical_words.append(word)
            elif syllables > max_syl * 2:
                severity = Severity.HIGH
            elif syllables > max_syl * 1.5:
                severity = Severity.MEDIUM
            else:
                severity = Severity.LOW
            worst = worst.escalate(severity)
            outcome.violations.append(
                ContentViolation(
                    kind=ViolationKind.COMPLEX_LANGUAGE,
                    severity=severity,
                    description=(
                        f'Word too complex for {policy.age_group.value}: "{word}" '
                        f"({syllables} syllables, max: {max_syl})"
                    ),
                    span=word,
                )
            )

        if outcome.violations:
            outcome.warnings.append(f"Content may be too complex for {policy.age_group.value}")
        if worst is Severity.CRITICAL:
            outcome.text = _abbreviate(text, critical_words)
        return outcome


def _abbreviate(text: str, words: list[str]) -> str:
    for word in set(words):
        core = re.sub(r"^\W+|\W+$", "", word)
        if len(core) > 4:
            text = re.sub(rf"\b{re.escape(core)}\b", core[:4] + ".", text)
    return text


class BlockedTopicStage(DetectorStage):
    """Substring match against the tier's blocked-topic list."""

    name = "blocked_topics"

    def run(self, text, policy, lexicon, context=None):
        lowered = strip_placeholders(text).lower()
        outcome = StageOutcome()
        for topic in policy.blocked_topics:
            if topic.lower() in lowered:
                outcome.violations.append(
                    ContentViolation(
                        kind=ViolationKind.ADULT_TOPIC,
                        severity=Severity.HIGH,
                        description=(
                            f'Blocked topic detected for {policy.age_group.value}: "{topic}"'
                        ),
                        span=topic,
                    )
                )
        return outcome


class EmotionStage(DetectorStage):
    """Counts hits per emotion; many hits warn, or violate where the tier says so."""

    name = "emotional_content"

    def run(self, text, policy, lexicon, context=None):
        plain = strip_placeholders(text)
        outcome = StageOutcome()
        for emotion, pattern in lexicon.emotions.items():
            hits = [m.group(0) for m in pattern.finditer(plain)]
            if not hits:
                continue
            threshold = policy.emotion_violation_hits
            if threshold is not None and len(hits) >= threshold:
                outcome.violations.append(
                    ContentViolation(
                        kind=ViolationKind.EMOTIONAL_CONTENT,
                        severity=Severity.MEDIUM,
                        description=(
                            f"Multiple instances of {emotion}-related content may be "
                            f"inappropriate for {policy.age_group.value}"
                        ),
                        span=", ".join(hits),
                    )
                )
            elif len(hits) >= policy.emotion_warning_hits:
                outcome.warnings.append(f"Content contains significant {emotion}-related themes")
        return outcome


DEFAULT_STAGES: tuple[DetectorStage, ...] = (
    PROFANITY_STAGE,
    VIOLENCE_STAGE,
    ADULT_TOPIC_STAGE,
    PERSONAL_INFO_STAGE,
    ComplexityStage(),
    BlockedTopicStage(),
    EmotionStage(),
)


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


class ContentFilter:
    """Screens generated text for an age tier.

    Parameters
    ----------
    lexicon : Lexicon | None
        Word lists and patterns. Defaults to the bundled ``lexicon.yaml``.
    stages : Sequence[DetectorStage]
        Detector stages in the order they run.
    """

    def __init__(
        self,
        lexicon: Lexicon | None = None,
        stages: Sequence[DetectorStage] = DEFAULT_STAGES,
    ) -> None:
        self.lexicon = lexicon or default_lexicon()
        self.stages = tuple(stages)

    def filter(
        self,
        text: str,
        age_group: AgeGroup,
        context: Mapping[str, str] | None = None,
    ) -> FilterResult:
        """Run every stage over *text* and decide whether it is appropriate.

        A response is appropriate when no violation is high or critical.
        If a stage raises, the result fails safe: inappropriate, with a
        critical synthetic violation and a generic redirect message.
        """
        started = time.monotonic()
        policy = get_policy(age_group)
        current = text
        violations: list[ContentViolation] = []
        warnings: list[str] = []

        try:
            for stage in self.stages:
                outcome = stage.run(current, policy, self.lexicon, context)
                violations.extend(outcome.violations)
                warnings.extend(outcome.warnings)
                if outcome.text is not None:
                    current = outcome.text
        except Exception:
            logger.exception("Content filtering failed for %s; blocking response", age_group.value)
            return FilterResult(
                is_appropriate=False,
                filtered_content=FAIL_SAFE_MESSAGE,
                violations=[
                    ContentViolation(
                        kind=ViolationKind.ADULT_TOPIC,
                        severity=Severity.CRITICAL,
                        description="Content filtering error - response blocked for safety",
                        span=text,
                    )
                ],
                confidence=0.0,
                warnings=["Content filtering service encountered an error"],
            )

        is_appropriate = not any(
            v.severity in (Severity.CRITICAL, Severity.HIGH) for v in violations
        )
        confidence = calculate_confidence(text, violations)

        logger.debug(
            "Content filtering completed in %dms for %s: length %d->%d, "
            "%d violations, appropriate=%s, confidence=%.2f",
            int((time.monotonic() - started) * 1000),
            age_group.value,
            len(text),
            len(current),
            len(violations),
            is_appropriate,
            confidence,
        )

        return FilterResult(
            is_appropriate=is_appropriate,
            filtered_content=current,
            violations=violations,
            confidence=confidence,
            warnings=warnings,
        )

    def stats(self) -> dict[str, int]:
        """Pattern and tier counts, for health pages."""
        lex = self.lexicon
        return {
            "patterns_loaded": (
                len(lex.profanity.patterns)
                + len(lex.violence.patterns)
                + len(lex.adult.patterns)
                + len(lex.personal_info)
                + len(lex.emotions)
            ),
            "stages": len(self.stages),
            "age_groups_supported": len(AgeGroup),
        }


def calculate_confidence(text: str, violations: list[ContentViolation]) -> float:
    """How sure the filter is of its decision, 0..1."""
    confidence = 1.0

    # Very short or very long text is harder to judge.
    if len(text) < 20:
        confidence -= 0.1
    if len(text) > 1000:
        confidence -= 0.1

    for v in violations:
        confidence -= _SEVERITY_PENALTY[v.severity]

    if len(violations) > 3:
        confidence -= 0.1
    if len(violations) > 6:
        confidence -= 0.1

    if not violations:
        confidence = min(1.0, confidence + 0.1)

    return max(0.0, min(1.0, confidence))
