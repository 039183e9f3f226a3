"""Second-pass sanitizer for replies the content filter already approved.

Covers categories the filter does not specialize in: emergency contacts,
external links, harmful instructions, and medical or legal advice. Each
check may rewrite the text; all modifications are recorded and feed a
safety score. A low score, or any harmful instruction, blocks the reply
and substitutes the tier's safety fallback.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from tutor.models.conversation import AgeGroup
from tutor.moderation.lexicon import Lexicon, default_lexicon
from tutor.policy.age_policy import get_policy
from tutor.utils.text_metrics import (
    Span,
    count_syllables,
    merge_overlapping,
    rewrite_spans,
    split_sentences,
    split_words,
)

logger = logging.getLogger(__name__)

BLOCK_THRESHOLD = 0.5
_CONTEXT_WINDOW = 50


class ModificationType(Enum):
    REMOVAL = "removal"
    REPLACEMENT = "replacement"
    WARNING_ADDED = "warning_added"


class SanitizationCategory(Enum):
    EMERGENCY_CONTACT = "emergency_contact"
    URL = "url"
    HARMFUL_INSTRUCTION = "harmful_instruction"
    MEDICAL_ADVICE = "medical_advice"
    LEGAL_ADVICE = "legal_advice"
    DISCLAIMER = "disclaimer"
    ERROR = "error"


_CRITICAL_CATEGORIES = {
    SanitizationCategory.EMERGENCY_CONTACT,
    SanitizationCategory.HARMFUL_INSTRUCTION,
}
_ADVICE_CATEGORIES = {
    SanitizationCategory.MEDICAL_ADVICE,
    SanitizationCategory.LEGAL_ADVICE,
}


@dataclass(frozen=True)
class ParentalControls:
    block_sensitive_topics: bool = False
    require_approval_for_complex_topics: bool = False


@dataclass(frozen=True)
class SafetyCheckConfig:
    """Per-call safety settings supplied by the caller."""

    age_group: AgeGroup
    strict_mode: bool = False
    allow_educational_exceptions: bool = True
    parental_controls: ParentalControls = field(default_factory=ParentalControls)

    @classmethod
    def for_age(cls, age_group: AgeGroup) -> SafetyCheckConfig:
        """Defaults used by the orchestrator: strictest for the youngest tier."""
        young = age_group is AgeGroup.YOUNG
        return cls(
            age_group=age_group,
            strict_mode=young,
            allow_educational_exceptions=True,
            parental_controls=ParentalControls(
                block_sensitive_topics=young,
                require_approval_for_complex_topics=False,
            ),
        )


@dataclass
class SanitizationModification:
    type: ModificationType
    category: SanitizationCategory
    original: str
    new_text: str
    reason: str
    start: int | None = None
    end: int | None = None


@dataclass
class SanitizationResult:
    sanitized_content: str
    warnings: list[str] = field(default_factory=list)
    blocked: bool = False
    modifications: list[SanitizationModification] = field(default_factory=list)
    safety_score: float = 1.0


@dataclass
class _CheckOutcome:
    content: str
    modifications: list[SanitizationModification] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    block: bool = False


def _find(patterns: Sequence[re.Pattern[str]], text: str) -> list[Span]:
    """All matches of all patterns, with overlaps collapsed."""
    spans = [Span(m.start(), m.end()) for p in patterns for m in p.finditer(text)]
    return merge_overlapping(spans, lambda a, b: a)


class ResponseSanitizer:
    """Defense-in-depth pass run after the content filter."""

    def __init__(self, lexicon: Lexicon | None = None) -> None:
        self.lexicon = lexicon or default_lexicon()
        self._lex = self.lexicon.sanitizer

    # -- public API ----------------------------------------------------------

    def sanitize(self, text: str, config: SafetyCheckConfig) -> SanitizationResult:
        """Sanitize *text* for the caller's safety settings.

        When the result is blocked, ``sanitized_content`` is the tier's
        safety fallback and the original text is discarded.
        """
        modifications: list[SanitizationModification] = []
        warnings: list[str] = []
        content = text
        blocked = False

        try:
            for check in (
                self._check_emergency_contacts,
                self._check_urls,
                self._check_harmful_instructions,
                self._check_medical_advice,
                self._check_legal_advice,
            ):
                outcome = check(content, config)
                content = outcome.content
                modifications.extend(outcome.modifications)
                warnings.extend(outcome.warnings)
                blocked = blocked or outcome.block

            warnings.extend(self._complexity_warnings(content, config))

            outcome = self._add_disclaimers(content, modifications)
            content = outcome.content
            modifications.extend(outcome.modifications)

            score = safety_score(text, content, modifications, config.age_group)
        except Exception:
            logger.exception("Response sanitization failed for %s; blocking", config.age_group.value)
            fallback = get_policy(config.age_group).sanitization_fallback
            return SanitizationResult(
                sanitized_content=fallback,
                warnings=["Content sanitization error"],
                blocked=True,
                modifications=[
                    SanitizationModification(
                        type=ModificationType.REPLACEMENT,
                        category=SanitizationCategory.ERROR,
                        original=text,
                        new_text=fallback,
                        reason="Sanitization service error - blocked for safety",
                    )
                ],
                safety_score=0.0,
            )

        if score < BLOCK_THRESHOLD:
            blocked = True
            logger.warning(
                "Response blocked due to low safety score %.2f (%d modifications, %s)",
                score,
                len(modifications),
                config.age_group.value,
            )

        return SanitizationResult(
            sanitized_content=(
                get_policy(config.age_group).sanitization_fallback if blocked else content
            ),
            warnings=warnings,
            blocked=blocked,
            modifications=modifications,
            safety_score=score,
        )

    def stats(self) -> dict[str, int]:
        lex = self._lex
        return {
            "patterns_loaded": (
                len(lex.emergency_contacts)
                + len(lex.urls)
                + len(lex.harmful_instructions)
                + len(lex.medical_advice)
                + len(lex.legal_advice)
            )
        }

    # -- checks --------------------------------------------------------------

    def _check_emergency_contacts(self, content: str, config: SafetyCheckConfig) -> _CheckOutcome:
        young = config.age_group is AgeGroup.YOUNG
        exemptable = config.allow_educational_exceptions and not young
        placeholder = self._lex.placeholders["emergency_contact"]
        outcome = _CheckOutcome(content=content)
        replacements = []

        for span in _find(self._lex.emergency_contacts, content):
            if exemptable and self._is_educational(content, span):
                continue
            matched = content[span.start:span.end]
            outcome.modifications.append(
                SanitizationModification(
                    type=ModificationType.REPLACEMENT,
                    category=SanitizationCategory.EMERGENCY_CONTACT,
                    original=matched,
                    new_text=placeholder,
                    reason="Emergency contact information removed for safety",
                    start=span.start,
                    end=span.end,
                )
            )
            replacements.append((span, placeholder))
            if young:
                outcome.block = True

        outcome.content = rewrite_spans(content, replacements)
        return outcome

    def _is_educational(self, content: str, span: Span) -> bool:
        before = content[max(0, span.start - _CONTEXT_WINDOW):span.start]
        after = content[span.end:span.end + _CONTEXT_WINDOW]
        return bool(self._lex.educational_context.search(f"{before} {after}"))

    def _check_urls(self, content: str, config: SafetyCheckConfig) -> _CheckOutcome:
        strip = (
            config.age_group is AgeGroup.YOUNG
            or config.parental_controls.block_sensitive_topics
        )
        placeholder = self._lex.placeholders["url"]
        outcome = _CheckOutcome(content=content)
        spans = _find(self._lex.urls, content)
        if not spans:
            return outcome

        if not strip:
            outcome.warnings.append(
                "Response contains external links - parental guidance recommended"
            )
            return outcome

        for span in spans:
            outcome.modifications.append(
                SanitizationModification(
                    type=ModificationType.REPLACEMENT,
                    category=SanitizationCategory.URL,
                    original=content[span.start:span.end],
                    new_text=placeholder,
                    reason="External links removed for safety",
                    start=span.start,
                    end=span.end,
                )
            )
        outcome.content = rewrite_spans(content, [(s, placeholder) for s in spans])
        return outcome

    def _check_harmful_instructions(self, content: str, config: SafetyCheckConfig) -> _CheckOutcome:
        outcome = _CheckOutcome(content=content)
        spans = _find(self._lex.harmful_instructions, content)
        for span in spans:
            outcome.modifications.append(
                SanitizationModification(
                    type=ModificationType.REMOVAL,
                    category=SanitizationCategory.HARMFUL_INSTRUCTION,
                    original=content[span.start:span.end],
                    new_text="",
                    reason="Harmful instruction removed",
                    start=span.start,
                    end=span.end,
                )
            )
        if spans:
            outcome.block = True
            outcome.content = rewrite_spans(content, [(s, "") for s in spans])
        return outcome

    def _check_medical_advice(self, content: str, config: SafetyCheckConfig) -> _CheckOutcome:
        return self._replace_advice(
            content,
            self._lex.medical_advice,
            SanitizationCategory.MEDICAL_ADVICE,
            reason="Medical advice replaced with general guidance",
            warning="Medical advice detected and sanitized",
        )

    def _check_legal_advice(self, content: str, config: SafetyCheckConfig) -> _CheckOutcome:
        return self._replace_advice(
            content,
            self._lex.legal_advice,
            SanitizationCategory.LEGAL_ADVICE,
            reason="Legal advice replaced with general guidance",
            warning="Legal advice detected and sanitized",
        )

    def _replace_advice(
        self,
        content: str,
        patterns: Sequence[re.Pattern[str]],
        category: SanitizationCategory,
        reason: str,
        warning: str,
    ) -> _CheckOutcome:
        placeholder = self._lex.placeholders[category.value]
        outcome = _CheckOutcome(content=content)
        spans = _find(patterns, content)
        for span in spans:
            outcome.modifications.append(
                SanitizationModification(
                    type=ModificationType.REPLACEMENT,
                    category=category,
                    original=content[span.start:span.end],
                    new_text=placeholder,
                    reason=reason,
                    start=span.start,
                    end=span.end,
                )
            )
            outcome.warnings.append(warning)
        if spans:
            outcome.content = rewrite_spans(content, [(s, placeholder) for s in spans])
        return outcome

    def _complexity_warnings(self, content: str, config: SafetyCheckConfig) -> list[str]:
        policy = get_policy(config.age_group)
        age = config.age_group.value
        warnings = []

        long_sentences = [
            s for s in split_sentences(content) if len(split_words(s)) > policy.max_sentence_length
        ]
        if long_sentences:
            warnings.append(f"Response contains {len(long_sentences)} complex sentences for {age}")

        words = split_words(content)
        complex_words = [
            w for w in words if count_syllables(w) > policy.max_syllables_per_word
        ]
        # Strict mode warns on any complex word, otherwise above 10%.
        limit = 0 if config.strict_mode else len(words) * 0.1
        if words and len(complex_words) > limit:
            warnings.append(f"Response may contain vocabulary too complex for {age}")

        if warnings and config.parental_controls.require_approval_for_complex_topics:
            warnings.append("Complex content - parental approval recommended")
        return warnings

    def _add_disclaimers(
        self, content: str, modifications: list[SanitizationModification]
    ) -> _CheckOutcome:
        outcome = _CheckOutcome(content=content)
        fired = {m.category for m in modifications}
        for category in (SanitizationCategory.MEDICAL_ADVICE, SanitizationCategory.LEGAL_ADVICE):
            if category not in fired:
                continue
            disclaimer = "\n\n" + self._lex.disclaimers[category.value]
            outcome.content += disclaimer
            outcome.modifications.append(
                SanitizationModification(
                    type=ModificationType.WARNING_ADDED,
                    category=SanitizationCategory.DISCLAIMER,
                    original="",
                    new_text=disclaimer,
                    reason=f"{category.value.replace('_', ' ').capitalize()} disclaimer added",
                )
            )
        return outcome


def safety_score(
    original: str,
    sanitized: str,
    modifications: list[SanitizationModification],
    age_group: AgeGroup,
) -> float:
    """Score 0..1; higher is safer."""
    score = 1.0
    score -= 0.3 * sum(1 for m in modifications if m.category in _CRITICAL_CATEGORIES)
    score -= 0.1 * sum(1 for m in modifications if m.category in _ADVICE_CATEGORIES)

    if original:
        reduction = (len(original) - len(sanitized)) / len(original)
        if reduction > 0.2:
            score -= reduction * 0.5

    if age_group is AgeGroup.YOUNG and modifications:
        score -= 0.2

    return max(0.0, min(1.0, score))
