"""Token and conversation optimization.

- ``TokenEstimator``: approximate token cost of a string.
- ``ComplexityAnalyzer``: score how demanding a conversation is.
- ``ModelSelector``: map a complexity score to a model tier.
- ``ConversationPruner``: trim history to a token budget.
- ``calculate_cost``: price a call from the fixed pricing table.

Token counts here are a word-shape heuristic, not the provider's real
tokenizer. They are only used for budget comparisons, which need counts
that grow with text length, not exact ones.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from tutor.models.conversation import AgeGroup, ConversationMessage, MessageRole
from tutor.policy.age_policy import get_policy

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Model tiers and pricing (USD per 1K tokens)
# ---------------------------------------------------------------------------


class ModelType(Enum):
    """Selectable completion tiers, cheapest first."""

    HAIKU = "claude-3-5-haiku-20241022"
    SONNET = "claude-sonnet-4-5-20250929"
    OPUS = "claude-opus-4-20250514"


MODEL_PRICING: dict[ModelType, dict[str, float]] = {
    ModelType.HAIKU: {"input": 0.0008, "output": 0.004},
    ModelType.SONNET: {"input": 0.003, "output": 0.015},
    ModelType.OPUS: {"input": 0.015, "output": 0.075},
}

CHEAPEST_MODEL = ModelType.HAIKU
MID_MODEL = ModelType.SONNET
TOP_MODEL = ModelType.OPUS


def resolve_model(model: ModelType | str) -> ModelType | None:
    if isinstance(model, ModelType):
        return model
    try:
        return ModelType(model)
    except ValueError:
        return None


def calculate_cost(prompt_tokens: int, completion_tokens: int, model: ModelType | str) -> float:
    """Estimated USD cost of one call. Unknown models cost 0."""
    resolved = resolve_model(model)
    if resolved is None:
        logger.warning("Unknown model pricing: %s", model)
        return 0.0
    pricing = MODEL_PRICING[resolved]
    return (prompt_tokens / 1000) * pricing["input"] + (completion_tokens / 1000) * pricing["output"]


# ---------------------------------------------------------------------------
# Token estimation
# ---------------------------------------------------------------------------

_SPECIAL_CHARS = re.compile(r"[^A-Za-z0-9_\s]")


class TokenEstimator:
    """Word-shape token estimate.

    Short words (<= 3 chars) cost 1, medium words (<= 6) cost len/3,
    longer words len/2.5, each rounded up; punctuation adds half a token
    per symbol. The sum is scaled by 1.1 for formatting overhead. Any
    non-empty text, whitespace included, costs at least one token.
    """

    def count(self, text: str) -> int:
        raw = 0
        for word in text.split():
            n = len(word)
            if n <= 3:
                raw += 1
            elif n <= 6:
                raw += math.ceil(n / 3)
            else:
                raw += math.ceil(n / 2.5)
            specials = len(_SPECIAL_CHARS.findall(word))
            if specials:
                raw += math.ceil(specials / 2)
        if raw == 0:
            return 1 if text else 0
        return math.ceil(raw * 11 / 10)

    def count_message(self, message: ConversationMessage) -> int:
        if message.token_count is not None:
            return message.token_count
        return self.count(message.content)


# ---------------------------------------------------------------------------
# Complexity analysis
# ---------------------------------------------------------------------------


class ComplexityLevel(Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
    ADVANCED = "advanced"


@dataclass(frozen=True)
class ComplexityFactors:
    vocabulary: float = 0.0
    conceptual: float = 0.0
    context_length: float = 0.0
    interaction_depth: float = 0.0


@dataclass(frozen=True)
class ConversationComplexity:
    level: ComplexityLevel
    score: float  # 0-100
    factors: ComplexityFactors = field(default_factory=ComplexityFactors)


SUBJECT_BASE_COMPLEXITY: dict[str, int] = {
    "math": 60,
    "science": 70,
    "physics": 80,
    "chemistry": 75,
    "biology": 65,
    "history": 50,
    "english": 40,
    "art": 30,
    "music": 35,
}
DEFAULT_SUBJECT_COMPLEXITY = 50

ADVANCED_TERMS: tuple[str, ...] = (
    "equation", "formula", "theorem", "hypothesis", "analysis",
    "synthesis", "derivative", "integral", "molecular", "quantum",
)
_ADVANCED_TERM_PATTERN = re.compile("|".join(ADVANCED_TERMS), re.IGNORECASE)
ADVANCED_TERM_BONUS = 5

CLARIFICATION_PHRASES: tuple[str, ...] = (
    "what do you mean",
    "can you explain",
    "i don't understand",
)

ANALYSIS_WINDOW = 5
FACTOR_WEIGHTS = ComplexityFactors(
    vocabulary=0.3, conceptual=0.4, context_length=0.2, interaction_depth=0.1
)


class ComplexityAnalyzer:
    """Scores vocabulary, conceptual, context-length and interaction complexity.

    Text-based factors look at the last five messages only; the
    count-based factors use the full history length.
    """

    def analyze(
        self,
        messages: Sequence[ConversationMessage],
        subject: str,
        age_group: AgeGroup,
    ) -> ConversationComplexity:
        recent = messages[-ANALYSIS_WINDOW:]
        combined = " ".join(m.content for m in recent)

        factors = ComplexityFactors(
            vocabulary=self.vocabulary_complexity(combined),
            conceptual=self.conceptual_difficulty(subject, age_group, combined),
            context_length=float(min(len(messages) * 10, 100)),
            interaction_depth=self.interaction_depth(messages),
        )
        score = (
            factors.vocabulary * FACTOR_WEIGHTS.vocabulary
            + factors.conceptual * FACTOR_WEIGHTS.conceptual
            + factors.context_length * FACTOR_WEIGHTS.context_length
            + factors.interaction_depth * FACTOR_WEIGHTS.interaction_depth
        )
        return ConversationComplexity(level=level_for_score(score), score=score, factors=factors)

    def vocabulary_complexity(self, text: str) -> float:
        """Blend of average word length, lexical diversity and long-word ratio."""
        words = text.lower().split()
        if not words:
            logger.warning("EstimationDegraded: no words for vocabulary analysis, using 0")
            return 0.0

        average_length = sum(len(w) for w in words) / len(words)
        diversity = len(set(words)) / len(words)
        long_ratio = sum(1 for w in words if len(w) > 7) / len(words)

        score = (
            min(average_length * 10, 50)
            + min(diversity * 100, 30)
            + min(long_ratio * 100, 20)
        )
        return min(score, 100.0)

    def conceptual_difficulty(self, subject: str, age_group: AgeGroup, text: str) -> float:
        base = SUBJECT_BASE_COMPLEXITY.get(subject.strip().lower(), DEFAULT_SUBJECT_COMPLEXITY)
        base += get_policy(age_group).conceptual_offset
        base += ADVANCED_TERM_BONUS * len(_ADVANCED_TERM_PATTERN.findall(text))
        return float(max(0, min(base, 100)))

    def interaction_depth(self, messages: Sequence[ConversationMessage]) -> float:
        """Reward follow-up question streaks and clarification requests."""
        if len(messages) < 2:
            return 0.0

        depth = 0
        streak = 0
        follow_up = 0
        for previous, current in zip(messages, messages[1:]):
            if current.role is MessageRole.USER and previous.role is MessageRole.ASSISTANT:
                if "?" in current.content:
                    streak += 1
                    follow_up += streak
                else:
                    streak = 0

        for message in messages[1:]:
            lowered = message.content.lower().replace("’", "'")
            if any(phrase in lowered for phrase in CLARIFICATION_PHRASES):
                depth += 15

        depth += follow_up * 2
        depth += min(len(messages) * 2, 40)
        return float(min(depth, 100))


def level_for_score(score: float) -> ComplexityLevel:
    if score < 25:
        return ComplexityLevel.SIMPLE
    if score < 50:
        return ComplexityLevel.MODERATE
    if score < 75:
        return ComplexityLevel.COMPLEX
    return ComplexityLevel.ADVANCED


# ---------------------------------------------------------------------------
# Model selection
# ---------------------------------------------------------------------------

_COST_PRIORITY: dict[ComplexityLevel, ModelType] = {
    ComplexityLevel.SIMPLE: CHEAPEST_MODEL,
    ComplexityLevel.MODERATE: CHEAPEST_MODEL,
    ComplexityLevel.COMPLEX: MID_MODEL,
    ComplexityLevel.ADVANCED: TOP_MODEL,
}
_PERFORMANCE_PRIORITY: dict[ComplexityLevel, ModelType] = {
    ComplexityLevel.SIMPLE: CHEAPEST_MODEL,
    ComplexityLevel.MODERATE: TOP_MODEL,
    ComplexityLevel.COMPLEX: TOP_MODEL,
    ComplexityLevel.ADVANCED: TOP_MODEL,
}


class ModelSelector:
    """Fixed decision table from complexity level to model tier."""

    def recommend(
        self, complexity: ConversationComplexity, prioritize_cost: bool = True
    ) -> ModelType:
        table = _COST_PRIORITY if prioritize_cost else _PERFORMANCE_PRIORITY
        return table[complexity.level]


# ---------------------------------------------------------------------------
# Pruning
# ---------------------------------------------------------------------------

_IMPORTANT_WORDS = ("help", "explain", "understand", "confused")
_SUBSTANTIVE_LENGTH = 50
_SOFT_BUDGET_RATIO = 0.8


class ConversationPruner:
    """Greedy history pruning that keeps salient messages.

    The newest message is kept first. Older messages are then considered
    newest to oldest: important ones are admitted while they fit the
    budget, others only while usage stays within 80% of it. Output keeps
    the input's chronological order and never exceeds the budget.
    """

    def __init__(self, estimator: TokenEstimator | None = None) -> None:
        self.estimator = estimator or TokenEstimator()

    def prune(
        self,
        messages: Sequence[ConversationMessage],
        token_budget: int,
        age_group: AgeGroup,
    ) -> list[ConversationMessage]:
        if not messages:
            return []

        costs = [self.estimator.count_message(m) for m in messages]
        total = sum(costs)
        if total <= token_budget:
            return list(messages)

        kept: list[int] = []
        used = 0
        last = len(messages) - 1
        if costs[last] <= token_budget:
            kept.append(last)
            used += costs[last]

        soft_limit = token_budget * _SOFT_BUDGET_RATIO
        for i in range(last - 1, -1, -1):
            cost = costs[i]
            if used + cost > token_budget:
                continue
            if self.is_important(messages[i], age_group) or used + cost <= soft_limit:
                kept.append(i)
                used += cost

        pruned = [messages[i] for i in sorted(kept)]
        logger.debug(
            "Pruned conversation from %d to %d messages, %d to %d tokens",
            len(messages),
            len(pruned),
            total,
            used,
        )
        return pruned

    @staticmethod
    def is_important(message: ConversationMessage, age_group: AgeGroup) -> bool:
        if message.role is MessageRole.ASSISTANT:
            return True
        lowered = message.content.lower()
        if "?" in lowered or any(w in lowered for w in _IMPORTANT_WORDS):
            return True
        return len(message.content) > _SUBSTANTIVE_LENGTH
