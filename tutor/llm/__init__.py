"""Tutor LLM integration module.

Provides the Anthropic-backed completion client, the resilience layer
around it, token/cost optimization, usage tracking, and prompt
composition.
"""

from tutor.llm.client import CompletionClient, CompletionRequest
from tutor.llm.optimizer import (
    ComplexityAnalyzer,
    ComplexityLevel,
    ConversationComplexity,
    ConversationPruner,
    ModelSelector,
    ModelType,
    TokenEstimator,
    calculate_cost,
)
from tutor.llm.prompts import PromptComposer, PromptConfig, PromptPersonalization
from tutor.llm.resilience import CircuitBreaker, RetryPolicy
from tutor.llm.usage_tracker import SessionTokenStats, SessionUsageTracker

__all__ = [
    "CircuitBreaker",
    "ComplexityAnalyzer",
    "ComplexityLevel",
    "CompletionClient",
    "CompletionRequest",
    "ConversationComplexity",
    "ConversationPruner",
    "ModelSelector",
    "ModelType",
    "PromptComposer",
    "PromptConfig",
    "PromptPersonalization",
    "RetryPolicy",
    "SessionTokenStats",
    "SessionUsageTracker",
    "TokenEstimator",
    "calculate_cost",
]
