"""Tutoring response pipeline.

``ResponseOrchestrator.generate_response`` takes a conversation context
and the child's new message and returns a :class:`TutorResponse`:

1. read recent history from the store (or the caller's context)
2. compose the personalized system prompt
3. score complexity and pick a model tier
4. prune history to the context budget
5. call the provider through the circuit breaker and retry policy
6. record token usage for the session
7. run the content filter, then the sanitizer
8. append the delivered reply to the store

Safety vetoes come back as ordinary responses with a fallback message.
Only provider failures raise (``tutor.errors.PipelineError``).
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any

from tutor.config import TutorSettings
from tutor.errors import InvalidUpstreamResponseError
from tutor.llm.client import CompletionBackend, CompletionClient, CompletionRequest
from tutor.llm.optimizer import (
    ComplexityAnalyzer,
    ConversationPruner,
    ModelSelector,
    ModelType,
    TokenEstimator,
)
from tutor.llm.prompts import PromptComposer, PromptPersonalization
from tutor.llm.resilience import CircuitBreaker, RetryPolicy
from tutor.llm.usage_tracker import SessionUsageTracker
from tutor.models.conversation import (
    ConversationContext,
    ConversationMessage,
    MessageRole,
    ResponseOutcome,
    TokenUsage,
    TutorResponse,
)
from tutor.moderation.content_filter import ContentFilter
from tutor.moderation.sanitizer import ResponseSanitizer, SafetyCheckConfig
from tutor.pipeline.store import ConversationStore
from tutor.policy.age_policy import get_policy

logger = logging.getLogger(__name__)

FALLBACK_MODEL = "fallback"


def user_tag(session_id: str) -> str:
    """Opaque per-session tag for the provider; never the raw session id."""
    return hashlib.sha256(session_id.encode()).hexdigest()[:16]


def parse_completion(raw: Any) -> tuple[str, TokenUsage, str]:
    """Extract reply text, usage and model from a provider response.

    Raises ``InvalidUpstreamResponseError`` when ``choices`` is missing or
    empty, or the first choice has no text content.
    """
    if not isinstance(raw, dict):
        raise InvalidUpstreamResponseError("Invalid response from completion provider")
    choices = raw.get("choices")
    if not isinstance(choices, list) or not choices:
        raise InvalidUpstreamResponseError("Invalid response from completion provider: no choices")
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str) or not content:
        raise InvalidUpstreamResponseError(
            "Invalid response from completion provider: empty message content"
        )

    usage = raw.get("usage") or {}
    prompt_tokens = int(usage.get("prompt_tokens") or 0)
    completion_tokens = int(usage.get("completion_tokens") or 0)
    total_tokens = int(usage.get("total_tokens") or prompt_tokens + completion_tokens)
    return (
        content,
        TokenUsage(prompt_tokens, completion_tokens, total_tokens),
        str(raw.get("model") or ""),
    )


class ResponseOrchestrator:
    """Top-level pipeline. One instance per service process.

    The breaker and usage tracker held here are shared by every request
    the instance serves.

    Parameters
    ----------
    client : CompletionBackend
        Provider client; anything with ``async complete(request) -> dict``.
    settings : TutorSettings | None
        Defaults to ``TutorSettings()``.
    store : ConversationStore | None
        Optional history store. Without one, only ``context.history`` is used.
    """

    def __init__(
        self,
        client: CompletionBackend,
        settings: TutorSettings | None = None,
        *,
        store: ConversationStore | None = None,
        content_filter: ContentFilter | None = None,
        sanitizer: ResponseSanitizer | None = None,
        breaker: CircuitBreaker | None = None,
        retry: RetryPolicy | None = None,
        usage_tracker: SessionUsageTracker | None = None,
        composer: PromptComposer | None = None,
        estimator: TokenEstimator | None = None,
    ) -> None:
        self.settings = settings or TutorSettings()
        res = self.settings.resilience

        self.client = client
        self.store = store
        self.content_filter = content_filter or ContentFilter()
        self.sanitizer = sanitizer or ResponseSanitizer(self.content_filter.lexicon)
        self.breaker = breaker or CircuitBreaker(
            failure_threshold=res.failure_threshold, open_duration=res.open_duration_seconds
        )
        self.retry = retry or RetryPolicy(
            max_retries=res.max_retries, backoff_cap=res.backoff_cap_seconds
        )
        self.usage_tracker = usage_tracker or SessionUsageTracker()
        self.composer = composer or PromptComposer()
        self.estimator = estimator or TokenEstimator()
        self.analyzer = ComplexityAnalyzer()
        self.selector = ModelSelector()
        self.pruner = ConversationPruner(self.estimator)

    @classmethod
    def from_settings(
        cls, settings: TutorSettings, store: ConversationStore | None = None
    ) -> ResponseOrchestrator:
        client = CompletionClient(
            api_key=settings.llm.api_key or None, timeout=settings.llm.timeout_seconds
        )
        return cls(client, settings, store=store)

    # -- public API ----------------------------------------------------------

    async def generate_response(
        self, context: ConversationContext, user_message: str
    ) -> TutorResponse:
        """Produce a safe reply to *user_message*.

        Raises ``CircuitOpenError`` without calling the provider when the
        breaker is open, and the provider's last ``PipelineError`` when
        retries are exhausted.
        """
        history = self._load_history(context)
        user_msg = ConversationMessage(
            role=MessageRole.USER,
            content=user_message,
            token_count=self.estimator.count(user_message),
        )
        self._store_message(context.session_id, user_msg)

        prompt = self.composer.compose(PromptPersonalization.from_context(context))
        model = self.select_model(context, [*history, user_msg])

        budget = max(
            0,
            self.settings.context.max_context_tokens
            - self.estimator.count(prompt.system_prompt)
            - (user_msg.token_count or 0)
            - prompt.max_tokens,
        )
        pruned = self.pruner.prune(
            [m for m in history if m.role is not MessageRole.SYSTEM], budget, context.age_group
        )

        request = CompletionRequest(
            model=model.value,
            messages=[
                {"role": MessageRole.SYSTEM.value, "content": prompt.system_prompt},
                *(m.to_provider() for m in pruned),
                user_msg.to_provider(),
            ],
            max_tokens=prompt.max_tokens,
            temperature=prompt.temperature,
            user=user_tag(context.session_id),
        )

        async def attempt() -> tuple[str, TokenUsage, str]:
            raw = await self.retry.run(lambda: self.client.complete(request))
            return parse_completion(raw)

        content, usage, response_model = await self.breaker.guard(attempt)

        self.usage_tracker.track(
            context.session_id, usage.prompt_tokens, usage.completion_tokens, model
        )
        response = self._screen(context, content, usage, response_model or model.value)
        self._store_message(
            context.session_id,
            ConversationMessage(
                role=MessageRole.ASSISTANT,
                content=response.content,
                token_count=usage.completion_tokens or None,
            ),
        )
        return response

    def fallback_response(self, context: ConversationContext) -> TutorResponse:
        """Canned reply for when the provider is unavailable."""
        return TutorResponse(
            content=get_policy(context.age_group).unavailable_fallback,
            token_usage=TokenUsage(),
            model=FALLBACK_MODEL,
            filtered=False,
            age_appropriate=True,
            outcome=ResponseOutcome.FALLBACK,
        )

    def health_status(self) -> dict[str, Any]:
        is_open = self.breaker.is_open()
        return {
            "available": not is_open,
            "circuit_breaker_open": is_open,
            "failure_count": self.breaker.failure_count,
        }

    def cleanup_usage(self) -> int:
        """Evict usage stats for sessions idle past the configured retention."""
        return self.usage_tracker.cleanup(self.settings.context.session_retention_hours)

    def select_model(
        self, context: ConversationContext, messages: list[ConversationMessage]
    ) -> ModelType:
        pinned = self.settings.llm.pinned_model
        if pinned is not None:
            return pinned
        complexity = self.analyzer.analyze(messages, context.subject, context.age_group)
        model = self.selector.recommend(complexity, self.settings.llm.prioritize_cost)
        logger.debug(
            "Complexity %s (%.1f) -> %s", complexity.level.value, complexity.score, model.value
        )
        return model

    # -- stages --------------------------------------------------------------

    def _screen(
        self,
        context: ConversationContext,
        content: str,
        usage: TokenUsage,
        model: str,
    ) -> TutorResponse:
        age_group = context.age_group
        filtered = self.content_filter.filter(
            content, age_group, {"subject": context.subject, "topic": context.topic}
        )

        if filtered.violations:
            logger.warning(
                "Content violations detected for %s: count=%d confidence=%.2f appropriate=%s",
                age_group.value,
                len(filtered.violations),
                filtered.confidence,
                filtered.is_appropriate,
            )

        if not filtered.is_appropriate:
            logger.warning(
                "Inappropriate content blocked for %s: %s",
                age_group.value,
                ", ".join(f"{v.kind.value}/{v.severity.value}" for v in filtered.violations),
            )
            return TutorResponse(
                content=get_policy(age_group).content_fallback,
                token_usage=usage,
                model=model,
                filtered=True,
                age_appropriate=False,
                outcome=ResponseOutcome.CONTENT_BLOCKED,
                warnings=list(filtered.warnings),
                confidence=filtered.confidence,
            )

        sanitized = self.sanitizer.sanitize(
            filtered.filtered_content, SafetyCheckConfig.for_age(age_group)
        )
        if sanitized.modifications:
            logger.info(
                "Response sanitization applied for %s: modifications=%d score=%.2f blocked=%s",
                age_group.value,
                len(sanitized.modifications),
                sanitized.safety_score,
                sanitized.blocked,
            )

        warnings = [*filtered.warnings, *sanitized.warnings]
        if sanitized.blocked:
            logger.warning("Sanitizer blocked response for %s", age_group.value)
            return TutorResponse(
                content=sanitized.sanitized_content,
                token_usage=usage,
                model=model,
                filtered=True,
                age_appropriate=False,
                outcome=ResponseOutcome.SANITIZATION_BLOCKED,
                warnings=warnings,
                confidence=filtered.confidence,
                safety_score=sanitized.safety_score,
            )

        return TutorResponse(
            content=sanitized.sanitized_content,
            token_usage=usage,
            model=model,
            filtered=bool(filtered.violations or sanitized.modifications),
            age_appropriate=True,
            outcome=ResponseOutcome.DELIVERED,
            warnings=warnings,
            confidence=filtered.confidence,
            safety_score=sanitized.safety_score,
        )

    # -- store ---------------------------------------------------------------

    def _load_history(self, context: ConversationContext) -> list[ConversationMessage]:
        if self.store is None:
            return list(context.history)
        try:
            return list(
                self.store.get_recent_history(
                    context.session_id, self.settings.context.history_limit
                )
            )
        except Exception:
            logger.warning(
                "Conversation store read failed for session %s; using in-memory context",
                context.session_id,
                exc_info=True,
            )
            return list(context.history)

    def _store_message(self, session_id: str, message: ConversationMessage) -> None:
        if self.store is None:
            return
        try:
            self.store.append_message(session_id, message)
        except Exception:
            logger.warning(
                "Conversation store write failed for session %s", session_id, exc_info=True
            )
