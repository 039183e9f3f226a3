"""Response orchestration and the conversation store boundary."""

from tutor.pipeline.orchestrator import ResponseOrchestrator, parse_completion
from tutor.pipeline.store import ConversationStore, InMemoryConversationStore

__all__ = [
    "ConversationStore",
    "InMemoryConversationStore",
    "ResponseOrchestrator",
    "parse_completion",
]
