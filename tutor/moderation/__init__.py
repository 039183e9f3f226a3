"""Content safety for generated replies: the filter and the sanitizer."""

from tutor.moderation.content_filter import ContentFilter
from tutor.moderation.lexicon import Lexicon, default_lexicon, load_lexicon
from tutor.moderation.models import ContentViolation, FilterResult, Severity, ViolationKind
from tutor.moderation.sanitizer import (
    ParentalControls,
    ResponseSanitizer,
    SafetyCheckConfig,
    SanitizationResult,
)

__all__ = [
    "ContentFilter",
    "ContentViolation",
    "FilterResult",
    "Lexicon",
    "ParentalControls",
    "ResponseSanitizer",
    "SafetyCheckConfig",
    "SanitizationResult",
    "Severity",
    "ViolationKind",
    "default_lexicon",
    "load_lexicon",
]
