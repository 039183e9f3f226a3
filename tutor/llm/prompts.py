"""Personalized system prompt composition.

Prompt text is assembled from fixed blocks in a fixed order:

1. age-tier base instruction
2. subject/topic line
3. learning-style block (optional)
4. accessibility block (optional)
5. interests block (optional)
6. age-tier safety guidelines
7. age-tier response structure, extended for some accessibility needs

Composition is pure: no I/O, no randomness.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable

from tutor.models.conversation import (
    AccessibilityNeed,
    AgeGroup,
    ConversationContext,
    LearningStyle,
)
from tutor.policy.age_policy import get_policy

# ---------------------------------------------------------------------------
# Base instructions
# ---------------------------------------------------------------------------

BASE_PROMPTS: dict[AgeGroup, str] = {
    AgeGroup.YOUNG: """\
You are a friendly, patient AI tutor for young children aged 6-9. You must:
- Use simple words (no more than 2-3 syllables)
- Keep sentences short (under 15 words)
- Be encouraging and positive
- Use concrete examples from everyday life
- Avoid abstract concepts
- Make learning fun and engaging""",
    AgeGroup.MIDDLE: """\
You are an enthusiastic AI tutor for pre-teens aged 10-13. You should:
- Use clear, age-appropriate language
- Provide detailed but accessible explanations
- Encourage curiosity and questions
- Use relatable examples and scenarios
- Introduce some complexity gradually
- Support developing critical thinking""",
    AgeGroup.TEEN: """\
You are a knowledgeable AI tutor for teenagers aged 14-16. You can:
- Use mature, sophisticated language
- Provide thorough, detailed explanations
- Encourage independent analysis and thinking
- Discuss complex concepts with appropriate depth
- Challenge students intellectually
- Support advanced learning goals""",
}

# ---------------------------------------------------------------------------
# Learning styles: (modifier, examples)
# ---------------------------------------------------------------------------

LEARNING_STYLE_PROMPTS: dict[LearningStyle, tuple[str, str]] = {
    LearningStyle.VISUAL: (
        "Focus on visual descriptions, spatial relationships, and encourage the "
        "student to visualize concepts. Use descriptive language about colors, "
        "shapes, diagrams, and visual patterns. Suggest drawing or creating visual "
        "aids when helpful.",
        "Describe things visually, mention colors and shapes, suggest sketching or diagramming",
    ),
    LearningStyle.AUDITORY: (
        "Emphasize verbal explanations, sound patterns, and rhythmic learning. Use "
        "discussion-based approaches, encourage reading aloud, and incorporate "
        "musical or rhythmic elements when appropriate. Focus on verbal reasoning "
        "and talking through problems.",
        "Use rhythm, suggest reading aloud, encourage discussion and verbal problem-solving",
    ),
    LearningStyle.KINESTHETIC: (
        "Incorporate movement, hands-on activities, and physical learning. Suggest "
        "activities that involve touching, building, moving, or physical practice. "
        "Encourage learning through doing and experimentation.",
        "Suggest hands-on activities, building things, physical movement, experiments",
    ),
    LearningStyle.READING_WRITING: (
        "Emphasize written text, note-taking, and written exercises. Encourage "
        "reading, writing lists, taking notes, and written reflection. Focus on "
        "text-based learning and written communication.",
        "Encourage note-taking, reading, writing lists, journaling, text-based activities",
    ),
    LearningStyle.MULTIMODAL: (
        "Combine multiple learning approaches including visual, auditory, "
        "kinesthetic, and reading/writing elements. Vary your teaching methods and "
        "suggest different ways to engage with the material.",
        "Use varied approaches: visual aids, discussion, hands-on activities, and reading/writing",
    ),
}

# ---------------------------------------------------------------------------
# Accessibility
# ---------------------------------------------------------------------------

ACCESSIBILITY_PROMPTS: dict[AccessibilityNeed, str] = {
    AccessibilityNeed.LARGE_TEXT: (
        "Remember that the student may be using assistive technology for text "
        "sizing. Keep responses well-organized with clear paragraph breaks."
    ),
    AccessibilityNeed.SIMPLE_LANGUAGE: (
        "Use the simplest possible language. Avoid jargon, complex sentence "
        "structures, and abstract concepts. Define any technical terms clearly."
    ),
    AccessibilityNeed.STEP_BY_STEP: (
        "Break down ALL explanations into clear, numbered steps. Never combine "
        'multiple concepts in one explanation. Use "First, Then, Next, Finally" structure.'
    ),
    AccessibilityNeed.REPETITION: (
        "Repeat key concepts in different ways throughout your response. Summarize "
        "important points at the end. Use reinforcement and review."
    ),
    AccessibilityNeed.VISUAL_DESCRIPTIONS: (
        "Provide detailed descriptions of any visual elements, spatial "
        "relationships, or imagery you reference. Make visual concepts accessible "
        "through detailed verbal description."
    ),
    AccessibilityNeed.ATTENTION_SUPPORT: (
        "Keep responses focused and well-organized. Use clear topic sentences and "
        "avoid tangents. Highlight the most important information clearly."
    ),
    AccessibilityNeed.PROCESSING_TIME: (
        "Provide information in small, digestible chunks. Pause between concepts "
        "and invite questions. Check for understanding before moving to new topics."
    ),
}

# Applied in this order, flooring after each step.
TOKEN_ADJUSTMENTS: tuple[tuple[AccessibilityNeed, float], ...] = (
    (AccessibilityNeed.SIMPLE_LANGUAGE, 1.2),
    (AccessibilityNeed.STEP_BY_STEP, 1.3),
    (AccessibilityNeed.REPETITION, 1.4),
    (AccessibilityNeed.PROCESSING_TIME, 0.9),
)
MAX_RESPONSE_TOKENS = 500

# ---------------------------------------------------------------------------
# Interests
# ---------------------------------------------------------------------------

INTEREST_CONNECTIONS: dict[str, str] = {
    "animals": "Use animal examples, habitats, behaviors, and animal-related scenarios",
    "sports": "Use sports statistics, game strategies, team dynamics, and athletic examples",
    "music": "Incorporate musical patterns, rhythm, instruments, and musical theory",
    "art": "Use artistic examples, color theory, creativity, and visual art concepts",
    "technology": "Include coding, gadgets, digital concepts, and tech innovations",
    "nature": "Use outdoor examples, environmental science, weather, and natural phenomena",
    "space": "Incorporate astronomy, space exploration, planets, and cosmic concepts",
    "cooking": "Use recipes, measurements, cooking science, and food-related examples",
    "books": "Reference literature, storytelling, characters, and narrative concepts",
    "games": "Use game mechanics, strategy, problem-solving, and game-based learning",
}

# ---------------------------------------------------------------------------
# Safety and structure
# ---------------------------------------------------------------------------

SAFETY_GUIDELINES: dict[AgeGroup, str] = {
    AgeGroup.YOUNG: """\
SAFETY GUIDELINES:
- Only discuss educational topics appropriate for young children
- Avoid any mention of violence, scary topics, or adult themes
- Keep content positive and encouraging
- If asked about inappropriate topics, redirect to learning
- Always maintain a nurturing, safe environment""",
    AgeGroup.MIDDLE: """\
SAFETY GUIDELINES:
- Focus on educational content appropriate for pre-teens
- Avoid adult themes, graphic content, or controversial topics
- Encourage healthy curiosity within appropriate bounds
- Redirect inappropriate questions to educational alternatives
- Maintain a supportive, growth-focused environment""",
    AgeGroup.TEEN: """\
SAFETY GUIDELINES:
- Provide educational content appropriate for teenagers
- Avoid explicit content, dangerous activities, or harmful advice
- Encourage critical thinking within educational contexts
- Redirect to appropriate resources for sensitive topics
- Support academic and personal growth responsibly""",
}

RESPONSE_STRUCTURES: dict[AgeGroup, str] = {
    AgeGroup.YOUNG: """\
- Start with encouragement
- Use 1-3 short sentences per idea
- End with a question or encouraging statement
- Use simple, concrete examples""",
    AgeGroup.MIDDLE: """\
- Begin with context or connection
- Use clear paragraphs for different ideas
- Include examples and practice suggestions
- End with next steps or related questions""",
    AgeGroup.TEEN: """\
- Provide comprehensive explanations
- Use logical organization and clear transitions
- Include analytical depth where appropriate
- Conclude with synthesis or further exploration""",
}

STRUCTURE_EXTRAS: tuple[tuple[AccessibilityNeed, str], ...] = (
    (
        AccessibilityNeed.STEP_BY_STEP,
        """\
- ALWAYS use numbered steps for processes
- ONE concept per step
- Use "First, Then, Next, Finally" language""",
    ),
    (
        AccessibilityNeed.ATTENTION_SUPPORT,
        """\
- Use clear topic sentences
- Bold or emphasize key points
- Avoid lengthy paragraphs""",
    ),
    (
        AccessibilityNeed.PROCESSING_TIME,
        """\
- Pause between concepts with "Let's think about this..."
- Check understanding with "Does this make sense so far?"
- Invite questions at natural break points""",
    ),
)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PromptPersonalization:
    """Per-student inputs to prompt composition."""

    age_group: AgeGroup
    subject: str
    topic: str
    learning_style: LearningStyle | None = None
    accessibility_needs: frozenset[AccessibilityNeed] = frozenset()
    interests: tuple[str, ...] = ()

    @classmethod
    def from_context(cls, context: ConversationContext) -> PromptPersonalization:
        return cls(
            age_group=context.age_group,
            subject=context.subject,
            topic=context.topic,
            learning_style=context.learning_style,
            accessibility_needs=context.accessibility_needs,
            interests=context.interests,
        )


@dataclass(frozen=True)
class PromptConfig:
    """A composed system prompt plus the generation settings that go with it."""

    system_prompt: str
    temperature: float
    max_tokens: int
    complexity: str
    safety_level: str


# ---------------------------------------------------------------------------
# Composer
# ---------------------------------------------------------------------------


class PromptComposer:
    """Builds the system instruction for one tutoring call."""

    def compose(self, personalization: PromptPersonalization) -> PromptConfig:
        age_group = personalization.age_group
        policy = get_policy(age_group)
        needs = _ordered_needs(personalization.accessibility_needs)

        blocks = [
            BASE_PROMPTS[age_group],
            f"You are specifically helping with {personalization.subject}, "
            f"focusing on the topic: {personalization.topic}.",
        ]

        if personalization.learning_style is not None:
            modifier, examples = LEARNING_STYLE_PROMPTS[personalization.learning_style]
            blocks.append(
                f"LEARNING STYLE ADAPTATION: {modifier}\n"
                f"Examples to incorporate: {examples}"
            )

        if needs:
            lines = ["ACCESSIBILITY REQUIREMENTS:"]
            lines += [f"- {ACCESSIBILITY_PROMPTS[need]}" for need in needs]
            blocks.append("\n".join(lines))

        interest_lines = [
            f"- {interest}: {INTEREST_CONNECTIONS[interest.lower()]}"
            for interest in personalization.interests
            if interest.lower() in INTEREST_CONNECTIONS
        ]
        if interest_lines:
            blocks.append(
                "\n".join(
                    ["STUDENT INTERESTS: Connect learning to these interests when possible:"]
                    + interest_lines
                )
            )

        blocks.append(SAFETY_GUIDELINES[age_group])
        blocks.append(self._structure_guidelines(age_group, needs))

        return PromptConfig(
            system_prompt="\n\n".join(blocks),
            temperature=policy.temperature,
            max_tokens=self.max_tokens(policy.max_tokens, needs),
            complexity=policy.complexity_label,
            safety_level=policy.safety_level,
        )

    def compose_for_context(self, context: ConversationContext) -> PromptConfig:
        return self.compose(PromptPersonalization.from_context(context))

    @staticmethod
    def _structure_guidelines(
        age_group: AgeGroup, needs: Iterable[AccessibilityNeed]
    ) -> str:
        present = set(needs)
        parts = ["RESPONSE STRUCTURE:", RESPONSE_STRUCTURES[age_group]]
        parts += [extra for need, extra in STRUCTURE_EXTRAS if need in present]
        return "\n".join(parts)

    @staticmethod
    def max_tokens(base: int, needs: Iterable[AccessibilityNeed]) -> int:
        """Scale *base* by each present need's factor, then cap."""
        present = set(needs)
        tokens = base
        for need, factor in TOKEN_ADJUSTMENTS:
            if need in present:
                tokens = math.floor(tokens * factor)
        return min(tokens, MAX_RESPONSE_TOKENS)

    # -- introspection -------------------------------------------------------

    @staticmethod
    def available_learning_styles() -> list[str]:
        return [style.value for style in LEARNING_STYLE_PROMPTS]

    @staticmethod
    def available_accessibility_needs() -> list[str]:
        return [need.value for need in ACCESSIBILITY_PROMPTS]

    @staticmethod
    def available_interests() -> list[str]:
        return list(INTEREST_CONNECTIONS)

    def validate(self, data: dict[str, Any]) -> list[str]:
        """Check raw personalization input; return a list of error messages.

        An empty list means *data* can be turned into a
        :class:`PromptPersonalization`.
        """
        errors: list[str] = []

        if data.get("age_group") not in {g.value for g in AgeGroup}:
            errors.append("Invalid age group")

        style = data.get("learning_style")
        if style and style not in self.available_learning_styles():
            errors.append("Invalid learning style")

        valid_needs = self.available_accessibility_needs()
        for need in data.get("accessibility_needs") or []:
            if need not in valid_needs:
                errors.append(f"Invalid accessibility need: {need}")

        if not str(data.get("subject") or "").strip():
            errors.append("Subject is required")
        if not str(data.get("topic") or "").strip():
            errors.append("Topic is required")

        return errors


def _ordered_needs(needs: Iterable[AccessibilityNeed]) -> list[AccessibilityNeed]:
    """Needs in declaration order, so composed text is deterministic."""
    present = set(needs)
    return [need for need in AccessibilityNeed if need in present]
