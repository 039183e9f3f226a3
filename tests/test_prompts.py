"""Tests for personalized prompt composition."""

from tutor.llm.prompts import BASE_PROMPTS, PromptComposer, PromptPersonalization
from tutor.models.conversation import (
    AccessibilityNeed,
    AgeGroup,
    ConversationContext,
    LearningStyle,
)


def personalization(age_group=AgeGroup.YOUNG, **kwargs):
    return PromptPersonalization(age_group=age_group, subject="math", topic="fractions", **kwargs)


def test_base_prompt_and_settings_for_young():
    config = PromptComposer().compose(personalization())

    assert config.system_prompt.startswith(BASE_PROMPTS[AgeGroup.YOUNG])
    assert "You are specifically helping with math, focusing on the topic: fractions." in (
        config.system_prompt
    )
    assert "SAFETY GUIDELINES:" in config.system_prompt
    assert "RESPONSE STRUCTURE:" in config.system_prompt
    assert config.temperature == 0.8
    assert config.max_tokens == 150
    assert config.complexity == "simple"
    assert config.safety_level == "high"


def test_teen_settings():
    config = PromptComposer().compose(personalization(AgeGroup.TEEN))
    assert (config.temperature, config.max_tokens) == (0.6, 300)
    assert (config.complexity, config.safety_level) == ("advanced", "standard")


def test_blocks_appear_in_fixed_order():
    config = PromptComposer().compose(
        personalization(
            AgeGroup.MIDDLE,
            learning_style=LearningStyle.VISUAL,
            accessibility_needs=frozenset({AccessibilityNeed.STEP_BY_STEP}),
            interests=("Animals", "skydiving"),
        )
    )
    prompt = config.system_prompt

    markers = [
        "You are specifically helping with",
        "LEARNING STYLE ADAPTATION:",
        "ACCESSIBILITY REQUIREMENTS:",
        "STUDENT INTERESTS:",
        "SAFETY GUIDELINES:",
        "RESPONSE STRUCTURE:",
    ]
    positions = [prompt.index(m) for m in markers]
    assert positions == sorted(positions)

    assert "- Animals: Use animal examples" in prompt
    assert "skydiving" not in prompt
    assert "ALWAYS use numbered steps for processes" in prompt


def test_optional_blocks_omitted():
    prompt = PromptComposer().compose(personalization(interests=("skydiving",))).system_prompt
    assert "LEARNING STYLE ADAPTATION" not in prompt
    assert "ACCESSIBILITY REQUIREMENTS" not in prompt
    assert "STUDENT INTERESTS" not in prompt


def test_structure_extras_for_attention_and_processing_time():
    prompt = PromptComposer().compose(
        personalization(
            accessibility_needs=frozenset(
                {AccessibilityNeed.ATTENTION_SUPPORT, AccessibilityNeed.PROCESSING_TIME}
            )
        )
    ).system_prompt
    assert "Bold or emphasize key points" in prompt
    assert 'Check understanding with "Does this make sense so far?"' in prompt


def test_token_adjustments_compound():
    all_four = {
        AccessibilityNeed.SIMPLE_LANGUAGE,
        AccessibilityNeed.STEP_BY_STEP,
        AccessibilityNeed.REPETITION,
        AccessibilityNeed.PROCESSING_TIME,
    }
    # 200 -> 240 -> 312 -> 436 -> 392
    assert PromptComposer.max_tokens(200, all_four) == 392
    assert PromptComposer.max_tokens(150, {AccessibilityNeed.PROCESSING_TIME}) == 135


def test_token_budget_capped():
    needs = frozenset(
        {
            AccessibilityNeed.SIMPLE_LANGUAGE,
            AccessibilityNeed.STEP_BY_STEP,
            AccessibilityNeed.REPETITION,
        }
    )
    config = PromptComposer().compose(personalization(AgeGroup.TEEN, accessibility_needs=needs))
    assert config.max_tokens == 500


def test_composition_is_deterministic():
    p = personalization(
        accessibility_needs=frozenset(AccessibilityNeed), learning_style=LearningStyle.AUDITORY
    )
    assert PromptComposer().compose(p) == PromptComposer().compose(p)


def test_compose_for_context():
    context = ConversationContext(
        child_id="c1",
        age_group=AgeGroup.MIDDLE,
        subject="science",
        topic="volcanoes",
        session_id="s1",
        interests=("space",),
    )
    prompt = PromptComposer().compose_for_context(context).system_prompt
    assert "science, focusing on the topic: volcanoes" in prompt
    assert "- space: Incorporate astronomy" in prompt


def test_validate_reports_every_problem():
    errors = PromptComposer().validate(
        {
            "age_group": "ages6to9",
            "subject": "  ",
            "topic": "fractions",
            "learning_style": "telepathic",
            "accessibility_needs": ["large-text", "x-ray"],
        }
    )
    assert errors == [
        "Invalid learning style",
        "Invalid accessibility need: x-ray",
        "Subject is required",
    ]


def test_validate_accepts_good_input():
    assert PromptComposer().validate(
        {"age_group": "ages14to16", "subject": "history", "topic": "Rome"}
    ) == []
    assert "Invalid age group" in PromptComposer().validate(
        {"age_group": "adults", "subject": "history", "topic": "Rome"}
    )


def test_available_options():
    composer = PromptComposer()
    assert len(composer.available_learning_styles()) == 5
    assert "step-by-step" in composer.available_accessibility_needs()
    assert len(composer.available_accessibility_needs()) == 7
    assert len(composer.available_interests()) == 10
