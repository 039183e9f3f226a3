"""Tests for lexicon loading."""

import os
import tempfile

import pytest

from tutor.errors import ConfigError
from tutor.models.conversation import AgeGroup
from tutor.moderation.lexicon import DEFAULT_LEXICON_PATH, default_lexicon, load_lexicon
from tutor.moderation.models import Severity


def write_lexicon(tmpdir, content):
    path = os.path.join(tmpdir, "lexicon.yaml")
    with open(path, "w") as f:
        f.write(content)
    return path


def test_default_lexicon_loads():
    lexicon = default_lexicon()
    assert lexicon.profanity.patterns
    assert lexicon.personal_info
    assert set(lexicon.sanitizer.disclaimers) >= {"medical_advice", "legal_advice"}
    assert default_lexicon() is lexicon


def test_tiered_severity_lookup():
    violence = default_lexicon().violence
    assert violence.severity_for("Knife", AgeGroup.YOUNG) is Severity.CRITICAL
    assert violence.severity_for("war", AgeGroup.TEEN) is Severity.MEDIUM
    assert violence.severity_for("destroy", AgeGroup.YOUNG) is Severity.LOW


def test_profanity_replacement_normalizes_whitespace():
    profanity = default_lexicon().profanity
    assert profanity.replacement_for("Shut  up") == "please be quiet"
    assert profanity.replacement_for("lame") == "[inappropriate word]"


def test_custom_lexicon_file():
    content = DEFAULT_LEXICON_PATH.read_text().replace("stupid: silly", "stupid: goofy")
    with tempfile.TemporaryDirectory() as tmpdir:
        lexicon = load_lexicon(write_lexicon(tmpdir, content))
    assert lexicon.profanity.replacement_for("stupid") == "goofy"


@pytest.mark.parametrize(
    "content",
    [
        "profanity: {}\n",
        "profanity: [unclosed\n",
        "just a string\n",
    ],
)
def test_malformed_lexicon_rejected(content):
    with tempfile.TemporaryDirectory() as tmpdir:
        path = write_lexicon(tmpdir, content)
        with pytest.raises(ConfigError):
            load_lexicon(path)


def test_bad_pattern_rejected():
    content = DEFAULT_LEXICON_PATH.read_text().replace(
        "'\\b(?:hate|sucks|stupid|lame|boring)\\b'", "'(unbalanced'"
    )
    with tempfile.TemporaryDirectory() as tmpdir:
        path = write_lexicon(tmpdir, content)
        with pytest.raises(ConfigError, match="Invalid lexicon pattern"):
            load_lexicon(path)


def test_missing_lexicon_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(ConfigError, match="Cannot read lexicon"):
            load_lexicon(os.path.join(tmpdir, "absent.yaml"))
