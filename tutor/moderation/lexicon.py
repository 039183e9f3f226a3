"""Load the moderation lexicon from YAML.

The lexicon is static configuration: loaded once, compiled, cached.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

import yaml

from tutor.errors import ConfigError
from tutor.models.conversation import AgeGroup
from tutor.moderation.models import Severity

DEFAULT_LEXICON_PATH = Path(__file__).with_name("lexicon.yaml")


@dataclass(frozen=True)
class SeverityTier:
    """Words sharing one per-age severity row."""

    words: frozenset[str]
    severity: dict[AgeGroup, Severity]


@dataclass(frozen=True)
class TieredWordList:
    patterns: tuple[re.Pattern[str], ...]
    tiers: tuple[SeverityTier, ...]
    default_severity: Severity
    redaction: str

    def severity_for(self, word: str, age_group: AgeGroup) -> Severity:
        word = word.lower()
        for tier in self.tiers:
            if word in tier.words:
                return tier.severity[age_group]
        return self.default_severity


@dataclass(frozen=True)
class ProfanityList:
    patterns: tuple[re.Pattern[str], ...]
    severity: Severity
    replacements: dict[str, str]
    default_replacement: str

    def replacement_for(self, word: str) -> str:
        key = " ".join(word.lower().split())
        return self.replacements.get(key, self.default_replacement)


@dataclass(frozen=True)
class SanitizerLexicon:
    emergency_contacts: tuple[re.Pattern[str], ...]
    educational_context: re.Pattern[str]
    urls: tuple[re.Pattern[str], ...]
    harmful_instructions: tuple[re.Pattern[str], ...]
    medical_advice: tuple[re.Pattern[str], ...]
    legal_advice: tuple[re.Pattern[str], ...]
    placeholders: dict[str, str] = field(default_factory=dict)
    disclaimers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Lexicon:
    profanity: ProfanityList
    violence: TieredWordList
    adult: TieredWordList
    personal_info: tuple[re.Pattern[str], ...]
    personal_info_redaction: str
    emotions: dict[str, re.Pattern[str]]
    sanitizer: SanitizerLexicon


def _compile(patterns: list[str]) -> tuple[re.Pattern[str], ...]:
    try:
        return tuple(re.compile(p, re.IGNORECASE) for p in patterns)
    except re.error as exc:
        raise ConfigError(f"Invalid lexicon pattern: {exc}") from exc


def _tiered(data: dict) -> TieredWordList:
    tiers = []
    for row in data.get("tiers", []):
        severity = {
            group: Severity(row["severity"][group.value]) for group in AgeGroup
        }
        tiers.append(
            SeverityTier(words=frozenset(w.lower() for w in row["words"]), severity=severity)
        )
    return TieredWordList(
        patterns=_compile(data["patterns"]),
        tiers=tuple(tiers),
        default_severity=Severity(data.get("default_severity", "low")),
        redaction=data.get("redaction", "[removed]"),
    )


def load_lexicon(path: str | Path | None = None) -> Lexicon:
    """Load and compile a lexicon file.

    Raises ``ConfigError`` if the file is missing a section, names an
    unknown severity, or omits an age group from a severity row.
    """
    path = Path(path) if path else DEFAULT_LEXICON_PATH
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"Cannot read lexicon {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in lexicon {path}: {exc}") from exc

    try:
        profanity = data["profanity"]
        personal = data["personal_info"]
        san = data["sanitizer"]
        return Lexicon(
            profanity=ProfanityList(
                patterns=_compile(profanity["patterns"]),
                severity=Severity(profanity.get("severity", "medium")),
                replacements={k.lower(): v for k, v in profanity.get("replacements", {}).items()},
                default_replacement=profanity.get("default_replacement", "[inappropriate word]"),
            ),
            violence=_tiered(data["violence"]),
            adult=_tiered(data["adult"]),
            personal_info=_compile(personal["patterns"]),
            personal_info_redaction=personal.get(
                "redaction", "[personal information removed]"
            ),
            emotions={
                name: re.compile(pattern, re.IGNORECASE)
                for name, pattern in data["emotions"].items()
            },
            sanitizer=SanitizerLexicon(
                emergency_contacts=_compile(san["emergency_contacts"]),
                educational_context=re.compile(san["educational_context"], re.IGNORECASE),
                urls=_compile(san["urls"]),
                harmful_instructions=_compile(san["harmful_instructions"]),
                medical_advice=_compile(san["medical_advice"]),
                legal_advice=_compile(san["legal_advice"]),
                placeholders=dict(san.get("placeholders", {})),
                disclaimers=dict(san.get("disclaimers", {})),
            ),
        )
    except (KeyError, ValueError, TypeError, re.error) as exc:
        raise ConfigError(f"Malformed lexicon {path}: {exc}") from exc


@lru_cache(maxsize=1)
def default_lexicon() -> Lexicon:
    return load_lexicon()
