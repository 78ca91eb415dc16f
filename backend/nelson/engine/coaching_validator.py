"""Weekly coaching output validation: pure functions.

Every model response must pass these checks before it is stored as a
``generated`` summary. The error list is fed back to the model on retry.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from nelson.models.coaching import FocusType, PatternType

MAX_TENSION_SENTENCES = 4
MAX_WHY_SENTENCES = 4
MAX_FOCUS_CHARS = 280

REQUIRED_TEXT_FIELDS = ("pattern", "tension", "whyThisMatters")

# Hedge and system language, banned in every section
BANNED_TONE_PHRASES = (
    "suggests",
    "may indicate",
    "might indicate",
    "appears to",
    "could be",
    "seems to",
    "the system",
    "your system",
    "the data",
    "this reflects",
    "this signals",
)

PATTERN_BANS: dict[PatternType, tuple[str, ...]] = {
    PatternType.MOMENTUM_PLATEAU: (
        "stuck",
        "stagnation",
        "stagnant",
        "lacking progress",
        "not improving",
        "hitting a wall",
    ),
    PatternType.GAP_DISRUPTION: (
        "discipline",
        "motivation",
        "priority",
        "priorities",
        "dedication",
        "commitment issue",
    ),
    PatternType.EFFORT_INCONSISTENT: (
        "not trying",
        "half-hearted",
        "lack of effort",
    ),
}

_FENCE_START = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_END = re.compile(r"```\s*$")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")


@dataclass
class ValidationError:
    rule: str
    message: str
    field: Optional[str] = None


@dataclass
class ValidationResult:
    valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    coaching: Optional[dict[str, Any]] = None


def count_sentences(text: str) -> int:
    return sum(1 for s in _SENTENCE_SPLIT.split(text) if s.strip())


def parse_coaching_output(raw_output: str) -> dict[str, Any]:
    """Parse the model's JSON, tolerating a surrounding ```json fence."""
    cleaned = _FENCE_END.sub("", _FENCE_START.sub("", raw_output.strip())).strip()
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError("Coaching output must be a JSON object")
    return data


def _check_structure(coaching: dict) -> list[ValidationError]:
    errors = []
    for name in REQUIRED_TEXT_FIELDS:
        value = coaching.get(name)
        if not isinstance(value, str) or not value.strip():
            errors.append(ValidationError("required_field", f"{name} must be a non-empty string", name))

    progression = coaching.get("progression")
    if not isinstance(progression, dict):
        errors.append(ValidationError("required_field", "progression object is required", "progression"))
        return errors
    text = progression.get("text")
    if not isinstance(text, str) or not text.strip():
        errors.append(ValidationError("empty_focus", "progression.text cannot be empty", "progression"))
    elif len(text) > MAX_FOCUS_CHARS:
        errors.append(ValidationError(
            "focus_length", f"progression.text exceeds {MAX_FOCUS_CHARS} characters", "progression",
        ))
    valid_types = [t.value for t in FocusType]
    if progression.get("type") not in valid_types:
        errors.append(ValidationError(
            "invalid_focus_type", f"progression.type must be one of: {', '.join(valid_types)}", "progression",
        ))
    return errors


def _check_lengths(coaching: dict) -> list[ValidationError]:
    errors = []
    tension = count_sentences(coaching["tension"])
    if tension > MAX_TENSION_SENTENCES:
        errors.append(ValidationError(
            "tension_length",
            f"tension has {tension} sentences. Max {MAX_TENSION_SENTENCES}.",
            "tension",
        ))
    why = count_sentences(coaching["whyThisMatters"])
    if why > MAX_WHY_SENTENCES:
        errors.append(ValidationError(
            "why_this_matters_length",
            f"whyThisMatters has {why} sentences. Max {MAX_WHY_SENTENCES}.",
            "whyThisMatters",
        ))
    return errors


def _all_text(coaching: dict) -> str:
    parts = [coaching[name] for name in REQUIRED_TEXT_FIELDS]
    parts.append(coaching["progression"]["text"])
    return " ".join(parts).lower()


def _check_language(coaching: dict, pattern: PatternType) -> list[ValidationError]:
    errors = []
    text = _all_text(coaching)
    banned = [p for p in PATTERN_BANS.get(pattern, ()) if p in text]
    if banned:
        errors.append(ValidationError(
            "pattern_banned_phrase", f"Banned for {pattern.value}: {', '.join(banned)}",
        ))
    hedges = [p for p in BANNED_TONE_PHRASES if p in text]
    if hedges:
        errors.append(ValidationError("banned_tone", f"Contains hedge/system language: {', '.join(hedges)}"))
    return errors


def validate_weekly_coaching(
    raw_output: str,
    pattern: PatternType,
    allowed_focus_types: Optional[list[str]] = None,
) -> ValidationResult:
    try:
        coaching = parse_coaching_output(raw_output)
    except ValueError as exc:
        # json.JSONDecodeError is a ValueError
        return ValidationResult(False, [ValidationError("json_parsing", f"Failed to parse JSON: {exc}")])

    errors = _check_structure(coaching)
    if errors:
        return ValidationResult(False, errors)

    errors.extend(_check_lengths(coaching))
    errors.extend(_check_language(coaching, pattern))

    focus_type = coaching["progression"]["type"]
    if allowed_focus_types is not None and focus_type not in allowed_focus_types:
        errors.append(ValidationError(
            "focus_type_not_allowed",
            f"progression.type {focus_type!r} not allowed this week; use one of: {', '.join(allowed_focus_types)}",
            "progression",
        ))

    if errors:
        return ValidationResult(False, errors)
    return ValidationResult(True, [], coaching)


def error_summary(errors: list[ValidationError]) -> str:
    if not errors:
        return "No errors"
    return "; ".join(f"[{e.rule}] {e.message}" for e in errors)
