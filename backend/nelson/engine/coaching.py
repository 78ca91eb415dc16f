"""Weekly coaching generation via Claude.

Classifies the week, skips weeks that cannot be coached, and otherwise asks
the model for a coaching JSON object, validating and retrying until it passes
or the attempts run out. Every outcome is stored as a weekly summary record.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

import anthropic
import redis

from nelson.config.settings import (
    ANTHROPIC_API_KEY,
    COACHING_MAX_ATTEMPTS,
    COACHING_MAX_TOKENS,
    COACHING_MODEL,
    COACHING_TEMPERATURE,
)
from nelson.engine.checkins import get_checkins_in_range
from nelson.engine.coaching_validator import (
    PATTERN_BANS,
    ValidationResult,
    error_summary,
    validate_weekly_coaching,
)
from nelson.engine.pattern_classifier import detect_weekly_pattern
from nelson.engine.progression import (
    BehaviorChange,
    ProgressionResult,
    compare_week_to_week,
    derive_progression_type,
    format_changes_for_prompt,
    format_progression_for_prompt,
)
from nelson.models.calibration import (
    allowed_focus_types,
    format_calibration_for_prompt,
    get_previous_week_calibration,
)
from nelson.models.coaching import (
    PATTERN_EXPLANATIONS,
    PatternType,
    SummaryStatus,
    WeeklyPattern,
    WeeklySummaryRecord,
)
from nelson.models.checkin import CheckIn
from nelson.utils.dates import offset_date_key

logger = logging.getLogger(__name__)

# (system_prompt, user_prompt) -> raw model text
CompleteFn = Callable[[str, str], Awaitable[str]]

SKIPPED_MODEL_VERSION = "none"


class CoachingError(RuntimeError):
    """The model could not be reached or returned no text."""


# ── Pattern Constraints ──────────────────────────────────────────────────

PATTERN_INSTRUCTIONS: dict[PatternType, str] = {
    PatternType.BUILDING_MOMENTUM: """\
- Never suggest changes unless variance is rising or recovery is declining
- Default orientation: the current approach is working
- Any adjustment must be a minor timing change""",
    PatternType.MOMENTUM_PLATEAU: """\
- A plateau is a measurement outcome, not a failure state
- Describe it only as: stable momentum, holding steady, consistent without acceleration, momentum unchanged
- Frame it as a neutral observation, not a blockage""",
    PatternType.COMMITMENT_MISALIGNED: """\
- Acknowledge that exercise effort is not wasted
- No moralizing about exercise volume versus momentum
- Frame it as load-recovery balance, not effort quality""",
    PatternType.GAP_DISRUPTION: """\
- Never attribute gaps to personal qualities
- Treat gaps as life events
- Frame the return as check-ins resuming, not redemption""",
    PatternType.RECOVERY_DEFICIT: """\
- Distinguish sleep quantity from sleep quality
- No generic "sleep more" advice
- Address timing or environment, not willpower""",
    PatternType.EFFORT_INCONSISTENT: """\
- Name the behaviors that were consistent
- Frame it as attention distribution, not effort failure
- Reduce scope instead of asking for more effort""",
    PatternType.VARIANCE_HIGH: """\
- Identify which behaviors are swinging
- No generic "be more consistent" advice
- Narrow the focus to one behavior""",
}


SYSTEM_PROMPT_TEMPLATE = """\
You are Nelson, a behavioral coach. You write one short weekly coaching note
grounded in the user's check-in data.

## This Week
Week: {week_id} ({start} to {end})
Pattern: {pattern}
Meaning: {explanation}

Evidence:
{evidence}

## Week-over-Week Changes
{changes}

The largest negative change is the primary constraint.

## Progression
{progression}
Shape the focus text to this progression; "type" still takes one of the focus types below.

## Pattern Rules
{instructions}
{banned}

## Previous Week Calibration
{calibration}

## User Notes This Week
{notes}

## Writing Rules
- State behavior data before interpretation; quote at least one evidence number in "pattern"
- "tension" and "whyThisMatters": at most {max_sentences} sentences each
- No hedge words (suggests, may indicate, appears to, seems to, could be)
- Speak directly to the user; never refer to "the system" or "the data"

## Response Format
Return ONLY valid JSON (no markdown, no explanation):
{{
  "pattern": "what the week's behavior shows, with numbers",
  "tension": "the one constraint holding momentum back",
  "whyThisMatters": "what happens if this continues",
  "progression": {{
    "text": "one concrete focus for next week (max 280 characters)",
    "type": {focus_types}
  }}
}}
"""

FIRST_ATTEMPT_PROMPT = (
    "Generate coaching for this week based on the pattern and evidence in the "
    "system prompt. Respond with ONLY the JSON object, nothing else."
)


def build_system_prompt(
    pattern: WeeklyPattern,
    calibration_text: str,
    notes: list[str],
    focus_types: list[str],
    progression: Optional[ProgressionResult] = None,
    changes: Optional[list[BehaviorChange]] = None,
) -> str:
    banned = PATTERN_BANS.get(pattern.primary_pattern, ())
    notes_text = "\n".join(f'{i}. "{note}"' for i, note in enumerate(notes, 1)) or "No notes provided this week."
    return SYSTEM_PROMPT_TEMPLATE.format(
        week_id=pattern.week_id,
        start=pattern.date_range.get("start", "?"),
        end=pattern.date_range.get("end", "?"),
        pattern=pattern.primary_pattern.value,
        explanation=PATTERN_EXPLANATIONS[pattern.primary_pattern],
        evidence="\n".join(f"- {e}" for e in pattern.evidence_points),
        instructions=PATTERN_INSTRUCTIONS.get(pattern.primary_pattern, "- No special rules"),
        banned=f"Never use: {', '.join(banned)}" if banned else "",
        calibration=calibration_text,
        notes=notes_text,
        max_sentences=4,
        focus_types=" | ".join(f'"{t}"' for t in focus_types),
        changes=format_changes_for_prompt(changes or []),
        progression=format_progression_for_prompt(progression) if progression else "No progression derived.",
    )


def build_retry_prompt(errors: list[str]) -> str:
    lines = ["The previous output was rejected for these reasons:"]
    lines.extend(f"- {e}" for e in errors)
    lines.append("Generate a corrected version. Respond with ONLY the JSON object, nothing else.")
    return "\n".join(lines)


def extract_user_notes(email: str, pattern: WeeklyPattern, r: redis.Redis | None = None) -> list[str]:
    """Non-empty notes from the week's real check-ins, oldest first."""
    days = get_checkins_in_range(email, pattern.date_range["start"], pattern.date_range["end"], r)
    return [d.note.strip() for d in days if d.is_real and d.note and d.note.strip()]


def load_week_pair(email: str, pattern: WeeklyPattern, r: redis.Redis | None = None) -> tuple[list[CheckIn], list[CheckIn]]:
    """Real check-ins for the coached week and the seven days before it."""
    start, end = pattern.date_range["start"], pattern.date_range["end"]
    current = get_checkins_in_range(email, start, end, r)
    previous = get_checkins_in_range(email, offset_date_key(start, -7), offset_date_key(start, -1), r)
    return [d for d in current if d.is_real], [d for d in previous if d.is_real]


# ── Claude API Caller ────────────────────────────────────────────────────


async def call_claude(system_prompt: str, user_prompt: str) -> str:
    """Call Claude via the Anthropic API and return the first text block."""
    if not ANTHROPIC_API_KEY:
        raise CoachingError("ANTHROPIC_API_KEY not configured")

    client = anthropic.AsyncAnthropic(api_key=ANTHROPIC_API_KEY)
    try:
        response = await client.messages.create(
            model=COACHING_MODEL,
            max_tokens=COACHING_MAX_TOKENS,
            temperature=COACHING_TEMPERATURE,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
    except anthropic.APIError as exc:
        raise CoachingError(f"Claude API call failed: {exc}") from exc

    for block in response.content:
        if block.type == "text":
            return block.text
    raise CoachingError("No text content in API response")


# ── Generation ───────────────────────────────────────────────────────────


async def generate_weekly_coaching(
    email: str,
    week_id: str,
    r: redis.Redis | None = None,
    complete: Optional[CompleteFn] = None,
    max_attempts: int = COACHING_MAX_ATTEMPTS,
) -> WeeklySummaryRecord:
    """Generate, validate and store the coaching summary for one user-week.

    Returns the stored record; its status is ``skipped``, ``generated`` or
    ``rejected``. Raises CoachingError when the model fails on the last attempt.
    """
    complete = complete or call_claude
    pattern = detect_weekly_pattern(email, week_id, r)

    if not pattern.can_coach:
        record = WeeklySummaryRecord.for_pattern(
            pattern,
            SummaryStatus.SKIPPED,
            SKIPPED_MODEL_VERSION,
            skip_reason=pattern.primary_pattern.value,
        )
        record.to_store(email, r)
        logger.info(f"Coaching skipped for {email} {week_id}: {record.skip_reason}")
        return record

    calibration = get_previous_week_calibration(email, week_id, r)
    focus_types = allowed_focus_types(calibration)
    notes = extract_user_notes(email, pattern, r)
    current, previous = load_week_pair(email, pattern, r)
    progression = derive_progression_type(current, previous)
    changes = compare_week_to_week(current, previous) if previous else []
    logger.info(f"Progression for {email} {week_id}: {progression.type.value} ({progression.reason})")
    system_prompt = build_system_prompt(
        pattern, format_calibration_for_prompt(calibration), notes, focus_types,
        progression=progression, changes=changes,
    )

    raw_output = ""
    result: Optional[ValidationResult] = None
    user_prompt = FIRST_ATTEMPT_PROMPT
    for attempt in range(1, max_attempts + 1):
        logger.info(f"Coaching attempt {attempt}/{max_attempts} for {email} {week_id}")
        try:
            raw_output = await complete(system_prompt, user_prompt)
        except CoachingError as exc:
            logger.error(f"Coaching attempt {attempt} failed: {exc}")
            if attempt == max_attempts:
                raise
            continue

        result = validate_weekly_coaching(raw_output, pattern.primary_pattern, focus_types)
        if result.valid:
            break
        logger.warning(f"Validation failed on attempt {attempt}: {error_summary(result.errors)}")
        user_prompt = build_retry_prompt([f"[{e.rule}] {e.message}" for e in result.errors])

    if result is not None and result.valid:
        record = WeeklySummaryRecord.for_pattern(
            pattern, SummaryStatus.GENERATED, COACHING_MODEL, coaching=result.coaching,
        )
        logger.info(f"Coaching generated for {email} {week_id}")
    else:
        record = WeeklySummaryRecord.for_pattern(
            pattern,
            SummaryStatus.REJECTED,
            COACHING_MODEL,
            rejection_reason=error_summary(result.errors) if result else "Unknown error",
            raw_output=raw_output,
        )
        logger.warning(f"Coaching rejected for {email} {week_id} after {max_attempts} attempts")

    record.to_store(email, r)
    return record
