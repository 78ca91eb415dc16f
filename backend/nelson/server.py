"""FastAPI server for check-ins, weekly patterns and weekly coaching.

REST endpoints for the app plus the weekly cron trigger:
- Check-ins: /api/checkin, /api/sessions
- Weekly: /api/weekly-pattern, /api/generate-weekly-coaching, /api/save-weekly-calibration
- Habits: /api/level-up/options, /api/level-up/eligibility, /api/level-up/commit, /api/habit-events
- Gaps: /api/missed-checkins, /api/gap-check, /api/resolve-gap
- Cron: /api/cron/generate-weekly-coaching (Bearer CRON_SECRET)
"""

from __future__ import annotations

import logging
from typing import Optional

import redis
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from nelson.config import settings
from nelson.engine.checkins import CheckinError, log_session, submit_checkin
from nelson.engine.coaching import CoachingError, call_claude, generate_weekly_coaching
from nelson.engine.cron import request_coaching_via_http, run_weekly_coaching
from nelson.engine.gaps import GapError, check_for_unresolved_gap, detect_and_fill_missed_checkins, resolve_gap
from nelson.engine.level_up import INCREASE, level_up_eligibility, selection_hint, target_options
from nelson.engine.pattern_classifier import detect_weekly_pattern
from nelson.models.calibration import save_weekly_calibration
from nelson.models.coaching import SummaryStatus
from nelson.models.habit import CurrentFocus, Growth, set_commitment_target
from nelson.services.habit_events import (
    HabitEventType,
    describe_event,
    events_for_date,
    log_habit_event,
    recent_habit_events,
)
from nelson.utils.dates import WeekIdError, get_current_week_id, is_date_key, parse_week_id, today

logger = logging.getLogger(__name__)

app = FastAPI(title="Nelson", description="Daily check-ins and weekly coaching")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Swappable so the cron and coaching endpoints can run without the network
coaching_complete = call_claude
cron_generate = request_coaching_via_http


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


# ── REST Endpoints ───────────────────────────────────────────────────────

@app.get("/api/health")
async def health():
    r = _get_redis()
    try:
        r.ping()
        redis_ok = True
    except redis.RedisError:
        redis_ok = False

    return {"status": "ok", "redis": redis_ok, "weekId": get_current_week_id()}


class CheckinRequest(BaseModel):
    email: str
    date: str
    answers: dict[str, str]
    exerciseDeclared: bool = False
    note: str = ""


@app.post("/api/checkin")
async def checkin(req: CheckinRequest):
    """Submit today's seven behavior ratings."""
    r = _get_redis()
    try:
        result = submit_checkin(
            req.email, req.date, req.answers,
            exercise_declared=req.exerciseDeclared, note=req.note, r=r,
        )
    except CheckinError as exc:
        return _error(400, str(exc))
    return {"success": True, "checkin": result.to_dict()}


class SessionRequest(BaseModel):
    email: str
    date: str
    durationMin: float


@app.post("/api/sessions")
async def create_session(req: SessionRequest):
    """Record a walk timer session."""
    r = _get_redis()
    try:
        session_id = log_session(req.email, req.date, req.durationMin, r=r)
    except CheckinError as exc:
        return _error(400, str(exc))
    return {"success": True, "sessionId": session_id}


@app.get("/api/weekly-pattern")
async def weekly_pattern(email: str = Query(...), weekId: str = Query(...)):
    r = _get_redis()
    try:
        pattern = detect_weekly_pattern(email, weekId, r=r)
    except WeekIdError as exc:
        return _error(400, str(exc))
    return pattern.to_dict()


class GenerateCoachingRequest(BaseModel):
    email: Optional[str] = None
    weekId: Optional[str] = None


@app.post("/api/generate-weekly-coaching")
async def generate_coaching(req: GenerateCoachingRequest):
    """Classify the week and generate (or skip) its coaching."""
    if not req.email or not req.weekId:
        return JSONResponse(status_code=400, content={"success": False, "error": "Missing email or weekId"})
    try:
        parse_week_id(req.weekId)
    except WeekIdError as exc:
        return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})

    r = _get_redis()
    try:
        record = await generate_weekly_coaching(req.email, req.weekId, r=r, complete=coaching_complete)
    except (CoachingError, redis.RedisError) as exc:
        logger.error(f"Coaching generation failed for {req.email}: {exc}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})

    if record.status == SummaryStatus.REJECTED:
        return JSONResponse(status_code=422, content={
            "success": False,
            "error": "Validation failed after retry",
            "rejectionReason": record.rejection_reason,
        })
    return {"success": True, "summary": record.to_dict()}


class CalibrationAnswers(BaseModel):
    forceLevel: Optional[str] = None
    dragSource: Optional[str] = None
    structuralState: Optional[str] = None
    goalAlignment: Optional[str] = None


class CalibrationRequest(BaseModel):
    email: Optional[str] = None
    weekId: Optional[str] = None
    answers: Optional[CalibrationAnswers] = None


@app.post("/api/save-weekly-calibration")
async def save_calibration(req: CalibrationRequest):
    if not req.email or not req.weekId or req.answers is None:
        return _error(400, "Missing required fields")
    a = req.answers
    if not (a.forceLevel and a.dragSource and a.structuralState and a.goalAlignment):
        return _error(400, "Incomplete answers")

    r = _get_redis()
    try:
        save_weekly_calibration(
            req.email, req.weekId,
            a.forceLevel, a.dragSource, a.structuralState, a.goalAlignment,
            r=r,
        )
    except ValueError as exc:
        return _error(400, f"Invalid answers: {exc}")
    except redis.RedisError as exc:
        logger.error(f"Error saving weekly calibration: {exc}")
        return _error(500, "Failed to save calibration")
    return {"success": True}


class LevelUpOptionsRequest(BaseModel):
    currentTarget: int
    lastProvenTarget: Optional[int] = None
    direction: str = INCREASE


@app.post("/api/level-up/options")
async def level_up_options(req: LevelUpOptionsRequest):
    """Slider values and starting selection for a target change."""
    last_proven = req.lastProvenTarget if req.lastProvenTarget is not None else req.currentTarget
    try:
        options = target_options(req.currentTarget, last_proven, req.direction)
    except ValueError as exc:
        return _error(400, str(exc))
    hint = selection_hint(options.initial, options, last_proven, req.direction) if options.initial else None
    return {
        "available": options.available,
        "anchor": options.anchor,
        "anchorAvailable": options.anchor_available,
        "initial": options.initial,
        "hint": hint,
    }


@app.get("/api/level-up/eligibility")
async def level_up_status(email: str = Query(...)):
    r = _get_redis()
    return level_up_eligibility(email, today().isoformat(), r).to_dict()


class CommitTargetRequest(BaseModel):
    email: str
    target: int


@app.post("/api/level-up/commit")
async def commit_target(req: CommitTargetRequest):
    """Commit to a new minute target and log the change.

    Stepping a growth habit up requires eligibility; stepping down never does.
    """
    r = _get_redis()
    current = CurrentFocus.from_store(req.email, r)
    if current is None:
        return _error(404, "No current focus")
    leveling_up = req.target > current.target and isinstance(current.parsed, Growth)
    if leveling_up:
        eligibility = level_up_eligibility(req.email, today().isoformat(), r)
        if not eligibility.is_eligible:
            return _error(409, "Not eligible to level up", reason=eligibility.reason, daysHit=eligibility.days_hit)

    focus = set_commitment_target(req.email, req.target, r=r)
    if leveling_up:
        log_habit_event(
            req.email, HabitEventType.LEVEL_UP, today().isoformat(), r=r,
            habitKey=focus.habit_key,
            fromLevel=current.target,
            toLevel=req.target,
        )
    return {"success": True, "focus": focus.to_dict()}


@app.get("/api/habit-events")
async def habit_events(email: str = Query(...), limit: int = Query(50), date: Optional[str] = Query(None)):
    r = _get_redis()
    if date:
        events = events_for_date(email, date, r)
    else:
        events = recent_habit_events(email, limit=limit, r=r)
    return {"events": [{**e, "description": describe_event(e)} for e in events]}


# ── Missed check-ins ─────────────────────────────────────────────────────

class MissedCheckinsRequest(BaseModel):
    email: str
    today: Optional[str] = None


@app.post("/api/missed-checkins")
async def missed_checkins(req: MissedCheckinsRequest):
    """Fill missed days with gap documents; called when the dashboard loads."""
    day = req.today or today().isoformat()
    if not is_date_key(day):
        return _error(400, f"Invalid date: {day!r}")
    r = _get_redis()
    return detect_and_fill_missed_checkins(req.email, day, r).to_dict()


@app.get("/api/gap-check")
async def gap_check(email: str = Query(...), date: Optional[str] = Query(None)):
    day = date or today().isoformat()
    if not is_date_key(day):
        return _error(400, f"Invalid date: {day!r}")
    r = _get_redis()
    return check_for_unresolved_gap(email, day, r).to_dict()


class ResolveGapRequest(BaseModel):
    email: str
    gapDate: str
    exerciseCompleted: bool


@app.post("/api/resolve-gap")
async def resolve_gap_day(req: ResolveGapRequest):
    r = _get_redis()
    try:
        momentum = resolve_gap(req.email, req.gapDate, req.exerciseCompleted, r)
    except GapError:
        return _error(404, "Gap day not found")
    return {"success": True, "updatedMomentum": momentum}


# ── Cron ─────────────────────────────────────────────────────────────────

@app.get("/api/cron/generate-weekly-coaching")
async def cron_generate_weekly_coaching(request: Request):
    """Weekly trigger: coaching for every user with enough check-ins last week."""
    if not settings.CRON_SECRET:
        logger.error("CRON_SECRET not configured")
        return _error(500, "Cron secret not configured")
    if request.headers.get("authorization") != f"Bearer {settings.CRON_SECRET}":
        logger.warning("Unauthorized cron request")
        return _error(401, "Unauthorized")

    r = _get_redis()
    try:
        return await run_weekly_coaching(r=r, generate=cron_generate)
    except redis.RedisError as exc:
        logger.error(f"Cron fatal error: {exc}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})
