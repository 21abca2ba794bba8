# SPDX-License-Identifier: Apache-2.0

"""
Calendar slot scoring domain logic.

Deterministic, side-effect free ranking of candidate event slots over a
fixed two-week horizon. All weights live in ScoringWeights so they can be
tuned and tested apart from the scan itself.
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Mapping, Optional, Tuple

from models.enums import EventPriority, EventType
from models.requests import SlotSuggestionRequest
from models.responses import CalendarSlotCandidate

SLOT_STEP_MINUTES = 30
HORIZON_DAYS = 14
DEFAULT_EVENT_DURATION = 60
DEFAULT_BUFFER_MINUTES = 30
MAX_SUGGESTIONS = 10
MIN_VIABLE_SCORE = 50


@dataclass(frozen=True)
class OptimalWindow:
    """Hour range (inclusive) in which an event type scores a bonus."""
    start: int
    end: int
    bonus: int


@dataclass(frozen=True)
class ScoringWeights:
    """Fixed weights of the slot heuristic."""
    base_score: int = 100
    conflict_penalty: int = 50
    off_hours_penalty: int = 10
    optimal_windows: Mapping[EventType, OptimalWindow] = field(default_factory=lambda: {
        EventType.PRESS_CONFERENCE: OptimalWindow(9, 11, 20),
        EventType.TOWN_HALL: OptimalWindow(18, 20, 15),
        EventType.MEETING: OptimalWindow(10, 16, 10),
        EventType.COMMUNITY_EVENT: OptimalWindow(14, 18, 15),
        EventType.EMERGENCY_MEETING: OptimalWindow(8, 22, 0),
    })
    default_window: OptimalWindow = OptimalWindow(9, 17, 5)
    press_midweek_bonus: int = 10
    community_weekend_bonus: int = 15
    large_audience_threshold: int = 100
    large_audience_evening_hour: int = 18
    large_audience_bonus: int = 10
    small_audience_threshold: int = 20
    small_audience_morning: Tuple[int, int] = (9, 11)
    small_audience_bonus: int = 5
    travel_threshold_minutes: int = 30
    travel_penalty: int = 5
    priority_bonus: Mapping[EventPriority, int] = field(default_factory=lambda: {
        EventPriority.URGENT: 0,
        EventPriority.HIGH: 5,
        EventPriority.MEDIUM: 10,
        EventPriority.LOW: 15,
    })
    short_notice_days: int = 2
    short_notice_penalty: int = 20
    advance_notice_days: Tuple[int, int] = (7, 14)
    advance_notice_bonus: int = 10


DEFAULT_WEIGHTS = ScoringWeights()


def parse_clock(value: str) -> int:
    """Convert HH:MM to minutes after midnight."""
    hours, minutes = value.split(':')
    return int(hours) * 60 + int(minutes)


def format_clock(minutes: int) -> str:
    """Convert minutes after midnight to HH:MM."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def estimate_travel_time(location: Optional[str], expected_attendees: Optional[int]) -> int:
    """
    Coarse travel time estimate in minutes from location keywords.

    Args:
        location: Free-text event location
        expected_attendees: Expected audience size

    Returns:
        Estimated travel minutes
    """
    if not location:
        return 0

    location_lower = location.lower()

    if 'city hall' in location_lower or 'downtown' in location_lower:
        return 45 if (expected_attendees or 0) > 100 else 30

    if 'center' in location_lower or 'venue' in location_lower:
        return 20

    if 'remote' in location_lower or 'virtual' in location_lower:
        return 0

    return 15


def generate_time_slots(
    start_time: str,
    end_time: str,
    duration: int,
    buffer_time: int
) -> List[str]:
    """
    Candidate start times every 30 minutes inside the preferred window.

    A slot is kept only when the event plus its buffer fits before the end.
    """
    start = parse_clock(start_time)
    end = parse_clock(end_time)
    slot_length = duration + buffer_time

    return [
        format_clock(current)
        for current in range(start, end - slot_length + 1, SLOT_STEP_MINUTES)
    ]


def candidate_dates(
    today: date,
    exclude_weekends: bool,
    horizon_days: int = HORIZON_DAYS
) -> List[date]:
    """Dates from today through the end of the horizon, inclusive."""
    dates = []
    for offset in range(horizon_days + 1):
        day = today + timedelta(days=offset)
        if exclude_weekends and day.weekday() >= 5:
            continue
        dates.append(day)
    return dates


def _event_interval(existing_event: Mapping[str, Any]) -> Tuple[datetime, datetime]:
    start = datetime.combine(
        date.fromisoformat(existing_event['date']),
        time.fromisoformat(existing_event['time'])
    )
    duration = existing_event.get('duration') or DEFAULT_EVENT_DURATION
    return start, start + timedelta(minutes=int(duration))


def find_conflict(
    slot_start: datetime,
    duration: int,
    existing_events: List[Mapping[str, Any]],
    buffer_time: int
) -> Optional[str]:
    """
    Describe the first existing event the slot collides with.

    Existing events are widened by the buffer on both ends; intervals are
    half-open, so a slot ending exactly where a widened event begins is free.
    """
    slot_end = slot_start + timedelta(minutes=duration)
    buffer = timedelta(minutes=buffer_time)

    for existing_event in existing_events:
        existing_start, existing_end = _event_interval(existing_event)
        if slot_start < existing_end + buffer and slot_end > existing_start - buffer:
            return 'Direct scheduling conflict'

    return None


def days_until(slot_date: date, now: datetime) -> int:
    """Whole days, rounded up, from now until the start of the slot date."""
    delta = datetime.combine(slot_date, time.min) - now
    return math.ceil(delta.total_seconds() / 86400)


def score_slot(
    slot_date: date,
    slot_time: str,
    request: SlotSuggestionRequest,
    existing_events: List[Mapping[str, Any]],
    buffer_time: int = DEFAULT_BUFFER_MINUTES,
    now: Optional[datetime] = None,
    weights: ScoringWeights = DEFAULT_WEIGHTS
) -> CalendarSlotCandidate:
    """
    Score a single candidate slot.

    Args:
        slot_date: Candidate date
        slot_time: Candidate start (HH:MM)
        request: Suggestion request
        existing_events: Committed events as dicts with date, time, duration
        buffer_time: Minutes kept free around existing events
        now: Reference instant (naive UTC)
        weights: Heuristic weights table

    Returns:
        CalendarSlotCandidate with a score clamped to 0..100
    """
    now = now or datetime.utcnow()
    score = weights.base_score
    reasons: List[str] = []
    conflicts: List[str] = []

    slot_start = datetime.combine(slot_date, time.fromisoformat(slot_time))
    conflict = find_conflict(slot_start, request.duration, existing_events, buffer_time)
    if conflict:
        score -= weights.conflict_penalty
        conflicts.append(conflict)

    event_type = EventType(request.event_type)
    hour = slot_start.hour
    window = weights.optimal_windows.get(event_type, weights.default_window)
    if window.start <= hour <= window.end:
        score += window.bonus
        reasons.append(f"Optimal time for {event_type.value.replace('_', ' ')}")
    else:
        score -= weights.off_hours_penalty

    weekday = slot_date.weekday()
    if event_type == EventType.PRESS_CONFERENCE and 1 <= weekday <= 3:
        score += weights.press_midweek_bonus
        reasons.append('Weekday timing good for media coverage')

    if event_type == EventType.COMMUNITY_EVENT and weekday >= 5:
        score += weights.community_weekend_bonus
        reasons.append('Weekend timing increases community attendance')

    attendees = request.expected_attendees
    if attendees:
        if attendees > weights.large_audience_threshold and hour >= weights.large_audience_evening_hour:
            score += weights.large_audience_bonus
            reasons.append('Evening timing good for large events')

        morning_start, morning_end = weights.small_audience_morning
        if attendees < weights.small_audience_threshold and morning_start <= hour <= morning_end:
            score += weights.small_audience_bonus
            reasons.append('Morning timing efficient for small meetings')

    if estimate_travel_time(request.location, attendees) > weights.travel_threshold_minutes:
        score -= weights.travel_penalty
        reasons.append('Consider travel time to location')

    priority = EventPriority(request.priority)
    score += weights.priority_bonus.get(priority, 0)

    days_ahead = days_until(slot_date, now)
    if days_ahead < weights.short_notice_days and priority != EventPriority.URGENT:
        score -= weights.short_notice_penalty
        reasons.append('Short notice may reduce attendance')

    advance_min, advance_max = weights.advance_notice_days
    if advance_min < days_ahead <= advance_max:
        score += weights.advance_notice_bonus
        reasons.append('Good advance notice for planning')

    return CalendarSlotCandidate(
        date=slot_date.isoformat(),
        time=slot_time,
        score=max(0, min(100, score)),
        reasons=reasons,
        conflicts=conflicts
    )


def suggest_slots(
    request: SlotSuggestionRequest,
    existing_events: List[Mapping[str, Any]],
    buffer_time: int = DEFAULT_BUFFER_MINUTES,
    now: Optional[datetime] = None,
    weights: ScoringWeights = DEFAULT_WEIGHTS
) -> List[CalendarSlotCandidate]:
    """
    Rank candidate slots for a new event.

    Returns at most ten candidates scoring above 50, best first; ties keep
    chronological order. An empty list means no viable slot.
    """
    now = now or datetime.utcnow()
    slot_times = generate_time_slots(
        request.preferred_time_start,
        request.preferred_time_end,
        request.duration,
        buffer_time
    )

    candidates = []
    for slot_date in candidate_dates(now.date(), request.exclude_weekends):
        for slot_time in slot_times:
            candidate = score_slot(
                slot_date, slot_time, request, existing_events, buffer_time, now, weights
            )
            if candidate.score > MIN_VIABLE_SCORE:
                candidates.append(candidate)

    candidates.sort(key=lambda candidate: candidate.score, reverse=True)
    return candidates[:MAX_SUGGESTIONS]


def summarize_candidates(candidates: List[CalendarSlotCandidate]) -> List[Dict[str, Any]]:
    """Serialize candidates with their one-line reason for API responses."""
    return [
        {**candidate.model_dump(), 'reason': candidate.reason}
        for candidate in candidates
    ]
