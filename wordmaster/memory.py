"""
Memory retention engine for vocabulary review.

Every word a user learns carries a memory level between 0 and 100. Marking a
word as known raises the level, a daily decay lowers it, and the level decides
which review bucket the word sits in and how urgently it should come back in
the feed. Level 101 is reserved for words the user starred by hand; it never
comes out of these calculations.

All functions here are pure: callers fetch state, call in, and persist the
results themselves.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple


# Memory level bounds
MIN_LEVEL = 0
MASTERED_LEVEL = 100
STARRED_LEVEL = 101

# Review actions
ACTION_MARKED_KNOWN = 'marked_known'
ACTION_MARKED_REVIEW = 'marked_review'

# Increase constants
BASE_INCREASE = 10
QUICK_LEARNER_MULTIPLIER = 1.5
REVIEW_WINDOW_HOURS = 48

# Decay constants
DEFAULT_DAILY_DECAY_RATE = -1
MIN_DAILY_DECAY_RATE = -3

# Increase reasons
REASON_STANDARD = 'standard_review'
REASON_QUICK_LEARNING_DISABLED = 'standard_review_quick_learning_disabled'
REASON_2X_WITHIN_24H = 'quick_learning_2x_within_24h'
REASON_3X_WITHIN_48H = 'quick_learning_3x_within_48h'
REASON_4PLUS_CONSISTENT = 'exceptional_recall_4plus_correct'
MULTIPLIER_SUFFIX = '_with_quick_learner_multiplier'

# Classification buckets
BUCKET_CRITICAL = 'critical'
BUCKET_LEARNING = 'learning'
BUCKET_REVIEWING = 'reviewing'
BUCKET_WELL_KNOWN = 'well_known'
BUCKET_MASTERED = 'mastered'

# (inclusive lower bound, bucket), highest first
BUCKET_THRESHOLDS = (
    (MASTERED_LEVEL, BUCKET_MASTERED),
    (81, BUCKET_WELL_KNOWN),
    (51, BUCKET_REVIEWING),
    (21, BUCKET_LEARNING),
    (MIN_LEVEL, BUCKET_CRITICAL),
)

BUCKETS = tuple(bucket for _, bucket in reversed(BUCKET_THRESHOLDS))

BUCKET_INDICATORS = {
    BUCKET_CRITICAL: '🔴',
    BUCKET_LEARNING: '🟠',
    BUCKET_REVIEWING: '🟡',
    BUCKET_WELL_KNOWN: '🟢',
    BUCKET_MASTERED: '🏆',
}

# Difficulty levels derived from word length
DIFFICULTY_EASY = 'easy'
DIFFICULTY_MEDIUM = 'medium'
DIFFICULTY_HARD = 'hard'
DIFFICULTY_VERY_HARD = 'very_hard'


@dataclass(frozen=True)
class ReviewEvent:
    """A single review action, as seen by the engine."""
    action_type: str
    reviewed_at: datetime


@dataclass(frozen=True)
class MemoryIncrease:
    """Immutable result of marking a word as known."""
    base_increase: int
    bonus_increase: int
    multiplier: float
    total_increase: int
    reason: str
    new_level: int
    is_quick_learner: bool


@dataclass(frozen=True)
class DecayResult:
    """Immutable result of one day of decay."""
    new_level: int
    amount_decayed: int


@dataclass(frozen=True)
class MasteryEstimate:
    """Projection of when a word will be mastered, or forgotten."""
    estimated_days: int
    estimated_date: Optional[date]
    days_until_forgotten: Optional[int]
    achievable: bool


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def apply_known_review(
    current_level: int,
    recent_reviews: Iterable,
    is_quick_learner: bool,
    quick_learning_enabled: bool = True,
    now: datetime | None = None
) -> MemoryIncrease:
    """
    Calculate the new memory level after a word is marked as known.

    Every known mark earns BASE_INCREASE points. When quick learning is
    enabled, the recent review window (events of the last 48 hours, newest
    first, not including this one) is checked for accelerated recall:

    - 1 prior known mark, the first under 24h ago: +20
    - 2 prior known marks, the first under 48h ago: +30
    - 3+ prior known marks and nothing but known marks in the window: +40

    Only the first matching tier applies. Any of them makes the word a quick
    learner, and quick learners get (base + bonus) multiplied by 1.5. The
    multiplier also applies to the mark that first detects the pattern.

    Args:
        current_level: Memory level before the review (0-100)
        recent_reviews: Objects with action_type and reviewed_at attributes
        is_quick_learner: Persisted quick learner flag of the word
        quick_learning_enabled: User setting; False means base increase only
        now: Time of review (defaults to now)

    Returns:
        MemoryIncrease with the breakdown and the updated quick learner flag
    """
    if current_level < MIN_LEVEL or current_level > MASTERED_LEVEL:
        raise ValueError(
            f"Memory level must be between {MIN_LEVEL} and {MASTERED_LEVEL}, got {current_level}"
        )

    if not quick_learning_enabled:
        return MemoryIncrease(
            base_increase=BASE_INCREASE,
            bonus_increase=0,
            multiplier=1,
            total_increase=BASE_INCREASE,
            reason=REASON_QUICK_LEARNING_DISABLED,
            new_level=min(MASTERED_LEVEL, current_level + BASE_INCREASE),
            is_quick_learner=is_quick_learner,
        )

    if now is None:
        now = _utcnow()

    reviews = list(recent_reviews)
    bonus, reason = detect_quick_learning(reviews, now)
    detected = bonus > 0

    multiplier = 1
    if detected or is_quick_learner:
        multiplier = QUICK_LEARNER_MULTIPLIER
        reason += MULTIPLIER_SUFFIX

    total_increase = round((BASE_INCREASE + bonus) * multiplier)

    return MemoryIncrease(
        base_increase=BASE_INCREASE,
        bonus_increase=bonus,
        multiplier=multiplier,
        total_increase=total_increase,
        reason=reason,
        new_level=min(MASTERED_LEVEL, current_level + total_increase),
        is_quick_learner=is_quick_learner or detected,
    )


def detect_quick_learning(reviews: List, now: datetime) -> Tuple[int, str]:
    """
    Return (bonus, reason) for the quick learning tier the window matches.

    The tiers are mutually exclusive; (0, REASON_STANDARD) when none match.
    """
    known = [r for r in reviews if r.action_type == ACTION_MARKED_KNOWN]
    known_count = len(known)

    if known_count == 0:
        return (0, REASON_STANDARD)

    hours_since_first = (now - min(r.reviewed_at for r in known)) / timedelta(hours=1)

    if known_count == 1:
        if hours_since_first < 24:
            return (20, REASON_2X_WITHIN_24H)
    elif known_count == 2:
        if hours_since_first < 48:
            return (30, REASON_3X_WITHIN_48H)
    elif all(r.action_type == ACTION_MARKED_KNOWN for r in reviews):
        return (40, REASON_4PLUS_CONSISTENT)

    return (0, REASON_STANDARD)


def decay_one(current_level: int, daily_decay_rate: int = DEFAULT_DAILY_DECAY_RATE) -> DecayResult:
    """
    Apply one day of decay to a memory level.

    The level never drops below zero. amount_decayed is the configured rate
    even when the floor absorbs part of it.
    """
    return DecayResult(
        new_level=max(MIN_LEVEL, current_level + daily_decay_rate),
        amount_decayed=abs(daily_decay_rate),
    )


def is_decay_exempt(memory_level: int) -> bool:
    """Mastered and starred words don't decay."""
    return memory_level >= MASTERED_LEVEL


def classify(memory_level: int) -> str:
    """Map a memory level to its review bucket."""
    for lower_bound, bucket in BUCKET_THRESHOLDS:
        if memory_level >= lower_bound:
            return bucket
    return BUCKET_CRITICAL


def bucket_range(bucket: str) -> Tuple[int, Optional[int]]:
    """
    Return the (inclusive lower, exclusive upper) levels of a bucket.

    The upper bound is None for the mastered bucket, which also holds
    starred words.
    """
    upper = None
    for lower_bound, name in BUCKET_THRESHOLDS:
        if name == bucket:
            return (lower_bound, upper)
        upper = lower_bound
    raise ValueError(f"Unknown bucket: {bucket}")


def format_memory_level(memory_level: float) -> str:
    """Format a memory level as an indicator and a percentage."""
    return f"{BUCKET_INDICATORS[classify(memory_level)]} {round(memory_level)}%"


def urgency_multiplier(memory_level: int) -> float:
    if memory_level < 20:
        return 3.0
    if memory_level <= 50:
        return 1.5
    if memory_level <= 80:
        return 1.0
    return 0.3


def length_factor(item_length: int) -> float:
    if item_length <= 4:
        return 0.8
    if item_length <= 7:
        return 1.0
    if item_length <= 10:
        return 1.2
    return 1.5


def priority_score(memory_level: int, item_length: int) -> float:
    """
    Calculate the feed priority of a word.

    priority = (100 - memory_level) * urgency_multiplier * length_factor

    Weak memories and long words come first. Starred words score zero.
    """
    remaining = max(0, MASTERED_LEVEL - memory_level)
    return remaining * urgency_multiplier(memory_level) * length_factor(item_length)


def priority_sort_key(memory_level: int, item_length: int, item_id) -> Tuple[float, object]:
    """Sort key for the feed: highest priority first, then by id."""
    return (-priority_score(memory_level, item_length), item_id)


def difficulty_for_length(item_length: int) -> str:
    """Determine a word's difficulty level from its length."""
    if item_length <= 4:
        return DIFFICULTY_EASY
    if item_length <= 7:
        return DIFFICULTY_MEDIUM
    if item_length <= 10:
        return DIFFICULTY_HARD
    return DIFFICULTY_VERY_HARD


def _goal_days(daily_stats) -> dict:
    """Collapse daily stats to {date: goal achieved}."""
    days = {}
    for stat in daily_stats:
        days[stat.stat_date] = days.get(stat.stat_date, False) or stat.daily_goal_achieved
    return days


def current_streak(daily_stats: Iterable, today: date | None = None) -> int:
    """
    Count consecutive days, ending today, on which the daily goal was met.

    Args:
        daily_stats: Objects with stat_date and daily_goal_achieved attributes
        today: Current date (defaults to today, UTC)

    Returns:
        Number of days in the streak; 0 if today's goal isn't met yet
    """
    if today is None:
        today = _utcnow().date()

    days = _goal_days(daily_stats)
    streak = 0
    expected = today

    for stat_date in sorted(days, reverse=True):
        if stat_date > today:
            continue
        if stat_date != expected or not days[stat_date]:
            break
        streak += 1
        expected = stat_date - timedelta(days=1)

    return streak


def longest_streak(daily_stats: Iterable) -> int:
    """Find the longest run of consecutive goal-achieved days."""
    achieved = sorted(d for d, ok in _goal_days(daily_stats).items() if ok)

    longest = 0
    run = 0
    previous = None
    for stat_date in achieved:
        if previous is not None and stat_date - previous == timedelta(days=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = stat_date

    return longest


def estimate_time_to_mastery(
    current_level: float,
    avg_daily_gain: float,
    daily_decay_rate: int = DEFAULT_DAILY_DECAY_RATE,
    today: date | None = None
) -> MasteryEstimate:
    """
    Project how many days until a word reaches mastery.

    Net daily progress is the average gain plus the (negative) decay rate.
    When it isn't positive the word can't be mastered at the current pace;
    the estimate then reports how many days until the word is forgotten.
    """
    if today is None:
        today = _utcnow().date()

    if current_level >= MASTERED_LEVEL:
        return MasteryEstimate(
            estimated_days=0,
            estimated_date=today,
            days_until_forgotten=None,
            achievable=True,
        )

    net_daily = avg_daily_gain + daily_decay_rate

    if net_daily <= 0:
        days_until_forgotten = None
        if daily_decay_rate != 0:
            days_until_forgotten = math.floor(current_level / abs(daily_decay_rate))
        return MasteryEstimate(
            estimated_days=-1,
            estimated_date=None,
            days_until_forgotten=days_until_forgotten,
            achievable=False,
        )

    estimated_days = math.ceil((MASTERED_LEVEL - current_level) / net_daily)
    return MasteryEstimate(
        estimated_days=estimated_days,
        estimated_date=today + timedelta(days=estimated_days),
        days_until_forgotten=None,
        achievable=True,
    )
