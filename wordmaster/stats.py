"""Vocabulary statistics, streaks, and mastery projections."""

from datetime import timedelta

from django.db.models import Avg, Count, Q, Sum
from django.utils import timezone

from . import memory
from .models import DailyStats, ReviewHistory, UserSettings, UserWord
from .store import due_for_decay, utc_day

PROJECTION_WINDOW_DAYS = 7
REVIEW_HISTORY_DAYS = 30
REVIEW_HISTORY_COUNTERS = ('words_reviewed', 'words_marked_known', 'words_marked_review')


def vocabulary_stats(user):
    """Summary counts over the user's active vocabulary."""
    user_words = UserWord.objects.filter(user=user, is_archived=False)
    learning = user_words.filter(memory_level__lt=memory.MASTERED_LEVEL)
    _, critical_upper = memory.bucket_range(memory.BUCKET_CRITICAL)

    totals = learning.aggregate(
        total=Count('pk'),
        critical=Count('pk', filter=Q(memory_level__lt=critical_upper)),
        average=Avg('memory_level'),
    )

    return {
        'total_vocabulary': user_words.count(),
        'active_learning': totals['total'],
        'mastered_words': user_words.filter(memory_level=memory.MASTERED_LEVEL).count(),
        'starred_words': user_words.filter(memory_level=memory.STARRED_LEVEL).count(),
        'critical_words': totals['critical'],
        'average_memory_level': round(totals['average'] or 0),
    }


def memory_health_distribution(user):
    """Count the user's active words per classification bucket."""
    distribution = {bucket: 0 for bucket in memory.BUCKETS}
    levels = UserWord.objects.filter(
        user=user, is_archived=False
    ).order_by().values('memory_level').annotate(count=Count('pk'))

    for row in levels:
        distribution[memory.classify(row['memory_level'])] += row['count']
    return distribution


def streak_summary(user, today=None):
    """Current and longest goal streaks from the user's daily stats."""
    if today is None:
        today = utc_day(timezone.now())

    stats = list(DailyStats.objects.filter(user=user, stat_date__lte=today))
    today_stat = next((s for s in stats if s.stat_date == today), None)

    return {
        'current_streak': memory.current_streak(stats, today=today),
        'longest_streak': memory.longest_streak(stats),
        'words_reviewed_today': today_stat.words_reviewed if today_stat else 0,
        'daily_goal_achieved_today': bool(today_stat and today_stat.daily_goal_achieved),
    }


def average_daily_gain(user_word, days=PROJECTION_WINDOW_DAYS, now=None):
    """Average memory points gained per day from known marks in the last `days` days."""
    if now is None:
        now = timezone.now()

    gained = ReviewHistory.objects.filter(
        user_word=user_word,
        action_type=ReviewHistory.ActionType.MARKED_KNOWN,
        reviewed_at__gt=now - timedelta(days=days),
    ).aggregate(total=Sum('memory_change'))['total'] or 0
    return gained / days


def mastery_projection(user_word, days=PROJECTION_WINDOW_DAYS, now=None):
    """Project mastery for a word from its recent gains and the user's decay rate."""
    if now is None:
        now = timezone.now()

    decay_rate = UserSettings.for_user(user_word.user).daily_decay_rate
    avg_gain = average_daily_gain(user_word, days=days, now=now)
    estimate = memory.estimate_time_to_mastery(
        min(user_word.memory_level, memory.MASTERED_LEVEL),
        avg_gain,
        decay_rate,
        today=utc_day(now),
    )

    return {
        'user_word_id': user_word.pk,
        'memory_level': user_word.memory_level,
        'classification': user_word.classification,
        'average_daily_gain': round(avg_gain, 2),
        'daily_decay_rate': decay_rate,
        'achievable': estimate.achievable,
        'estimated_days': estimate.estimated_days,
        'estimated_date': estimate.estimated_date.isoformat() if estimate.estimated_date else None,
        'days_until_forgotten': estimate.days_until_forgotten,
    }


def review_history(user, days=REVIEW_HISTORY_DAYS, today=None):
    """
    Daily review counts for the last `days` days, oldest first, with totals.

    Days without a stats row are included with zero counts.
    """
    if today is None:
        today = utc_day(timezone.now())
    start = today - timedelta(days=days - 1)

    rows = {
        row['stat_date']: row
        for row in DailyStats.objects.filter(
            user=user, stat_date__gte=start, stat_date__lte=today
        ).values('stat_date', *REVIEW_HISTORY_COUNTERS)
    }

    series = []
    for offset in range(days):
        stat_date = start + timedelta(days=offset)
        row = rows.get(stat_date, {})
        series.append({
            'date': stat_date.isoformat(),
            **{counter: row.get(counter, 0) for counter in REVIEW_HISTORY_COUNTERS},
        })

    return {
        'days': series,
        'totals': {
            counter: sum(day[counter] for day in series)
            for counter in REVIEW_HISTORY_COUNTERS
        },
    }


def decay_impact(user, today=None):
    """
    How the next decay run will hit the user's active vocabulary.

    Words due for decay are the ones the run for `today` still has to
    process. Those at the bottom of their bucket drop into a lower one.
    """
    if today is None:
        today = utc_day(timezone.now())

    decay_rate = UserSettings.for_user(user).daily_decay_rate
    distribution = memory_health_distribution(user)
    total = sum(distribution.values())

    due_levels = list(due_for_decay(
        UserWord.objects.filter(user=user), today
    ).values_list('memory_level', flat=True))
    decayed = [(level, memory.decay_one(level, decay_rate).new_level) for level in due_levels]

    return {
        'total_words': total,
        'distribution': {
            bucket: {
                'count': count,
                'percentage': round(count * 100 / total) if total else 0,
            }
            for bucket, count in distribution.items()
        },
        'mastered_words': distribution[memory.BUCKET_MASTERED],
        'due_for_decay': len(due_levels),
        'dropping_bucket': sum(
            1 for before, after in decayed if memory.classify(after) != memory.classify(before)
        ),
        'points_at_stake': sum(before - after for before, after in decayed),
        'daily_decay_rate': decay_rate,
        'run_date': today.isoformat(),
    }
