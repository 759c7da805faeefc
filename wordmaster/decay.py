"""
Daily memory decay batch.

Once per UTC day every non-archived word below mastery loses its owner's
daily decay rate. Each record carries the date it was last decayed, so a
rerun of the same day (after a crash, or in parallel shards) never decays a
record twice. A failure on one record is logged and the run goes on.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from django.utils import timezone

from . import memory
from .exceptions import ConcurrentWriteConflict
from .reviews import max_write_attempts
from .store import utc_day

logger = logging.getLogger(__name__)


@dataclass
class DecayRunSummary:
    """Counters for one decay run."""
    run_date: object
    records_processed: int = 0
    records_decayed: int = 0
    records_skipped: int = 0
    points_decayed: int = 0
    errors: List[Dict] = field(default_factory=list)

    @property
    def errors_count(self):
        return len(self.errors)

    def as_dict(self):
        return {
            'run_date': self.run_date.isoformat(),
            'records_processed': self.records_processed,
            'records_decayed': self.records_decayed,
            'records_skipped': self.records_skipped,
            'points_decayed': self.points_decayed,
            'errors_count': self.errors_count,
        }


def decay_record(store, pk, day, rate_for_user, clock=timezone.now):
    """
    Decay a single record for `day`.

    Returns the DecayResult, or None when the record no longer needs decay
    (gone, archived, mastered, or already decayed that day).
    """
    attempts = max_write_attempts()

    for _ in range(attempts):
        user_word = store.get_for_decay(pk)
        if user_word is None or user_word.is_archived:
            return None
        if memory.is_decay_exempt(user_word.memory_level):
            return None
        if user_word.last_decayed_on is not None and user_word.last_decayed_on >= day:
            return None

        result = memory.decay_one(user_word.memory_level, rate_for_user(user_word.user))
        if store.save_decay(user_word, result, day, clock()):
            return result

    raise ConcurrentWriteConflict(
        f"Word {pk} changed during {attempts} decay attempts",
        details={'user_word_id': pk, 'attempts': attempts},
    )


def run_daily_decay(store, day=None, shard=0, shards=1, dry_run=False, clock=timezone.now):
    """
    Apply one day of decay to every eligible record.

    Args:
        store: MemoryStore to read and write through
        day: UTC date of the run (defaults to today)
        shard, shards: Only process records with pk % shards == shard
        dry_run: Count eligible records without writing

    Returns:
        DecayRunSummary
    """
    if day is None:
        day = utc_day(clock())

    summary = DecayRunSummary(run_date=day)
    rates = {}

    def rate_for_user(user):
        if user.pk not in rates:
            rates[user.pk] = store.get_settings(user).daily_decay_rate
        return rates[user.pk]

    candidates = store.decay_candidates(day, shard=shard, shards=shards)
    logger.info(
        f"Found {len(candidates)} record(s) due for decay on {day}",
        extra={'run_date': day.isoformat(), 'shard': shard, 'shards': shards}
    )

    for pk in candidates:
        summary.records_processed += 1

        if dry_run:
            continue

        try:
            result = decay_record(store, pk, day, rate_for_user, clock=clock)
        except Exception as e:
            logger.error(
                f"Failed to decay word {pk}: {e}",
                extra={'user_word_id': pk},
                exc_info=True
            )
            summary.errors.append({'user_word_id': pk, 'error': str(e)})
            continue

        if result is None:
            summary.records_skipped += 1
        else:
            summary.records_decayed += 1
            summary.points_decayed += result.amount_decayed

    logger.info(
        f"Decay run for {day} finished: {summary.records_decayed} decayed",
        extra=summary.as_dict()
    )
    return summary
