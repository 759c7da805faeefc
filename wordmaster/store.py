"""
Data access for memory state.

Review handlers and the decay batch read and write UserWord rows through a
MemoryStore. The store is constructed explicitly and passed in, so a
deployment can swap the implementation (WORDMASTER_STORE setting) and tests
can hand in their own.

Every memory write is a compare-and-set on UserWord.version: the write only
lands if nobody else wrote the row since it was read. A False return means
the caller must re-read and recompute.
"""

from datetime import timezone as dt_timezone

from django.conf import settings
from django.db import transaction
from django.db.models import F, Q
from django.db.models.functions import Mod
from django.utils.module_loading import import_string

from . import memory
from .exceptions import RecordNotFound
from .models import DailyStats, ReviewHistory, UserSettings, UserWord

DEFAULT_STORE = 'wordmaster.store.DjangoMemoryStore'


def utc_day(moment):
    """Return the UTC calendar date of an aware datetime."""
    return moment.astimezone(dt_timezone.utc).date()


def get_store():
    """Build the configured MemoryStore."""
    store_class = import_string(getattr(settings, 'WORDMASTER_STORE', DEFAULT_STORE))
    return store_class()


def due_for_decay(queryset, day):
    """Narrow a UserWord queryset to the records the decay run for `day` still has to process."""
    return queryset.filter(
        is_archived=False,
        memory_level__lt=memory.MASTERED_LEVEL,
    ).filter(
        Q(last_decayed_on__isnull=True) | Q(last_decayed_on__lt=day)
    )


class MemoryStore:
    """Interface the memory engine's callers persist through."""

    def get_user_word(self, user, user_word_id):
        """Return the user's UserWord or raise RecordNotFound."""
        raise NotImplementedError

    def get_settings(self, user):
        raise NotImplementedError

    def recent_reviews(self, user_word, since):
        """Known/review-needed events after `since`, newest first."""
        raise NotImplementedError

    def save_known_review(self, user_word, increase, now, archive=False, daily_goal=None, session_id=''):
        """Persist a known mark. Returns the ReviewHistory entry, or None on conflict."""
        raise NotImplementedError

    def record_action(self, user_word, action_type, now, daily_goal=None, session_id=''):
        """Record an action that doesn't change the memory level."""
        raise NotImplementedError

    def set_memory_level(self, user_word, level, now):
        """Overwrite the level by explicit user action. Returns False on conflict."""
        raise NotImplementedError

    def decay_candidates(self, day, shard=0, shards=1):
        """Primary keys of records still due for decay on `day`."""
        raise NotImplementedError

    def get_for_decay(self, pk):
        """Return a fresh UserWord by primary key, or None if it's gone."""
        raise NotImplementedError

    def save_decay(self, user_word, result, day, now):
        """Persist one day of decay. Returns False on conflict."""
        raise NotImplementedError


class DjangoMemoryStore(MemoryStore):
    """MemoryStore backed by the Django ORM."""

    def get_user_word(self, user, user_word_id):
        try:
            return UserWord.objects.select_related('word', 'user').get(pk=user_word_id, user=user)
        except UserWord.DoesNotExist:
            raise RecordNotFound(
                f"Word {user_word_id} not found",
                details={'user_word_id': user_word_id},
            )

    def get_settings(self, user):
        return UserSettings.for_user(user)

    def recent_reviews(self, user_word, since):
        return list(ReviewHistory.objects.filter(
            user_word=user_word,
            action_type__in=ReviewHistory.ENGINE_ACTIONS,
            reviewed_at__gt=since,
        ).order_by('-reviewed_at', '-pk'))

    def _compare_and_set(self, user_word, **fields):
        """Update the row only if its version still matches the instance."""
        updated = UserWord.objects.filter(
            pk=user_word.pk,
            version=user_word.version,
        ).update(version=F('version') + 1, **fields)
        return updated == 1

    def save_known_review(self, user_word, increase, now, archive=False, daily_goal=None, session_id=''):
        memory_before = user_word.memory_level
        change = increase.new_level - memory_before

        with transaction.atomic():
            saved = self._compare_and_set(
                user_word,
                memory_level=increase.new_level,
                is_quick_learner=increase.is_quick_learner,
                is_archived=user_word.is_archived or archive,
                last_reviewed_at=now,
                last_memory_update_at=now,
                times_reviewed=F('times_reviewed') + 1,
                times_marked_known=F('times_marked_known') + 1,
            )
            if not saved:
                return None

            entry = ReviewHistory.objects.create(
                user=user_word.user,
                word=user_word.word,
                user_word=user_word,
                action_type=ReviewHistory.ActionType.MARKED_KNOWN,
                memory_before=memory_before,
                memory_after=increase.new_level,
                memory_change=change,
                reason=increase.reason,
                session_id=session_id,
                reviewed_at=now,
            )

            newly_mastered = (
                memory_before < memory.MASTERED_LEVEL <= increase.new_level
            )
            DailyStats.record(
                user_word.user,
                utc_day(now),
                daily_goal=daily_goal,
                words_reviewed=1,
                words_marked_known=1,
                memory_points_gained=change,
                words_mastered=1 if newly_mastered else 0,
            )

        user_word.refresh_from_db()
        return entry

    def record_action(self, user_word, action_type, now, daily_goal=None, session_id=''):
        counters = {}
        stat_increments = {}
        if action_type == ReviewHistory.ActionType.MARKED_REVIEW:
            counters = {
                'times_reviewed': F('times_reviewed') + 1,
                'times_marked_review': F('times_marked_review') + 1,
                'last_reviewed_at': now,
            }
            stat_increments = {'words_reviewed': 1, 'words_marked_review': 1}

        with transaction.atomic():
            if counters:
                # Counter-only update, no level change, so no version check
                UserWord.objects.filter(pk=user_word.pk).update(**counters)

            entry = ReviewHistory.objects.create(
                user=user_word.user,
                word=user_word.word,
                user_word=user_word,
                action_type=action_type,
                memory_before=user_word.memory_level,
                memory_after=user_word.memory_level,
                memory_change=0,
                session_id=session_id,
                reviewed_at=now,
            )

            if stat_increments:
                DailyStats.record(
                    user_word.user,
                    utc_day(now),
                    daily_goal=daily_goal,
                    **stat_increments,
                )

        user_word.refresh_from_db()
        return entry

    def set_memory_level(self, user_word, level, now):
        with transaction.atomic():
            saved = self._compare_and_set(
                user_word,
                memory_level=level,
                last_memory_update_at=now,
            )
            if not saved:
                return False

        user_word.refresh_from_db()
        return True

    def decay_candidates(self, day, shard=0, shards=1):
        queryset = due_for_decay(UserWord.objects.all(), day)
        if shards > 1:
            queryset = queryset.annotate(shard=Mod('pk', shards)).filter(shard=shard)
        return list(queryset.order_by('pk').values_list('pk', flat=True))

    def get_for_decay(self, pk):
        return UserWord.objects.select_related('user', 'word').filter(pk=pk).first()

    def save_decay(self, user_word, result, day, now):
        memory_before = user_word.memory_level
        change = result.new_level - memory_before

        with transaction.atomic():
            saved = self._compare_and_set(
                user_word,
                memory_level=result.new_level,
                last_decayed_on=day,
                last_memory_update_at=now,
            )
            if not saved:
                return False

            if change:
                ReviewHistory.objects.create(
                    user=user_word.user,
                    word=user_word.word,
                    user_word=user_word,
                    action_type=ReviewHistory.ActionType.SYSTEM_DECAY,
                    memory_before=memory_before,
                    memory_after=result.new_level,
                    memory_change=change,
                    reason='daily_decay',
                    reviewed_at=now,
                )
                DailyStats.record(
                    user_word.user,
                    day,
                    memory_points_lost=-change,
                )

        user_word.refresh_from_db()
        return True
