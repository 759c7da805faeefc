"""
Unit tests for the wordmaster application.

Test organization:
- Memory*Tests: Pure function tests for the memory engine
- Model tests for Word, UserWord, DailyStats
- Review*Tests: Review submission through the store, including write conflicts
- Decay*Tests: Daily decay batch and its management command
- Feed/Stats tests
- View tests for the JSON API
"""

import json
from collections import namedtuple
from datetime import date, datetime, timedelta, timezone as dt_timezone
from io import StringIO
from unittest.mock import patch

from django.contrib.auth.models import User
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError, IntegrityError, transaction
from django.test import Client, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from . import memory
from .decay import decay_record, run_daily_decay
from .exceptions import ConcurrentWriteConflict, InvalidWord, MalformedReviewHistory, RecordNotFound
from .feed import SORT_ALPHABETICAL, build_feed
from .models import CommandExecutionLog, DailyStats, ReviewHistory, UserSettings, UserWord, Word
from . import reviews, stats
from .store import DjangoMemoryStore, utc_day

NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=dt_timezone.utc)
TODAY = NOW.date()

Stat = namedtuple('Stat', ['stat_date', 'daily_goal_achieved'])


def event(action, hours_ago):
    """Review event `hours_ago` hours before NOW."""
    return memory.ReviewEvent(action_type=action, reviewed_at=NOW - timedelta(hours=hours_ago))


def known(hours_ago):
    return event(memory.ACTION_MARKED_KNOWN, hours_ago)


def review(hours_ago):
    return event(memory.ACTION_MARKED_REVIEW, hours_ago)


def fixed_clock(moment=NOW):
    return lambda: moment


class ConflictingStore(DjangoMemoryStore):
    """Store whose memory writes always lose the race."""

    def save_known_review(self, user_word, increase, now, archive=False, daily_goal=None,
                          session_id=''):
        return None


# =============================================================================
# Memory Engine Tests
# =============================================================================

class MemoryKnownReviewTests(TestCase):
    """Tests for the increase applied when a word is marked known."""

    def test_first_known_mark_is_standard(self):
        """A word with no history gets the base increase only."""
        result = memory.apply_known_review(0, [], False, now=NOW)
        self.assertEqual(result.new_level, 10)
        self.assertEqual(result.bonus_increase, 0)
        self.assertEqual(result.multiplier, 1)
        self.assertEqual(result.reason, memory.REASON_STANDARD)
        self.assertFalse(result.is_quick_learner)

    def test_second_known_within_24h_applies_bonus_and_multiplier(self):
        """Second known mark 2h after the first: (10 + 20) * 1.5 on the same event."""
        result = memory.apply_known_review(10, [known(2)], False, now=NOW)
        self.assertEqual(result.bonus_increase, 20)
        self.assertEqual(result.multiplier, 1.5)
        self.assertEqual(result.total_increase, 45)
        self.assertEqual(result.new_level, 55)
        self.assertEqual(
            result.reason,
            memory.REASON_2X_WITHIN_24H + memory.MULTIPLIER_SUFFIX
        )
        self.assertTrue(result.is_quick_learner)

    def test_second_known_after_24h_is_standard(self):
        """First known mark over 24h ago earns no bonus."""
        result = memory.apply_known_review(10, [known(30)], False, now=NOW)
        self.assertEqual(result.bonus_increase, 0)
        self.assertEqual(result.new_level, 20)
        self.assertFalse(result.is_quick_learner)

    def test_window_measured_from_earliest_known_event(self):
        """Review-needed marks don't move the start of the 24h window."""
        result = memory.apply_known_review(10, [known(2), review(30)], False, now=NOW)
        self.assertEqual(result.bonus_increase, 20)

    def test_third_known_within_48h(self):
        """Two prior known marks within 48h: (10 + 30) * 1.5."""
        result = memory.apply_known_review(20, [known(1), known(40)], False, now=NOW)
        self.assertEqual(result.bonus_increase, 30)
        self.assertEqual(result.total_increase, 60)
        self.assertEqual(result.new_level, 80)
        self.assertTrue(result.reason.startswith(memory.REASON_3X_WITHIN_48H))

    def test_third_known_tier_ignores_interleaved_review(self):
        """The 3x tier only checks timing, not interleaved review marks."""
        result = memory.apply_known_review(0, [known(1), review(2), known(10)], False, now=NOW)
        self.assertEqual(result.bonus_increase, 30)

    def test_four_plus_consistent_known_marks(self):
        """Three prior known marks and nothing else: (10 + 40) * 1.5."""
        result = memory.apply_known_review(20, [known(1), known(2), known(3)], False, now=NOW)
        self.assertEqual(result.bonus_increase, 40)
        self.assertEqual(result.total_increase, 75)
        self.assertEqual(result.new_level, 95)
        self.assertTrue(result.reason.startswith(memory.REASON_4PLUS_CONSISTENT))

    def test_four_plus_broken_by_review_mark(self):
        """A review-needed mark in the window cancels the 4+ bonus."""
        reviews_window = [known(1), review(2), known(3), known(4)]
        result = memory.apply_known_review(20, reviews_window, False, now=NOW)
        self.assertEqual(result.bonus_increase, 0)
        self.assertEqual(result.new_level, 30)
        self.assertFalse(result.is_quick_learner)

    def test_existing_quick_learner_gets_multiplier_without_bonus(self):
        """Quick learners keep the 1.5x multiplier on standard reviews."""
        result = memory.apply_known_review(40, [known(30)], True, now=NOW)
        self.assertEqual(result.bonus_increase, 0)
        self.assertEqual(result.total_increase, 15)
        self.assertEqual(result.new_level, 55)
        self.assertEqual(result.reason, memory.REASON_STANDARD + memory.MULTIPLIER_SUFFIX)
        self.assertTrue(result.is_quick_learner)

    def test_only_review_marks_give_no_bonus(self):
        """Review-needed marks alone never trigger a bonus."""
        result = memory.apply_known_review(0, [review(1), review(2)], False, now=NOW)
        self.assertEqual(result.bonus_increase, 0)
        self.assertEqual(result.new_level, 10)

    def test_level_capped_at_mastery(self):
        """Increases never push the level past 100."""
        result = memory.apply_known_review(95, [known(1), known(2), known(3)], False, now=NOW)
        self.assertEqual(result.new_level, 100)

    def test_disabled_quick_learning_is_base_only(self):
        """Without quick learning every known mark is exactly +10, capped at 100."""
        window = [known(1), known(2), known(3)]
        for level in range(0, 101):
            result = memory.apply_known_review(level, window, False, quick_learning_enabled=False)
            self.assertEqual(result.new_level, min(100, level + 10))
            self.assertEqual(result.reason, memory.REASON_QUICK_LEARNING_DISABLED)

    def test_disabled_quick_learning_keeps_sticky_flag(self):
        """The quick learner flag is never reset."""
        result = memory.apply_known_review(10, [], True, quick_learning_enabled=False)
        self.assertTrue(result.is_quick_learner)
        self.assertEqual(result.multiplier, 1)

    def test_out_of_range_level_raises_error(self):
        """Starred and negative levels must not reach the engine."""
        with self.assertRaises(ValueError):
            memory.apply_known_review(memory.STARRED_LEVEL, [], False, now=NOW)
        with self.assertRaises(ValueError):
            memory.apply_known_review(-1, [], False, now=NOW)

    def test_bonus_tiers_are_mutually_exclusive(self):
        """Every input produces exactly one tier reason."""
        base_reasons = {
            memory.REASON_STANDARD,
            memory.REASON_2X_WITHIN_24H,
            memory.REASON_3X_WITHIN_48H,
            memory.REASON_4PLUS_CONSISTENT,
        }
        windows = [
            [],
            [known(1)],
            [known(30)],
            [known(1), known(2)],
            [known(1), review(2), known(3)],
            [known(1), known(2), known(3)],
            [known(1), known(2), known(3), known(4), known(5)],
            [known(1), known(2), review(3), known(4)],
        ]
        for window in windows:
            for is_quick in (False, True):
                result = memory.apply_known_review(0, window, is_quick, now=NOW)
                base = result.reason.replace(memory.MULTIPLIER_SUFFIX, '')
                self.assertIn(base, base_reasons)
                tier_bonus = {
                    memory.REASON_STANDARD: 0,
                    memory.REASON_2X_WITHIN_24H: 20,
                    memory.REASON_3X_WITHIN_48H: 30,
                    memory.REASON_4PLUS_CONSISTENT: 40,
                }[base]
                self.assertEqual(result.bonus_increase, tier_bonus)

    def test_deterministic(self):
        """Same input, same output."""
        window = [known(1), known(5)]
        first = memory.apply_known_review(33, window, False, now=NOW)
        second = memory.apply_known_review(33, window, False, now=NOW)
        self.assertEqual(first, second)


class MemoryDecayTests(TestCase):
    """Tests for a single day of decay."""

    def test_decay_stays_in_range(self):
        """Decayed levels stay within 0-100."""
        for level in range(0, 101):
            result = memory.decay_one(level)
            self.assertGreaterEqual(result.new_level, 0)
            self.assertLessEqual(result.new_level, 100)

    def test_default_rate_is_one_point(self):
        result = memory.decay_one(50)
        self.assertEqual(result.new_level, 49)
        self.assertEqual(result.amount_decayed, 1)

    def test_floor_at_zero(self):
        """Level 0 stays at 0 but still reports the decay amount."""
        result = memory.decay_one(0)
        self.assertEqual(result.new_level, 0)
        self.assertEqual(result.amount_decayed, 1)

    def test_custom_rate_clamped(self):
        result = memory.decay_one(2, daily_decay_rate=-3)
        self.assertEqual(result.new_level, 0)
        self.assertEqual(result.amount_decayed, 3)

    def test_mastered_and_starred_are_exempt(self):
        self.assertFalse(memory.is_decay_exempt(99))
        self.assertTrue(memory.is_decay_exempt(100))
        self.assertTrue(memory.is_decay_exempt(101))


class MemoryClassifierTests(TestCase):
    """Tests for bucket classification."""

    def test_bucket_boundaries(self):
        cases = {
            0: memory.BUCKET_CRITICAL,
            20: memory.BUCKET_CRITICAL,
            21: memory.BUCKET_LEARNING,
            50: memory.BUCKET_LEARNING,
            51: memory.BUCKET_REVIEWING,
            80: memory.BUCKET_REVIEWING,
            81: memory.BUCKET_WELL_KNOWN,
            99: memory.BUCKET_WELL_KNOWN,
            100: memory.BUCKET_MASTERED,
            101: memory.BUCKET_MASTERED,
        }
        for level, bucket in cases.items():
            self.assertEqual(memory.classify(level), bucket, f"Level {level}")

    def test_bucket_ranges(self):
        self.assertEqual(memory.bucket_range(memory.BUCKET_CRITICAL), (0, 21))
        self.assertEqual(memory.bucket_range(memory.BUCKET_LEARNING), (21, 51))
        self.assertEqual(memory.bucket_range(memory.BUCKET_REVIEWING), (51, 81))
        self.assertEqual(memory.bucket_range(memory.BUCKET_WELL_KNOWN), (81, 100))
        self.assertEqual(memory.bucket_range(memory.BUCKET_MASTERED), (100, None))

    def test_ranges_agree_with_classify(self):
        """Every level falls in the range of the bucket it's classified into."""
        for level in range(0, 102):
            lower, upper = memory.bucket_range(memory.classify(level))
            self.assertGreaterEqual(level, lower)
            if upper is not None:
                self.assertLess(level, upper)

    def test_unknown_bucket_raises_error(self):
        with self.assertRaises(ValueError):
            memory.bucket_range('forgotten')

    def test_format_memory_level(self):
        self.assertEqual(memory.format_memory_level(15), '🔴 15%')
        self.assertEqual(memory.format_memory_level(100), '🏆 100%')


class MemoryPriorityTests(TestCase):
    """Tests for the feed priority score."""

    def test_urgency_boundaries(self):
        """Below 20 is 3.0; 20 through 50 inclusive is 1.5."""
        self.assertEqual(memory.urgency_multiplier(19), 3.0)
        self.assertEqual(memory.urgency_multiplier(20), 1.5)
        self.assertEqual(memory.urgency_multiplier(50), 1.5)
        self.assertEqual(memory.urgency_multiplier(51), 1.0)
        self.assertEqual(memory.urgency_multiplier(80), 1.0)
        self.assertEqual(memory.urgency_multiplier(81), 0.3)

    def test_length_factors(self):
        self.assertEqual(memory.length_factor(4), 0.8)
        self.assertEqual(memory.length_factor(5), 1.0)
        self.assertEqual(memory.length_factor(7), 1.0)
        self.assertEqual(memory.length_factor(8), 1.2)
        self.assertEqual(memory.length_factor(10), 1.2)
        self.assertEqual(memory.length_factor(11), 1.5)

    def test_priority_formula(self):
        """(100 - level) * urgency * length factor."""
        self.assertAlmostEqual(memory.priority_score(10, 5), 270.0)
        self.assertAlmostEqual(memory.priority_score(20, 5), 120.0)
        self.assertAlmostEqual(memory.priority_score(60, 8), 48.0)
        self.assertAlmostEqual(memory.priority_score(85, 13), 6.75)

    def test_priority_non_increasing_in_level(self):
        """Higher memory never means higher urgency for the same length."""
        for length in (3, 6, 9, 12):
            scores = [memory.priority_score(level, length) for level in range(0, 101)]
            for higher, lower in zip(scores, scores[1:]):
                self.assertGreaterEqual(higher, lower)

    def test_priority_nonnegative(self):
        self.assertEqual(memory.priority_score(100, 5), 0)
        self.assertEqual(memory.priority_score(101, 5), 0)

    def test_sort_key_breaks_ties_by_id(self):
        """Equal scores fall back to ascending id."""
        items = [(7, 30, 5), (3, 30, 5), (5, 10, 5)]
        ordered = sorted(items, key=lambda i: memory.priority_sort_key(i[1], i[2], i[0]))
        self.assertEqual([i[0] for i in ordered], [5, 3, 7])

    def test_difficulty_for_length(self):
        self.assertEqual(memory.difficulty_for_length(4), memory.DIFFICULTY_EASY)
        self.assertEqual(memory.difficulty_for_length(7), memory.DIFFICULTY_MEDIUM)
        self.assertEqual(memory.difficulty_for_length(10), memory.DIFFICULTY_HARD)
        self.assertEqual(memory.difficulty_for_length(11), memory.DIFFICULTY_VERY_HARD)


class MemoryStreakTests(TestCase):
    """Tests for goal streaks."""

    def _days(self, offsets, achieved=True):
        return [Stat(TODAY - timedelta(days=o), achieved) for o in offsets]

    def test_empty_history(self):
        self.assertEqual(memory.current_streak([], today=TODAY), 0)
        self.assertEqual(memory.longest_streak([]), 0)

    def test_consecutive_days_ending_today(self):
        stats = self._days(range(5))
        self.assertEqual(memory.current_streak(stats, today=TODAY), 5)

    def test_gap_truncates_streak(self):
        stats = self._days([0, 1, 3, 4])
        self.assertEqual(memory.current_streak(stats, today=TODAY), 2)

    def test_unmet_goal_stops_streak(self):
        stats = self._days([0, 2]) + self._days([1], achieved=False)
        self.assertEqual(memory.current_streak(stats, today=TODAY), 1)

    def test_no_goal_today_means_no_streak(self):
        stats = self._days([1, 2, 3])
        self.assertEqual(memory.current_streak(stats, today=TODAY), 0)

    def test_unsorted_input(self):
        stats = list(reversed(self._days(range(3))))
        self.assertEqual(memory.current_streak(stats, today=TODAY), 3)

    def test_future_days_ignored(self):
        stats = self._days([-1, 0, 1])
        self.assertEqual(memory.current_streak(stats, today=TODAY), 2)

    def test_longest_streak_finds_longest_run(self):
        stats = self._days([20, 19, 18]) + self._days([10, 9, 8, 7, 6]) + self._days([0])
        self.assertEqual(memory.longest_streak(stats), 5)


class MemoryMasteryEstimateTests(TestCase):
    """Tests for time-to-mastery projections."""

    def test_net_positive_progress(self):
        """Level 90, +2/day, -1/day decay: 10 days."""
        estimate = memory.estimate_time_to_mastery(90, 2, -1, today=TODAY)
        self.assertTrue(estimate.achievable)
        self.assertEqual(estimate.estimated_days, 10)
        self.assertEqual(estimate.estimated_date, TODAY + timedelta(days=10))
        self.assertIsNone(estimate.days_until_forgotten)

    def test_not_achievable(self):
        """Level 50, +0.5/day against -1/day: forgotten in 50 days."""
        estimate = memory.estimate_time_to_mastery(50, 0.5, -1, today=TODAY)
        self.assertFalse(estimate.achievable)
        self.assertEqual(estimate.estimated_days, -1)
        self.assertIsNone(estimate.estimated_date)
        self.assertEqual(estimate.days_until_forgotten, 50)

    def test_already_mastered(self):
        estimate = memory.estimate_time_to_mastery(100, 0, -1, today=TODAY)
        self.assertEqual(estimate.estimated_days, 0)
        self.assertEqual(estimate.estimated_date, TODAY)

    def test_rounds_days_up(self):
        estimate = memory.estimate_time_to_mastery(0, 4, -1, today=TODAY)
        self.assertEqual(estimate.estimated_days, 34)

    def test_no_decay_and_no_gain(self):
        """Without decay a stalled word is never forgotten."""
        estimate = memory.estimate_time_to_mastery(40, 0, 0, today=TODAY)
        self.assertFalse(estimate.achievable)
        self.assertIsNone(estimate.days_until_forgotten)


# =============================================================================
# Model Tests
# =============================================================================

class WordModelTests(TestCase):
    """Tests for the Word model."""

    def test_length_and_difficulty_set_on_create(self):
        word = Word.objects.create(word_text='  Serendipity ')
        self.assertEqual(word.word_text, 'Serendipity')
        self.assertEqual(word.word_text_lower, 'serendipity')
        self.assertEqual(word.word_length, 11)
        self.assertEqual(word.difficulty_level, Word.Difficulty.VERY_HARD)

    def test_word_text_is_unique_case_insensitive(self):
        Word.objects.create(word_text='Cat')
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Word.objects.create(word_text='cat')


class UserWordModelTests(TestCase):
    """Tests for the UserWord model."""

    def setUp(self):
        self.user = User.objects.create_user(username='testuser', password='testpass123')
        self.word = Word.objects.create(word_text='house')

    def test_defaults(self):
        user_word = UserWord.objects.create(user=self.user, word=self.word)
        self.assertEqual(user_word.memory_level, 0)
        self.assertFalse(user_word.is_quick_learner)
        self.assertFalse(user_word.is_archived)
        self.assertEqual(user_word.version, 0)
        self.assertEqual(user_word.classification, memory.BUCKET_CRITICAL)

    def test_memory_level_above_starred_rejected(self):
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                UserWord.objects.create(user=self.user, word=self.word, memory_level=102)

    def test_priority_score(self):
        user_word = UserWord.objects.create(user=self.user, word=self.word, memory_level=10)
        self.assertAlmostEqual(user_word.priority_score(), 270.0)


class DailyStatsModelTests(TestCase):
    """Tests for DailyStats counters."""

    def setUp(self):
        self.user = User.objects.create_user(username='testuser', password='testpass123')

    def test_record_creates_and_increments(self):
        DailyStats.record(self.user, TODAY, words_reviewed=1, memory_points_gained=10)
        stat = DailyStats.record(self.user, TODAY, words_reviewed=1, memory_points_gained=45)
        self.assertEqual(stat.words_reviewed, 2)
        self.assertEqual(stat.memory_points_gained, 55)
        self.assertEqual(DailyStats.objects.filter(user=self.user).count(), 1)

    def test_goal_achieved_when_reached(self):
        stat = DailyStats.record(self.user, TODAY, daily_goal=2, words_reviewed=1)
        self.assertFalse(stat.daily_goal_achieved)
        stat = DailyStats.record(self.user, TODAY, daily_goal=2, words_reviewed=1)
        self.assertTrue(stat.daily_goal_achieved)


# =============================================================================
# Review Submission Tests
# =============================================================================

class ReviewTestMixin:
    """Shared fixtures for tests that go through the store."""

    def setUp(self):
        self.user = User.objects.create_user(username='testuser', password='testpass123')
        self.store = DjangoMemoryStore()
        self.user_word = self.make_user_word('serendipity')

    def make_user_word(self, text, level=0, user=None, **kwargs):
        word = Word.objects.create(word_text=text)
        return UserWord.objects.create(
            user=user or self.user,
            word=word,
            memory_level=level,
            **kwargs
        )

    def add_history(self, user_word, action, reviewed_at, change=0):
        return ReviewHistory.objects.create(
            user=user_word.user,
            word=user_word.word,
            user_word=user_word,
            action_type=action,
            memory_before=user_word.memory_level,
            memory_after=user_word.memory_level + change,
            memory_change=change,
            reviewed_at=reviewed_at,
        )


class MarkKnownTests(ReviewTestMixin, TestCase):
    """Tests for marking words as known."""

    def test_first_mark_persists_state(self):
        user_word, increase = reviews.mark_known(
            self.store, self.user, self.user_word.pk, clock=fixed_clock()
        )
        self.assertEqual(increase.new_level, 10)
        self.user_word.refresh_from_db()
        self.assertEqual(self.user_word.memory_level, 10)
        self.assertEqual(self.user_word.version, 1)
        self.assertEqual(self.user_word.times_marked_known, 1)
        self.assertEqual(self.user_word.times_reviewed, 1)
        self.assertEqual(self.user_word.last_reviewed_at, NOW)

        entry = ReviewHistory.objects.get(user_word=self.user_word)
        self.assertEqual(entry.action_type, ReviewHistory.ActionType.MARKED_KNOWN)
        self.assertEqual(entry.memory_before, 0)
        self.assertEqual(entry.memory_after, 10)
        self.assertEqual(entry.reason, memory.REASON_STANDARD)

        stat = DailyStats.objects.get(user=self.user, stat_date=TODAY)
        self.assertEqual(stat.words_reviewed, 1)
        self.assertEqual(stat.memory_points_gained, 10)

    def test_second_mark_within_24h_scenario(self):
        """0 -> 10 -> 55 with the quick learner flag set on the second mark."""
        reviews.mark_known(self.store, self.user, self.user_word.pk, clock=fixed_clock())
        user_word, increase = reviews.mark_known(
            self.store, self.user, self.user_word.pk,
            clock=fixed_clock(NOW + timedelta(hours=2))
        )
        self.assertEqual(user_word.memory_level, 55)
        self.assertTrue(user_word.is_quick_learner)
        self.assertEqual(increase.bonus_increase, 20)

    def test_four_plus_consistent_from_history(self):
        self.user_word.memory_level = 20
        self.user_word.save()
        for hours in (1, 2, 3):
            self.add_history(self.user_word, memory.ACTION_MARKED_KNOWN, NOW - timedelta(hours=hours))

        user_word, increase = reviews.mark_known(
            self.store, self.user, self.user_word.pk, clock=fixed_clock()
        )
        self.assertEqual(increase.bonus_increase, 40)
        self.assertEqual(user_word.memory_level, 95)

    def test_events_outside_window_ignored(self):
        self.add_history(self.user_word, memory.ACTION_MARKED_KNOWN, NOW - timedelta(hours=49))
        _, increase = reviews.mark_known(
            self.store, self.user, self.user_word.pk, clock=fixed_clock()
        )
        self.assertEqual(increase.reason, memory.REASON_STANDARD)

    def test_skipped_events_not_in_window(self):
        """Only known and review-needed marks count toward bonuses."""
        self.user_word.memory_level = 20
        self.user_word.save()
        for hours in (1, 2, 3):
            self.add_history(self.user_word, memory.ACTION_MARKED_KNOWN, NOW - timedelta(hours=hours))
        self.add_history(self.user_word, 'skipped', NOW - timedelta(hours=4))

        _, increase = reviews.mark_known(
            self.store, self.user, self.user_word.pk, clock=fixed_clock()
        )
        self.assertEqual(increase.bonus_increase, 40)

    def test_quick_learning_disabled_setting(self):
        UserSettings.objects.create(user=self.user, quick_learning_enabled=False)
        reviews.mark_known(self.store, self.user, self.user_word.pk, clock=fixed_clock())
        user_word, increase = reviews.mark_known(
            self.store, self.user, self.user_word.pk,
            clock=fixed_clock(NOW + timedelta(hours=1))
        )
        self.assertEqual(user_word.memory_level, 20)
        self.assertFalse(user_word.is_quick_learner)

    def test_auto_archive_mastered(self):
        UserSettings.objects.create(user=self.user, auto_archive_mastered=True)
        self.user_word.memory_level = 95
        self.user_word.save()

        user_word, _ = reviews.mark_known(
            self.store, self.user, self.user_word.pk, clock=fixed_clock()
        )
        self.assertEqual(user_word.memory_level, 100)
        self.assertTrue(user_word.is_archived)
        self.assertEqual(DailyStats.objects.get(user=self.user).words_mastered, 1)

    def test_daily_goal_reached(self):
        UserSettings.objects.create(user=self.user, daily_review_goal=2)
        other = self.make_user_word('cat')
        reviews.mark_known(self.store, self.user, self.user_word.pk, clock=fixed_clock())
        reviews.mark_known(self.store, self.user, other.pk, clock=fixed_clock())
        self.assertTrue(DailyStats.objects.get(user=self.user).daily_goal_achieved)

    def test_starred_word_unchanged(self):
        self.user_word.memory_level = memory.STARRED_LEVEL
        self.user_word.save()

        user_word, increase = reviews.mark_known(
            self.store, self.user, self.user_word.pk, clock=fixed_clock()
        )
        self.assertIsNone(increase)
        self.assertEqual(user_word.memory_level, memory.STARRED_LEVEL)
        self.assertTrue(ReviewHistory.objects.filter(user_word=self.user_word).exists())

    def test_other_users_word_not_found(self):
        other_user = User.objects.create_user(username='other', password='testpass123')
        with self.assertRaises(RecordNotFound):
            reviews.mark_known(self.store, other_user, self.user_word.pk, clock=fixed_clock())

    def test_future_dated_history_rejected(self):
        self.add_history(self.user_word, memory.ACTION_MARKED_KNOWN, NOW + timedelta(hours=1))
        with self.assertRaises(MalformedReviewHistory):
            reviews.mark_known(self.store, self.user, self.user_word.pk, clock=fixed_clock())
        self.user_word.refresh_from_db()
        self.assertEqual(self.user_word.memory_level, 0)

    @override_settings(WORDMASTER_MAX_WRITE_ATTEMPTS=2)
    def test_persistent_conflict_raises(self):
        store = ConflictingStore()
        with patch.object(store, 'recent_reviews', wraps=store.recent_reviews) as recent:
            with self.assertRaises(ConcurrentWriteConflict):
                reviews.mark_known(store, self.user, self.user_word.pk, clock=fixed_clock())
        self.assertEqual(recent.call_count, 2)
        self.user_word.refresh_from_db()
        self.assertEqual(self.user_word.memory_level, 0)


class ConcurrentDecayAndReviewTests(ReviewTestMixin, TestCase):
    """A decay landing between a review's read and write must not be lost."""

    def test_review_retries_after_decay(self):
        self.user_word.memory_level = 30
        self.user_word.save()
        base_store = self.store

        class RacingStore(DjangoMemoryStore):
            raced = False

            def save_known_review(self, user_word, increase, now, archive=False, daily_goal=None,
                                  session_id=''):
                if not self.raced:
                    self.raced = True
                    # Decay commits after the review read the record
                    decay_record(base_store, user_word.pk, TODAY, lambda user: -1, clock=fixed_clock())
                return super().save_known_review(
                    user_word, increase, now, archive, daily_goal, session_id
                )

        user_word, increase = reviews.mark_known(
            RacingStore(), self.user, self.user_word.pk, clock=fixed_clock()
        )

        # 30 - 1 (decay) + 10 (review): both effects land
        self.assertEqual(user_word.memory_level, 39)
        self.assertEqual(user_word.last_decayed_on, TODAY)
        self.assertEqual(user_word.version, 2)
        actions = set(ReviewHistory.objects.filter(
            user_word=self.user_word
        ).values_list('action_type', flat=True))
        self.assertEqual(actions, {'system_decay', 'marked_known'})

    def test_decay_retries_after_review(self):
        self.user_word.memory_level = 30
        self.user_word.save()
        user = self.user

        class RacingStore(DjangoMemoryStore):
            raced = False

            def save_decay(self, user_word, result, day, now):
                if not self.raced:
                    self.raced = True
                    reviews.mark_known(DjangoMemoryStore(), user, user_word.pk, clock=fixed_clock())
                return super().save_decay(user_word, result, day, now)

        result = decay_record(RacingStore(), self.user_word.pk, TODAY, lambda u: -1, clock=fixed_clock())

        self.assertEqual(result.new_level, 39)
        self.user_word.refresh_from_db()
        self.assertEqual(self.user_word.memory_level, 39)


class OtherReviewActionTests(ReviewTestMixin, TestCase):
    """Tests for review-needed, skip, star, and adding words."""

    def test_mark_for_review_keeps_level(self):
        self.user_word.memory_level = 40
        self.user_word.save()

        user_word = reviews.mark_for_review(self.store, self.user, self.user_word.pk, clock=fixed_clock())
        self.assertEqual(user_word.memory_level, 40)
        self.assertEqual(user_word.times_marked_review, 1)
        self.assertEqual(user_word.times_reviewed, 1)
        self.assertEqual(
            ReviewHistory.objects.get(user_word=self.user_word).action_type,
            ReviewHistory.ActionType.MARKED_REVIEW
        )
        self.assertEqual(DailyStats.objects.get(user=self.user).words_marked_review, 1)

    def test_review_mark_blocks_consistency_bonus(self):
        self.user_word.memory_level = 20
        self.user_word.save()
        for hours in (2, 3, 4):
            self.add_history(self.user_word, memory.ACTION_MARKED_KNOWN, NOW - timedelta(hours=hours))
        reviews.mark_for_review(
            self.store, self.user, self.user_word.pk,
            clock=fixed_clock(NOW - timedelta(hours=1))
        )

        _, increase = reviews.mark_known(self.store, self.user, self.user_word.pk, clock=fixed_clock())
        self.assertEqual(increase.bonus_increase, 0)

    def test_skip_records_event(self):
        reviews.skip_word(self.store, self.user, self.user_word.pk, clock=fixed_clock())
        entry = ReviewHistory.objects.get(user_word=self.user_word)
        self.assertEqual(entry.action_type, ReviewHistory.ActionType.SKIPPED)
        self.assertFalse(DailyStats.objects.exists())

    def test_star_and_unstar(self):
        user_word = reviews.set_starred(self.store, self.user, self.user_word.pk, True, clock=fixed_clock())
        self.assertEqual(user_word.memory_level, memory.STARRED_LEVEL)
        self.assertTrue(user_word.is_starred)

        # Starring again is a no-op
        user_word = reviews.set_starred(self.store, self.user, self.user_word.pk, True, clock=fixed_clock())
        self.assertEqual(user_word.version, 1)

        user_word = reviews.set_starred(self.store, self.user, self.user_word.pk, False, clock=fixed_clock())
        self.assertEqual(user_word.memory_level, memory.MASTERED_LEVEL)

    def test_add_words(self):
        Word.objects.create(word_text='Ocean')
        created = reviews.add_words(self.user, ['ocean', 'river', '  ', 'serendipity'])
        self.assertEqual([uw.word.word_text_lower for uw in created], ['ocean', 'river'])
        self.assertEqual(Word.objects.filter(word_text_lower='ocean').count(), 1)
        self.assertTrue(all(uw.memory_level == 0 for uw in created))

    def test_add_words_rejects_too_long_text(self):
        with self.assertRaises(InvalidWord):
            reviews.add_words(self.user, ['ocean', 'x' * 201])
        self.assertFalse(Word.objects.filter(word_text_lower='ocean').exists())

    def test_view_records_event(self):
        reviews.view_word(self.store, self.user, self.user_word.pk, clock=fixed_clock())
        entry = ReviewHistory.objects.get(user_word=self.user_word)
        self.assertEqual(entry.action_type, ReviewHistory.ActionType.VIEWED)
        self.user_word.refresh_from_db()
        self.assertEqual(self.user_word.times_reviewed, 0)
        self.assertFalse(DailyStats.objects.exists())

    def test_viewed_events_not_in_review_window(self):
        reviews.view_word(self.store, self.user, self.user_word.pk, clock=fixed_clock())
        _, increase = reviews.mark_known(self.store, self.user, self.user_word.pk, clock=fixed_clock())
        self.assertEqual(increase.reason, memory.REASON_STANDARD)

    def test_session_id_recorded(self):
        reviews.mark_known(
            self.store, self.user, self.user_word.pk, clock=fixed_clock(), session_id='s1'
        )
        reviews.mark_for_review(
            self.store, self.user, self.user_word.pk, clock=fixed_clock(), session_id='s1'
        )
        sessions = set(ReviewHistory.objects.values_list('session_id', flat=True))
        self.assertEqual(sessions, {'s1'})


# =============================================================================
# Decay Batch Tests
# =============================================================================

class DecayBatchTests(ReviewTestMixin, TestCase):
    """Tests for the daily decay run."""

    def setUp(self):
        super().setUp()
        self.user_word.memory_level = 30
        self.user_word.save()
        self.zero = self.make_user_word('zero', level=0)
        self.mastered = self.make_user_word('mastered', level=100)
        self.starred = self.make_user_word('starred', level=101)
        self.archived = self.make_user_word('archived', level=50, is_archived=True)

    def levels(self):
        return {
            uw.word.word_text: uw.memory_level
            for uw in UserWord.objects.select_related('word')
        }

    def test_decays_eligible_records_only(self):
        summary = run_daily_decay(self.store, day=TODAY, clock=fixed_clock())

        self.assertEqual(self.levels(), {
            'serendipity': 29,
            'zero': 0,
            'mastered': 100,
            'starred': 101,
            'archived': 50,
        })
        self.assertEqual(summary.records_processed, 2)
        self.assertEqual(summary.records_decayed, 2)
        self.assertEqual(summary.points_decayed, 2)
        self.assertEqual(summary.errors_count, 0)

    def test_marks_decay_date(self):
        run_daily_decay(self.store, day=TODAY, clock=fixed_clock())
        self.zero.refresh_from_db()
        self.assertEqual(self.zero.last_decayed_on, TODAY)

    def test_idempotent_per_day(self):
        run_daily_decay(self.store, day=TODAY, clock=fixed_clock())
        summary = run_daily_decay(self.store, day=TODAY, clock=fixed_clock())

        self.assertEqual(self.levels()['serendipity'], 29)
        self.assertEqual(summary.records_processed, 0)

    def test_next_day_decays_again(self):
        run_daily_decay(self.store, day=TODAY, clock=fixed_clock())
        run_daily_decay(self.store, day=TODAY + timedelta(days=1), clock=fixed_clock())
        self.assertEqual(self.levels()['serendipity'], 28)

    def test_uses_user_decay_rate(self):
        UserSettings.objects.create(user=self.user, daily_decay_rate=-3)
        run_daily_decay(self.store, day=TODAY, clock=fixed_clock())
        self.assertEqual(self.levels()['serendipity'], 27)

    def test_history_and_stats_for_changed_levels(self):
        run_daily_decay(self.store, day=TODAY, clock=fixed_clock())

        decay_entries = ReviewHistory.objects.filter(action_type=ReviewHistory.ActionType.SYSTEM_DECAY)
        self.assertEqual(decay_entries.count(), 1)
        self.assertEqual(decay_entries.get().memory_change, -1)
        self.assertEqual(DailyStats.objects.get(user=self.user, stat_date=TODAY).memory_points_lost, 1)

    def test_dry_run_changes_nothing(self):
        summary = run_daily_decay(self.store, day=TODAY, dry_run=True, clock=fixed_clock())
        self.assertEqual(summary.records_processed, 2)
        self.assertEqual(summary.records_decayed, 0)
        self.assertEqual(self.levels()['serendipity'], 30)

    def test_shards_split_records(self):
        shard = self.user_word.pk % 2
        run_daily_decay(self.store, day=TODAY, shard=shard, shards=2, clock=fixed_clock())
        self.assertEqual(self.levels()['serendipity'], 29)
        self.zero.refresh_from_db()
        self.assertIsNone(self.zero.last_decayed_on)

        run_daily_decay(self.store, day=TODAY, shard=1 - shard, shards=2, clock=fixed_clock())
        self.zero.refresh_from_db()
        self.assertEqual(self.zero.last_decayed_on, TODAY)

    def test_failed_record_isolated_and_retried(self):
        failing_pk = self.user_word.pk

        class FlakyStore(DjangoMemoryStore):
            def save_decay(self, user_word, result, day, now):
                if user_word.pk == failing_pk:
                    raise DatabaseError('disk full')
                return super().save_decay(user_word, result, day, now)

        summary = run_daily_decay(FlakyStore(), day=TODAY, clock=fixed_clock())
        self.assertEqual(summary.errors_count, 1)
        self.assertEqual(summary.errors[0]['user_word_id'], failing_pk)
        self.assertEqual(summary.records_decayed, 1)
        self.assertEqual(self.levels()['serendipity'], 30)

        # The rerun picks up only the failed record
        summary = run_daily_decay(self.store, day=TODAY, clock=fixed_clock())
        self.assertEqual(summary.records_processed, 1)
        self.assertEqual(self.levels()['serendipity'], 29)
        self.assertEqual(self.levels()['zero'], 0)

    def test_unexpected_record_error_isolated(self):
        failing_pk = self.zero.pk

        class BrokenStore(DjangoMemoryStore):
            def get_for_decay(self, pk):
                if pk == failing_pk:
                    raise ValueError('corrupt row')
                return super().get_for_decay(pk)

        summary = run_daily_decay(BrokenStore(), day=TODAY, clock=fixed_clock())
        self.assertEqual(summary.errors_count, 1)
        self.assertIn('corrupt row', summary.errors[0]['error'])
        self.assertEqual(self.levels()['serendipity'], 29)

    def test_decay_record_skips_already_decayed(self):
        self.assertIsNotNone(decay_record(self.store, self.user_word.pk, TODAY, lambda u: -1))
        self.assertIsNone(decay_record(self.store, self.user_word.pk, TODAY, lambda u: -1))


class ApplyMemoryDecayCommandTests(ReviewTestMixin, TestCase):
    """Tests for the apply_memory_decay management command."""

    def setUp(self):
        super().setUp()
        self.user_word.memory_level = 30
        self.user_word.save()

    def test_applies_decay_and_logs_success(self):
        out = StringIO()
        call_command('apply_memory_decay', '--date=2025-06-15', stdout=out)

        self.assertIn('Decayed 1 word(s) for 2025-06-15', out.getvalue())
        self.user_word.refresh_from_db()
        self.assertEqual(self.user_word.memory_level, 29)

        log = CommandExecutionLog.get_last_run('apply_memory_decay')
        self.assertEqual(log.status, CommandExecutionLog.Status.SUCCESS)
        self.assertEqual(log.run_date, date(2025, 6, 15))
        self.assertEqual(log.records_decayed, 1)

    def test_rerun_same_date_is_noop(self):
        call_command('apply_memory_decay', '--date=2025-06-15', stdout=StringIO())
        out = StringIO()
        call_command('apply_memory_decay', '--date=2025-06-15', stdout=out)

        self.assertIn('Decayed 0 word(s)', out.getvalue())
        self.user_word.refresh_from_db()
        self.assertEqual(self.user_word.memory_level, 29)

    def test_default_date_is_today(self):
        call_command('apply_memory_decay', stdout=StringIO())
        self.user_word.refresh_from_db()
        self.assertEqual(self.user_word.memory_level, 29)

    def test_dry_run(self):
        out = StringIO()
        call_command('apply_memory_decay', '--dry-run', stdout=out)

        self.assertIn('[DRY RUN] Would decay 1 word(s)', out.getvalue())
        self.assertFalse(CommandExecutionLog.objects.exists())
        self.user_word.refresh_from_db()
        self.assertEqual(self.user_word.memory_level, 30)

    def test_record_errors_logged_as_failure(self):
        out, err = StringIO(), StringIO()
        with patch.object(DjangoMemoryStore, 'save_decay', side_effect=DatabaseError('locked')):
            call_command('apply_memory_decay', '--date=2025-06-15', stdout=out, stderr=err)

        self.assertIn('locked', err.getvalue())
        log = CommandExecutionLog.get_last_run('apply_memory_decay')
        self.assertEqual(log.status, CommandExecutionLog.Status.FAILURE)
        self.assertEqual(log.errors_count, 1)

    def test_crash_logged_and_raised(self):
        with patch(
            'wordmaster.management.commands.apply_memory_decay.run_daily_decay',
            side_effect=RuntimeError('boom')
        ):
            with self.assertRaises(RuntimeError):
                call_command('apply_memory_decay', stdout=StringIO())

        log = CommandExecutionLog.get_last_run('apply_memory_decay')
        self.assertEqual(log.status, CommandExecutionLog.Status.FAILURE)
        self.assertIn('boom', log.error_message)

    def test_invalid_date(self):
        with self.assertRaises(CommandError):
            call_command('apply_memory_decay', '--date=15/06/2025', stdout=StringIO())

    def test_invalid_shard(self):
        with self.assertRaises(CommandError):
            call_command('apply_memory_decay', '--shard=2', '--shards=2', stdout=StringIO())

    def test_status_without_history(self):
        out = StringIO()
        call_command('apply_memory_decay', '--status', stdout=out)
        self.assertIn('No execution history found.', out.getvalue())
        self.assertIn('Words subject to decay: 1', out.getvalue())

    def test_status_after_run(self):
        call_command('apply_memory_decay', '--date=2025-06-15', stdout=StringIO())
        out = StringIO()
        call_command('apply_memory_decay', '--status', stdout=out)
        self.assertIn('Status: success', out.getvalue())
        self.assertIn('Words decayed: 1', out.getvalue())


# =============================================================================
# Feed & Stats Tests
# =============================================================================

class FeedTests(ReviewTestMixin, TestCase):
    """Tests for building the review feed."""

    def setUp(self):
        self.user = User.objects.create_user(username='testuser', password='testpass123')
        self.store = DjangoMemoryStore()

    def ids(self, page):
        return [entry.user_word.pk for entry in page.entries]

    def test_priority_order(self):
        cat = self.make_user_word('cat', level=10)            # 216
        elephant = self.make_user_word('elephant', level=10)  # 324
        house = self.make_user_word('house', level=60)        # 40
        long_word = self.make_user_word('extraordinary', level=85)  # 6.75

        page = build_feed(self.user)
        self.assertEqual(self.ids(page), [elephant.pk, cat.pk, house.pk, long_word.pk])
        self.assertAlmostEqual(page.entries[0].priority_score, 324.0)
        self.assertEqual(page.entries[0].classification, memory.BUCKET_CRITICAL)

    def test_excludes_archived_mastered_and_starred(self):
        visible = self.make_user_word('visible', level=30)
        self.make_user_word('archived', level=30, is_archived=True)
        self.make_user_word('mastered', level=100)
        self.make_user_word('starred', level=101)
        self.make_user_word('theirs', level=30, user=User.objects.create_user(username='other'))

        page = build_feed(self.user)
        self.assertEqual(self.ids(page), [visible.pk])
        self.assertEqual(page.total, 1)

    def test_bucket_filter(self):
        critical = self.make_user_word('low', level=20)
        learning = self.make_user_word('mid', level=21)
        self.make_user_word('high', level=90)

        self.assertEqual(self.ids(build_feed(self.user, bucket=memory.BUCKET_CRITICAL)), [critical.pk])
        self.assertEqual(self.ids(build_feed(self.user, bucket=memory.BUCKET_LEARNING)), [learning.pk])
        self.assertEqual(build_feed(self.user, bucket=memory.BUCKET_MASTERED).total, 0)

    def test_difficulty_filter(self):
        easy = self.make_user_word('cat', level=10)
        self.make_user_word('elephant', level=10)
        page = build_feed(self.user, difficulty=memory.DIFFICULTY_EASY)
        self.assertEqual(self.ids(page), [easy.pk])

    def test_stable_pagination_for_equal_scores(self):
        words = [self.make_user_word(f'word{i}', level=30) for i in range(5)]
        expected = sorted(uw.pk for uw in words)

        first = build_feed(self.user, page=0, limit=2)
        second = build_feed(self.user, page=1, limit=2)
        last = build_feed(self.user, page=2, limit=2)

        self.assertEqual(self.ids(first) + self.ids(second) + self.ids(last), expected)
        self.assertEqual(first.total, 5)
        self.assertTrue(first.has_more)
        self.assertFalse(last.has_more)

    def test_alphabetical_sort(self):
        banana = self.make_user_word('banana', level=10)
        apple = self.make_user_word('Apple', level=90)
        page = build_feed(self.user, sort=SORT_ALPHABETICAL)
        self.assertEqual(self.ids(page), [apple.pk, banana.pk])

    def test_unknown_sort(self):
        with self.assertRaises(ValueError):
            build_feed(self.user, sort='random')


class StatsTests(ReviewTestMixin, TestCase):
    """Tests for vocabulary stats and projections."""

    def test_vocabulary_stats(self):
        self.user_word.memory_level = 10
        self.user_word.save()
        self.make_user_word('learning', level=30)
        self.make_user_word('mastered', level=100)
        self.make_user_word('starred', level=101)
        self.make_user_word('archived', level=5, is_archived=True)

        result = stats.vocabulary_stats(self.user)
        self.assertEqual(result, {
            'total_vocabulary': 4,
            'active_learning': 2,
            'mastered_words': 1,
            'starred_words': 1,
            'critical_words': 1,
            'average_memory_level': 20,
        })

    def test_memory_health_distribution(self):
        self.user_word.memory_level = 10
        self.user_word.save()
        self.make_user_word('learning', level=30)
        self.make_user_word('mastered', level=100)
        self.make_user_word('starred', level=101)

        result = stats.memory_health_distribution(self.user)
        self.assertEqual(result, {
            memory.BUCKET_CRITICAL: 1,
            memory.BUCKET_LEARNING: 1,
            memory.BUCKET_REVIEWING: 0,
            memory.BUCKET_WELL_KNOWN: 0,
            memory.BUCKET_MASTERED: 2,
        })

    def test_streak_summary(self):
        DailyStats.objects.create(
            user=self.user, stat_date=TODAY, words_reviewed=5, daily_goal_achieved=True
        )
        DailyStats.objects.create(
            user=self.user, stat_date=TODAY - timedelta(days=1), daily_goal_achieved=True
        )

        result = stats.streak_summary(self.user, today=TODAY)
        self.assertEqual(result['current_streak'], 2)
        self.assertEqual(result['longest_streak'], 2)
        self.assertEqual(result['words_reviewed_today'], 5)
        self.assertTrue(result['daily_goal_achieved_today'])

    def test_mastery_projection(self):
        self.user_word.memory_level = 50
        self.user_word.save()
        self.add_history(self.user_word, memory.ACTION_MARKED_KNOWN, NOW - timedelta(days=1), change=10)
        self.add_history(self.user_word, memory.ACTION_MARKED_KNOWN, NOW - timedelta(days=2), change=45)
        self.add_history(self.user_word, memory.ACTION_MARKED_KNOWN, NOW - timedelta(days=9), change=10)

        self.assertAlmostEqual(stats.average_daily_gain(self.user_word, now=NOW), 55 / 7)

        # 50 / (55/7 - 1) = 7.3 -> 8 days
        result = stats.mastery_projection(self.user_word, now=NOW)
        self.assertTrue(result['achievable'])
        self.assertEqual(result['estimated_days'], 8)
        self.assertEqual(result['estimated_date'], '2025-06-23')

    def test_mastery_projection_without_activity(self):
        self.user_word.memory_level = 50
        self.user_word.save()

        result = stats.mastery_projection(self.user_word, now=NOW)
        self.assertFalse(result['achievable'])
        self.assertIsNone(result['estimated_date'])
        self.assertEqual(result['days_until_forgotten'], 50)

    def test_review_history(self):
        DailyStats.objects.create(
            user=self.user, stat_date=TODAY,
            words_reviewed=3, words_marked_known=2, words_marked_review=1
        )
        DailyStats.objects.create(
            user=self.user, stat_date=TODAY - timedelta(days=2),
            words_reviewed=5, words_marked_known=5
        )
        DailyStats.objects.create(
            user=self.user, stat_date=TODAY - timedelta(days=10), words_reviewed=9
        )

        result = stats.review_history(self.user, days=7, today=TODAY)
        self.assertEqual(len(result['days']), 7)
        self.assertEqual(result['days'][0]['date'], '2025-06-09')
        self.assertEqual(result['days'][1], {
            'date': '2025-06-10',
            'words_reviewed': 0,
            'words_marked_known': 0,
            'words_marked_review': 0,
        })
        self.assertEqual(result['days'][4]['words_marked_known'], 5)
        self.assertEqual(result['totals'], {
            'words_reviewed': 8,
            'words_marked_known': 7,
            'words_marked_review': 1,
        })

    def test_decay_impact(self):
        self.user_word.memory_level = 21
        self.user_word.save()
        self.make_user_word('steady', level=50)
        self.make_user_word('fresh', level=81, last_decayed_on=TODAY)
        self.make_user_word('mastered', level=100)
        self.make_user_word('zero', level=0)
        self.make_user_word('archived', level=10, is_archived=True)

        result = stats.decay_impact(self.user, today=TODAY)
        self.assertEqual(result['total_words'], 5)
        self.assertEqual(result['distribution'][memory.BUCKET_LEARNING], {'count': 2, 'percentage': 40})
        self.assertEqual(result['distribution'][memory.BUCKET_REVIEWING], {'count': 0, 'percentage': 0})
        self.assertEqual(result['mastered_words'], 1)
        # 21, 50 and 0 decay tonight; 81 already decayed today
        self.assertEqual(result['due_for_decay'], 3)
        # 21 -> 20 drops from learning to critical
        self.assertEqual(result['dropping_bucket'], 1)
        self.assertEqual(result['points_at_stake'], 2)


# =============================================================================
# View Tests
# =============================================================================

class ApiViewTestMixin(ReviewTestMixin):

    def setUp(self):
        super().setUp()
        self.client = Client()
        self.client.login(username='testuser', password='testpass123')

    def post_json(self, url, data=None):
        return self.client.post(url, json.dumps(data or {}), content_type='application/json')


class ReviewViewTests(ApiViewTestMixin, TestCase):
    """Tests for review action endpoints."""

    def test_mark_known(self):
        response = self.post_json(reverse('mark_known', args=[self.user_word.pk]))
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertTrue(data['success'])
        self.assertEqual(data['word']['memory_level'], 10)
        self.assertEqual(data['reason'], memory.REASON_STANDARD)
        self.assertFalse(data['is_mastered'])

    def test_mark_known_requires_post(self):
        response = self.client.get(reverse('mark_known', args=[self.user_word.pk]))
        self.assertEqual(response.status_code, 405)

    def test_mark_known_other_users_word(self):
        other = self.make_user_word('theirs', user=User.objects.create_user(username='other'))
        response = self.post_json(reverse('mark_known', args=[other.pk]))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['code'], 'record_not_found')

    @override_settings(WORDMASTER_STORE='wordmaster.tests.ConflictingStore')
    def test_mark_known_conflict(self):
        response = self.post_json(reverse('mark_known', args=[self.user_word.pk]))
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['code'], 'concurrent_write_conflict')

    def test_mark_for_review_and_skip(self):
        response = self.post_json(reverse('mark_for_review', args=[self.user_word.pk]))
        self.assertEqual(response.status_code, 200)
        response = self.post_json(reverse('skip_word', args=[self.user_word.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(ReviewHistory.objects.filter(user_word=self.user_word).count(), 2)

    def test_star_word(self):
        response = self.post_json(reverse('star_word', args=[self.user_word.pk]), {'starred': True})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['word']['is_starred'])

    def test_star_word_invalid_payload(self):
        url = reverse('star_word', args=[self.user_word.pk])
        response = self.client.post(url, 'not json', content_type='application/json')
        self.assertEqual(response.status_code, 400)
        response = self.post_json(url, {'starred': 'yes'})
        self.assertEqual(response.status_code, 400)

    def test_mastery_projection(self):
        response = self.client.get(reverse('mastery_projection', args=[self.user_word.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['days_until_forgotten'], 0)

    def test_mark_known_reaching_mastery(self):
        self.user_word.memory_level = 95
        self.user_word.save()

        data = self.post_json(reverse('mark_known', args=[self.user_word.pk])).json()
        self.assertTrue(data['is_mastered'])
        self.assertEqual(data['word']['memory_display'], '🏆 100%')

    def test_mark_known_records_session(self):
        response = self.post_json(
            reverse('mark_known', args=[self.user_word.pk]), {'session_id': 'feed-42'}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['word']['memory_display'], '🔴 10%')
        self.assertEqual(ReviewHistory.objects.get(user_word=self.user_word).session_id, 'feed-42')

    def test_invalid_session_id(self):
        response = self.post_json(
            reverse('mark_for_review', args=[self.user_word.pk]), {'session_id': 'x' * 65}
        )
        self.assertEqual(response.status_code, 400)
        response = self.post_json(reverse('skip_word', args=[self.user_word.pk]), {'session_id': 7})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(ReviewHistory.objects.exists())

    def test_view_word(self):
        response = self.post_json(
            reverse('view_word', args=[self.user_word.pk]), {'session_id': 'feed-42'}
        )
        self.assertEqual(response.status_code, 200)
        entry = ReviewHistory.objects.get(user_word=self.user_word)
        self.assertEqual(entry.action_type, ReviewHistory.ActionType.VIEWED)
        self.assertEqual(entry.session_id, 'feed-42')

    def test_login_required(self):
        self.client.logout()
        response = self.post_json(reverse('mark_known', args=[self.user_word.pk]))
        self.assertEqual(response.status_code, 302)


class FeedViewTests(ApiViewTestMixin, TestCase):
    """Tests for the feed and vocabulary endpoints."""

    def test_feed(self):
        self.make_user_word('cat', level=50)
        response = self.client.get(reverse('feed'))
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['total'], 2)
        self.assertEqual(data['words'][0]['word_text'], 'serendipity')
        self.assertEqual(data['words'][0]['priority_score'], 450.0)
        self.assertFalse(data['has_more'])

    def test_feed_bucket_filter(self):
        self.make_user_word('cat', level=50)
        response = self.client.get(reverse('feed'), {'bucket': 'learning'})
        self.assertEqual([w['word_text'] for w in response.json()['words']], ['cat'])

    def test_feed_invalid_query(self):
        response = self.client.get(reverse('feed'), {'bucket': 'bogus'})
        self.assertEqual(response.status_code, 400)
        response = self.client.get(reverse('feed'), {'limit': 1000})
        self.assertEqual(response.status_code, 400)

    def test_add_words(self):
        response = self.post_json(reverse('add_words'), {'words': ['ocean', 'serendipity']})
        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual([w['word_text'] for w in data['added']], ['ocean'])
        self.assertEqual(data['duplicates'], 1)

    def test_add_words_invalid(self):
        response = self.post_json(reverse('add_words'), {'words': 'ocean'})
        self.assertEqual(response.status_code, 400)

    def test_add_words_too_long(self):
        response = self.post_json(reverse('add_words'), {'words': ['ocean', 'x' * 201]})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'invalid_word')
        self.assertFalse(Word.objects.filter(word_text_lower='ocean').exists())


class StatsAndSettingsViewTests(ApiViewTestMixin, TestCase):
    """Tests for stats, decay status, settings, and health endpoints."""

    def test_stats_overview(self):
        response = self.client.get(reverse('stats_overview'))
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['vocabulary']['total_vocabulary'], 1)
        self.assertEqual(data['distribution']['critical'], 1)
        self.assertEqual(data['streak']['current_streak'], 0)

    def test_decay_status(self):
        response = self.client.get(reverse('decay_status'))
        self.assertIsNone(response.json()['last_run'])

        call_command('apply_memory_decay', '--date=2025-06-15', stdout=StringIO())
        response = self.client.get(reverse('decay_status'))
        data = response.json()
        self.assertEqual(data['last_run']['status'], 'success')
        self.assertEqual(data['last_success']['run_date'], '2025-06-15')

    def test_get_settings_defaults(self):
        response = self.client.get(reverse('settings_api'))
        self.assertEqual(response.json(), {
            'daily_decay_rate': -1,
            'daily_review_goal': 20,
            'quick_learning_enabled': True,
            'auto_archive_mastered': False,
        })

    def test_partial_settings_update(self):
        response = self.post_json(reverse('settings_api'), {'daily_decay_rate': -2})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['daily_decay_rate'], -2)
        self.assertEqual(response.json()['daily_review_goal'], 20)
        self.assertTrue(UserSettings.objects.get(user=self.user).quick_learning_enabled)

    def test_settings_update_validates(self):
        response = self.post_json(reverse('settings_api'), {'daily_decay_rate': -5})
        self.assertEqual(response.status_code, 400)
        self.assertIn('daily_decay_rate', response.json()['fields'])

    def test_health_check(self):
        response = self.client.get(reverse('health_check'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'healthy')
        self.assertFalse(response.json()['decay_current'])

    def test_review_history(self):
        today = utc_day(timezone.now())
        DailyStats.record(
            self.user, today, words_reviewed=3, words_marked_known=2, words_marked_review=1
        )

        response = self.client.get(reverse('review_history'), {'days': 7})
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(len(data['days']), 7)
        self.assertEqual(data['days'][-1], {
            'date': today.isoformat(),
            'words_reviewed': 3,
            'words_marked_known': 2,
            'words_marked_review': 1,
        })
        self.assertEqual(data['totals']['words_marked_known'], 2)

    def test_review_history_window(self):
        response = self.client.get(reverse('review_history'))
        self.assertEqual(len(response.json()['days']), 30)
        response = self.client.get(reverse('review_history'), {'days': 0})
        self.assertEqual(response.status_code, 400)
        response = self.client.get(reverse('review_history'), {'days': 366})
        self.assertEqual(response.status_code, 400)

    def test_decay_impact(self):
        response = self.client.get(reverse('decay_impact'))
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['total_words'], 1)
        self.assertEqual(data['due_for_decay'], 1)
        self.assertEqual(data['distribution']['critical'], {'count': 1, 'percentage': 100})
        self.assertEqual(data['daily_decay_rate'], -1)
