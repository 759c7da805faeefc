"""
Review submission: the caller side of the memory engine.

Each handler fetches the current record and its review window, lets the
engine compute, and persists through the store. Memory writes are
compare-and-set; on conflict the whole read-compute-write cycle is redone
with fresh state so a concurrent decay isn't lost.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from . import memory
from .exceptions import ConcurrentWriteConflict, InvalidWord, MalformedReviewHistory
from .models import ReviewHistory, UserWord, Word

logger = logging.getLogger(__name__)

DEFAULT_MAX_WRITE_ATTEMPTS = 3


def max_write_attempts():
    return getattr(settings, 'WORDMASTER_MAX_WRITE_ATTEMPTS', DEFAULT_MAX_WRITE_ATTEMPTS)


def validate_review_window(reviews, now):
    """Reject review windows the engine can't trust."""
    future = [r for r in reviews if r.reviewed_at > now]
    if future:
        raise MalformedReviewHistory(
            f"{len(future)} review(s) dated after {now.isoformat()}",
            details={'review_ids': [getattr(r, 'pk', None) for r in future]},
        )


def mark_known(store, user, user_word_id, clock=timezone.now, session_id=''):
    """
    Mark a word as known and raise its memory level.

    Returns (user_word, increase). increase is None for starred words,
    which only get the event recorded.
    """
    user_settings = store.get_settings(user)
    attempts = max_write_attempts()

    for attempt in range(1, attempts + 1):
        user_word = store.get_user_word(user, user_word_id)
        now = clock()

        if user_word.is_starred:
            store.record_action(
                user_word, ReviewHistory.ActionType.MARKED_KNOWN, now, session_id=session_id
            )
            return user_word, None

        since = now - timedelta(hours=memory.REVIEW_WINDOW_HOURS)
        reviews = store.recent_reviews(user_word, since)
        validate_review_window(reviews, now)

        increase = memory.apply_known_review(
            current_level=user_word.memory_level,
            recent_reviews=reviews,
            is_quick_learner=user_word.is_quick_learner,
            quick_learning_enabled=user_settings.quick_learning_enabled,
            now=now,
        )
        archive = (
            user_settings.auto_archive_mastered
            and increase.new_level >= memory.MASTERED_LEVEL
        )

        entry = store.save_known_review(
            user_word,
            increase,
            now,
            archive=archive,
            daily_goal=user_settings.daily_review_goal,
            session_id=session_id,
        )
        if entry is not None:
            logger.info(
                f"Word {user_word.pk} marked known: {entry.memory_before} -> {entry.memory_after}",
                extra={
                    'user_word_id': user_word.pk,
                    'reason': increase.reason,
                    'attempt': attempt,
                }
            )
            return user_word, increase

        logger.warning(
            f"Write conflict on word {user_word.pk}, retrying",
            extra={'user_word_id': user_word.pk, 'attempt': attempt}
        )

    raise ConcurrentWriteConflict(
        f"Word {user_word_id} changed during {attempts} attempts",
        details={'user_word_id': user_word_id, 'attempts': attempts},
    )


def mark_for_review(store, user, user_word_id, clock=timezone.now, session_id=''):
    """Record that the user wants to see a word again. The level is unchanged."""
    user_settings = store.get_settings(user)
    user_word = store.get_user_word(user, user_word_id)
    store.record_action(
        user_word,
        ReviewHistory.ActionType.MARKED_REVIEW,
        clock(),
        daily_goal=user_settings.daily_review_goal,
        session_id=session_id,
    )
    return user_word


def skip_word(store, user, user_word_id, clock=timezone.now, session_id=''):
    """Record a skipped word."""
    user_word = store.get_user_word(user, user_word_id)
    store.record_action(user_word, ReviewHistory.ActionType.SKIPPED, clock(), session_id=session_id)
    return user_word


def view_word(store, user, user_word_id, clock=timezone.now, session_id=''):
    """Record that a word was shown in the feed. Counters and level are unchanged."""
    user_word = store.get_user_word(user, user_word_id)
    store.record_action(user_word, ReviewHistory.ActionType.VIEWED, clock(), session_id=session_id)
    return user_word


def set_starred(store, user, user_word_id, starred, clock=timezone.now):
    """
    Star or unstar a word.

    Starring parks the word at STARRED_LEVEL, out of decay and the feed.
    Unstarring returns it to MASTERED_LEVEL. Words already in the requested
    state are left alone.
    """
    attempts = max_write_attempts()

    for _ in range(attempts):
        user_word = store.get_user_word(user, user_word_id)
        if user_word.is_starred == starred:
            return user_word

        level = memory.STARRED_LEVEL if starred else memory.MASTERED_LEVEL
        if store.set_memory_level(user_word, level, clock()):
            logger.info(
                f"Word {user_word.pk} {'starred' if starred else 'unstarred'}",
                extra={'user_word_id': user_word.pk}
            )
            return user_word

    raise ConcurrentWriteConflict(
        f"Word {user_word_id} changed during {attempts} attempts",
        details={'user_word_id': user_word_id, 'attempts': attempts},
    )


def add_words(user, word_texts):
    """
    Add words to a user's vocabulary at memory level 0.

    Words already in the vocabulary are skipped. Returns the created
    UserWord rows. Raises InvalidWord, before anything is written, when a
    word is longer than Word.word_text allows.
    """
    max_length = Word._meta.get_field('word_text').max_length
    texts = [text.strip() for text in word_texts]
    too_long = [text for text in texts if len(text) > max_length]
    if too_long:
        raise InvalidWord(
            f"{len(too_long)} word(s) longer than {max_length} characters",
            details={'max_length': max_length},
        )

    created = []
    with transaction.atomic():
        for text in texts:
            if not text:
                continue
            word = Word.objects.filter(word_text_lower=text.lower()).first()
            if word is None:
                word = Word.objects.create(word_text=text)
            user_word, was_created = UserWord.objects.get_or_create(user=user, word=word)
            if was_created:
                created.append(user_word)
    return created
