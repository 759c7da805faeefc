"""Review feed: filtered, priority-ordered, paginated words."""

from dataclasses import dataclass
from typing import List

from django.conf import settings

from . import memory
from .models import UserWord

SORT_PRIORITY = 'priority'
SORT_MEMORY_LEVEL = 'memory_level'
SORT_WORD_LENGTH = 'word_length'
SORT_RECENTLY_ADDED = 'recently_added'
SORT_ALPHABETICAL = 'alphabetical'

SORT_CHOICES = [
    (SORT_PRIORITY, 'Priority'),
    (SORT_MEMORY_LEVEL, 'Memory level'),
    (SORT_WORD_LENGTH, 'Word length'),
    (SORT_RECENTLY_ADDED, 'Recently added'),
    (SORT_ALPHABETICAL, 'Alphabetical'),
]

# Database orderings; every one ends with pk so pages never shuffle
ORDERINGS = {
    SORT_MEMORY_LEVEL: ['memory_level', 'pk'],
    SORT_WORD_LENGTH: ['-word__word_length', 'pk'],
    SORT_RECENTLY_ADDED: ['-first_added_at', '-pk'],
    SORT_ALPHABETICAL: ['word__word_text_lower', 'pk'],
}

DEFAULT_PAGE_SIZE = 50


@dataclass(frozen=True)
class FeedEntry:
    user_word: UserWord
    priority_score: float
    classification: str


@dataclass(frozen=True)
class FeedPage:
    entries: List[FeedEntry]
    total: int
    page: int
    limit: int

    @property
    def has_more(self):
        return self.total > (self.page + 1) * self.limit


def feed_queryset(user, bucket=None, difficulty=None, part_of_speech=None):
    """Words eligible for the feed: not archived, not mastered or starred."""
    queryset = UserWord.objects.filter(
        user=user,
        is_archived=False,
        memory_level__lt=memory.MASTERED_LEVEL,
    )

    if bucket:
        lower, upper = memory.bucket_range(bucket)
        queryset = queryset.filter(memory_level__gte=lower)
        if upper is not None:
            queryset = queryset.filter(memory_level__lt=upper)

    if difficulty:
        queryset = queryset.filter(word__difficulty_level=difficulty)

    if part_of_speech:
        queryset = queryset.filter(word__part_of_speech=part_of_speech)

    return queryset


def build_feed(user, bucket=None, difficulty=None, part_of_speech=None,
               sort=SORT_PRIORITY, page=0, limit=None):
    """
    Build one page of the review feed.

    Priority order is computed in Python from memory level and word length,
    ties broken by UserWord id. The other sorts run in the database.
    """
    if limit is None:
        limit = getattr(settings, 'WORDMASTER_FEED_PAGE_SIZE', DEFAULT_PAGE_SIZE)

    queryset = feed_queryset(user, bucket, difficulty, part_of_speech)
    start = page * limit
    end = start + limit

    if sort == SORT_PRIORITY:
        rows = list(queryset.values_list('pk', 'memory_level', 'word__word_length'))
        total = len(rows)
        rows.sort(key=lambda row: memory.priority_sort_key(row[1], row[2], row[0]))
        page_ids = [row[0] for row in rows[start:end]]
        by_id = UserWord.objects.select_related('word').in_bulk(page_ids)
        user_words = [by_id[pk] for pk in page_ids if pk in by_id]
    else:
        if sort not in ORDERINGS:
            raise ValueError(f"Unknown sort: {sort}")
        total = queryset.count()
        user_words = list(queryset.select_related('word').order_by(*ORDERINGS[sort])[start:end])

    entries = [
        FeedEntry(
            user_word=user_word,
            priority_score=user_word.priority_score(),
            classification=user_word.classification,
        )
        for user_word in user_words
    ]
    return FeedPage(entries=entries, total=total, page=page, limit=limit)
