"""Views package for the wordmaster app."""

from .review import mark_known, mark_for_review, skip_word, view_word, star_word, mastery_projection
from .feed import feed, add_words
from .stats import stats_overview, review_history, decay_impact, decay_status
from .settings import settings_api
from .health import health_check

__all__ = [
    # Review
    'mark_known',
    'mark_for_review',
    'skip_word',
    'view_word',
    'star_word',
    'mastery_projection',
    # Feed
    'feed',
    'add_words',
    # Stats
    'stats_overview',
    'review_history',
    'decay_impact',
    'decay_status',
    # Settings
    'settings_api',
    # Health
    'health_check',
]
