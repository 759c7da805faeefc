from django import forms
from django.conf import settings

from . import memory
from .feed import DEFAULT_PAGE_SIZE, SORT_CHOICES, SORT_PRIORITY
from .models import UserSettings, Word
from .stats import REVIEW_HISTORY_DAYS

DEFAULT_MAX_PAGE_SIZE = 200


class UserSettingsForm(forms.ModelForm):
    """Form for wordmaster learning settings."""

    class Meta:
        model = UserSettings
        fields = [
            'daily_decay_rate', 'daily_review_goal',
            'quick_learning_enabled', 'auto_archive_mastered',
        ]


class FeedQueryForm(forms.Form):
    """Validates feed query parameters."""
    BUCKET_CHOICES = [('', 'All')] + [
        (bucket, bucket.replace('_', ' ').title())
        for bucket in memory.BUCKETS if bucket != memory.BUCKET_MASTERED
    ]

    bucket = forms.ChoiceField(choices=BUCKET_CHOICES, required=False)
    difficulty = forms.ChoiceField(
        choices=[('', 'All')] + Word.Difficulty.choices,
        required=False
    )
    part_of_speech = forms.ChoiceField(
        choices=[('', 'All')] + Word.PartOfSpeech.choices,
        required=False
    )
    sort = forms.ChoiceField(choices=SORT_CHOICES, required=False)
    page = forms.IntegerField(min_value=0, required=False)
    limit = forms.IntegerField(min_value=1, required=False)

    def clean_sort(self):
        return self.cleaned_data.get('sort') or SORT_PRIORITY

    def clean_page(self):
        page = self.cleaned_data.get('page')
        return 0 if page is None else page

    def clean_limit(self):
        limit = self.cleaned_data.get('limit')
        if limit is None:
            return getattr(settings, 'WORDMASTER_FEED_PAGE_SIZE', DEFAULT_PAGE_SIZE)
        max_limit = getattr(settings, 'WORDMASTER_FEED_MAX_PAGE_SIZE', DEFAULT_MAX_PAGE_SIZE)
        if limit > max_limit:
            raise forms.ValidationError(f"Limit can't exceed {max_limit}")
        return limit


class ReviewHistoryQueryForm(forms.Form):
    """Validates the review history window."""
    days = forms.IntegerField(min_value=1, max_value=365, required=False)

    def clean_days(self):
        days = self.cleaned_data.get('days')
        return REVIEW_HISTORY_DAYS if days is None else days
