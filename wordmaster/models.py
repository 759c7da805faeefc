from django.contrib.auth.models import User
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models, transaction
from django.db.models import F
from django.utils import timezone

from . import memory


class Word(models.Model):
    """A vocabulary item shared by all users."""

    class PartOfSpeech(models.TextChoices):
        NOUN = 'noun', 'Noun'
        VERB = 'verb', 'Verb'
        ADJECTIVE = 'adjective', 'Adjective'
        ADVERB = 'adverb', 'Adverb'
        PHRASE = 'phrase', 'Phrase'
        OTHER = 'other', 'Other'

    class Difficulty(models.TextChoices):
        EASY = memory.DIFFICULTY_EASY, 'Easy'
        MEDIUM = memory.DIFFICULTY_MEDIUM, 'Medium'
        HARD = memory.DIFFICULTY_HARD, 'Hard'
        VERY_HARD = memory.DIFFICULTY_VERY_HARD, 'Very hard'

    word_text = models.CharField(max_length=200)
    word_text_lower = models.CharField(max_length=200, unique=True, editable=False)
    phonetic = models.CharField(max_length=200, blank=True)
    definition = models.TextField(blank=True)
    part_of_speech = models.CharField(
        max_length=20,
        choices=PartOfSpeech.choices,
        blank=True
    )
    example_sentence = models.TextField(blank=True)
    language = models.CharField(max_length=10, default='en')

    # Fixed at creation, used for difficulty and feed priority
    word_length = models.PositiveIntegerField(editable=False)
    difficulty_level = models.CharField(
        max_length=20,
        choices=Difficulty.choices,
        editable=False
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['word_text_lower']

    def __str__(self):
        return self.word_text

    def save(self, *args, **kwargs):
        self.word_text = self.word_text.strip()
        self.word_text_lower = self.word_text.lower()
        if self.pk is None or not self.word_length:
            self.word_length = len(self.word_text)
            self.difficulty_level = memory.difficulty_for_length(self.word_length)
        super().save(*args, **kwargs)


class UserWord(models.Model):
    """A word in a user's vocabulary, with its memory state."""
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='user_words')
    word = models.ForeignKey(Word, on_delete=models.CASCADE, related_name='user_words')

    # 0-100, 101 = starred by the user
    memory_level = models.PositiveSmallIntegerField(
        default=0,
        validators=[MinValueValidator(memory.MIN_LEVEL), MaxValueValidator(memory.STARRED_LEVEL)]
    )
    is_quick_learner = models.BooleanField(default=False)  # Sticky once set
    is_archived = models.BooleanField(default=False)

    first_added_at = models.DateTimeField(auto_now_add=True)
    last_reviewed_at = models.DateTimeField(null=True, blank=True)
    last_memory_update_at = models.DateTimeField(default=timezone.now)
    last_decayed_on = models.DateField(null=True, blank=True)  # UTC day of last decay

    times_reviewed = models.PositiveIntegerField(default=0)
    times_marked_known = models.PositiveIntegerField(default=0)
    times_marked_review = models.PositiveIntegerField(default=0)

    # Bumped on every memory write, guards read-modify-write cycles
    version = models.PositiveIntegerField(default=0)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['memory_level', 'pk']
        constraints = [
            models.UniqueConstraint(fields=['user', 'word'], name='unique_user_word'),
            models.CheckConstraint(
                condition=models.Q(memory_level__gte=0) & models.Q(memory_level__lte=101),
                name='memory_level_in_range',
            ),
        ]
        indexes = [
            models.Index(fields=['user', 'is_archived', 'memory_level'], name='wordmaster__user_id_3b7a91_idx'),
            models.Index(
                fields=['is_archived', 'memory_level', 'last_decayed_on'],
                name='wordmaster__is_arch_5d20c4_idx',
            ),
        ]

    def __str__(self):
        return f"{self.word} ({self.memory_level}) for {self.user.username}"

    @property
    def classification(self):
        return memory.classify(self.memory_level)

    @property
    def is_starred(self):
        return self.memory_level >= memory.STARRED_LEVEL

    def priority_score(self):
        return memory.priority_score(self.memory_level, self.word.word_length)


class ReviewHistory(models.Model):
    """Append-only log of review actions and decay."""

    class ActionType(models.TextChoices):
        MARKED_KNOWN = memory.ACTION_MARKED_KNOWN, 'Marked known'
        MARKED_REVIEW = memory.ACTION_MARKED_REVIEW, 'Marked for review'
        VIEWED = 'viewed', 'Viewed'
        SKIPPED = 'skipped', 'Skipped'
        SYSTEM_DECAY = 'system_decay', 'System decay'

    # Actions the memory engine reads back
    ENGINE_ACTIONS = [ActionType.MARKED_KNOWN, ActionType.MARKED_REVIEW]

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='review_history')
    word = models.ForeignKey(Word, on_delete=models.CASCADE, related_name='review_history')
    user_word = models.ForeignKey(UserWord, on_delete=models.CASCADE, related_name='review_history')
    action_type = models.CharField(max_length=20, choices=ActionType.choices)
    memory_before = models.PositiveSmallIntegerField()
    memory_after = models.PositiveSmallIntegerField()
    memory_change = models.SmallIntegerField(default=0)
    reason = models.CharField(max_length=100, blank=True)
    session_id = models.CharField(max_length=64, blank=True)
    reviewed_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-reviewed_at', '-pk']
        verbose_name_plural = 'Review history'
        indexes = [
            models.Index(fields=['user_word', 'reviewed_at'], name='wordmaster__user_wo_9e4f17_idx'),
            models.Index(fields=['user', 'action_type', 'reviewed_at'], name='wordmaster__user_id_c81d3a_idx'),
        ]

    def __str__(self):
        return f"{self.action_type} {self.word} at {self.reviewed_at}"


class UserSettings(models.Model):
    """Per-user learning settings."""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='wordmaster_settings')
    daily_decay_rate = models.SmallIntegerField(
        default=memory.DEFAULT_DAILY_DECAY_RATE,
        validators=[MinValueValidator(memory.MIN_DAILY_DECAY_RATE), MaxValueValidator(0)]
    )
    daily_review_goal = models.PositiveIntegerField(
        default=20,
        validators=[MinValueValidator(1), MaxValueValidator(500)]
    )
    quick_learning_enabled = models.BooleanField(default=True)
    auto_archive_mastered = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = 'User settings'

    def __str__(self):
        return f"Settings for {self.user.username}"

    @classmethod
    def for_user(cls, user):
        """Get or create settings with defaults."""
        settings, _ = cls.objects.get_or_create(user=user)
        return settings


class DailyStats(models.Model):
    """Per-user activity for one UTC day."""
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='daily_stats')
    stat_date = models.DateField()
    words_reviewed = models.PositiveIntegerField(default=0)
    words_marked_known = models.PositiveIntegerField(default=0)
    words_marked_review = models.PositiveIntegerField(default=0)
    memory_points_gained = models.PositiveIntegerField(default=0)
    memory_points_lost = models.PositiveIntegerField(default=0)
    words_mastered = models.PositiveIntegerField(default=0)
    daily_goal_achieved = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-stat_date']
        verbose_name_plural = 'Daily stats'
        constraints = [
            models.UniqueConstraint(fields=['user', 'stat_date'], name='unique_daily_stat'),
        ]

    def __str__(self):
        return f"Stats for {self.user.username} on {self.stat_date}"

    @classmethod
    def record(cls, user, stat_date, daily_goal=None, **increments):
        """
        Atomically add increments to the user's stats for a day.

        Creates the row if needed. When daily_goal is given, the goal flag
        is set once words_reviewed reaches it.
        """
        with transaction.atomic():
            stat, _ = cls.objects.get_or_create(user=user, stat_date=stat_date)
            if increments:
                cls.objects.filter(pk=stat.pk).update(
                    **{field: F(field) + amount for field, amount in increments.items()}
                )
            if daily_goal is not None:
                cls.objects.filter(
                    pk=stat.pk,
                    words_reviewed__gte=daily_goal,
                    daily_goal_achieved=False,
                ).update(daily_goal_achieved=True)
        stat.refresh_from_db()
        return stat


class CommandExecutionLog(models.Model):
    """Log of management command executions for monitoring and debugging."""

    class Status(models.TextChoices):
        STARTED = 'started', 'Started'
        SUCCESS = 'success', 'Success'
        FAILURE = 'failure', 'Failure'

    command_name = models.CharField(max_length=100)
    status = models.CharField(max_length=20, choices=Status.choices)
    run_date = models.DateField(null=True, blank=True)
    started_at = models.DateTimeField()
    finished_at = models.DateTimeField(null=True, blank=True)
    records_processed = models.IntegerField(default=0)
    records_decayed = models.IntegerField(default=0)
    errors_count = models.IntegerField(default=0)
    error_message = models.TextField(blank=True)
    details = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ['-started_at', '-pk']
        indexes = [
            models.Index(fields=['command_name', 'started_at'], name='wordmaster__command_8f1c2e_idx'),
        ]

    def __str__(self):
        return f"{self.command_name} at {self.started_at} ({self.status})"

    @classmethod
    def start(cls, command_name, run_date=None):
        """Create a new log entry when command starts."""
        return cls.objects.create(
            command_name=command_name,
            status=cls.Status.STARTED,
            run_date=run_date,
            started_at=timezone.now(),
        )

    def finish_success(self, records_processed=0, records_decayed=0, details=None):
        """Mark command as successfully completed."""
        self.status = self.Status.SUCCESS
        self.finished_at = timezone.now()
        self.records_processed = records_processed
        self.records_decayed = records_decayed
        if details:
            self.details = details
        self.save()

    def finish_failure(self, error_message, errors_count=1, records_processed=0,
                       records_decayed=0, details=None):
        """Mark command as failed."""
        self.status = self.Status.FAILURE
        self.finished_at = timezone.now()
        self.error_message = error_message
        self.errors_count = errors_count
        self.records_processed = records_processed
        self.records_decayed = records_decayed
        if details:
            self.details = details
        self.save()

    @classmethod
    def get_last_run(cls, command_name):
        """Get the most recent execution of a command."""
        return cls.objects.filter(command_name=command_name).first()

    @classmethod
    def get_last_success(cls, command_name):
        """Get the most recent successful execution of a command."""
        return cls.objects.filter(
            command_name=command_name,
            status=cls.Status.SUCCESS
        ).first()
