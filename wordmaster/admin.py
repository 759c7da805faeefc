from django.contrib import admin
from .models import Word, UserWord, ReviewHistory, UserSettings, DailyStats, CommandExecutionLog


@admin.register(Word)
class WordAdmin(admin.ModelAdmin):
    list_display = ['word_text', 'word_length', 'difficulty_level', 'part_of_speech', 'created_at']
    list_filter = ['difficulty_level', 'part_of_speech', 'language']
    search_fields = ['word_text', 'definition']


@admin.register(UserWord)
class UserWordAdmin(admin.ModelAdmin):
    list_display = ['word', 'user', 'memory_level', 'classification', 'is_quick_learner',
                    'is_archived', 'last_reviewed_at', 'last_decayed_on']
    list_filter = ['is_archived', 'is_quick_learner', 'user']
    search_fields = ['word__word_text']
    readonly_fields = ['memory_level', 'is_quick_learner', 'last_reviewed_at',
                       'last_memory_update_at', 'last_decayed_on', 'version',
                       'times_reviewed', 'times_marked_known', 'times_marked_review']

    def classification(self, obj):
        return obj.classification
    classification.short_description = 'Bucket'


@admin.register(ReviewHistory)
class ReviewHistoryAdmin(admin.ModelAdmin):
    list_display = ['word', 'user', 'action_type', 'memory_before', 'memory_after', 'reason', 'reviewed_at']
    list_filter = ['action_type', 'reviewed_at']
    readonly_fields = ['user', 'word', 'user_word', 'action_type', 'memory_before', 'memory_after',
                       'memory_change', 'reason', 'session_id', 'reviewed_at']


@admin.register(UserSettings)
class UserSettingsAdmin(admin.ModelAdmin):
    list_display = ['user', 'daily_decay_rate', 'daily_review_goal', 'quick_learning_enabled', 'updated_at']
    list_filter = ['quick_learning_enabled', 'auto_archive_mastered']


@admin.register(DailyStats)
class DailyStatsAdmin(admin.ModelAdmin):
    list_display = ['user', 'stat_date', 'words_reviewed', 'memory_points_gained',
                    'memory_points_lost', 'daily_goal_achieved']
    list_filter = ['daily_goal_achieved', 'stat_date']


@admin.register(CommandExecutionLog)
class CommandExecutionLogAdmin(admin.ModelAdmin):
    list_display = ['command_name', 'run_date', 'status', 'records_processed', 'records_decayed',
                    'errors_count', 'started_at']
    list_filter = ['command_name', 'status']
