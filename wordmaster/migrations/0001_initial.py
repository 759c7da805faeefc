import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='CommandExecutionLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('command_name', models.CharField(max_length=100)),
                ('status', models.CharField(choices=[('started', 'Started'), ('success', 'Success'), ('failure', 'Failure')], max_length=20)),
                ('run_date', models.DateField(blank=True, null=True)),
                ('started_at', models.DateTimeField()),
                ('finished_at', models.DateTimeField(blank=True, null=True)),
                ('records_processed', models.IntegerField(default=0)),
                ('records_decayed', models.IntegerField(default=0)),
                ('errors_count', models.IntegerField(default=0)),
                ('error_message', models.TextField(blank=True)),
                ('details', models.JSONField(blank=True, default=dict)),
            ],
            options={
                'ordering': ['-started_at', '-pk'],
                'indexes': [models.Index(fields=['command_name', 'started_at'], name='wordmaster__command_8f1c2e_idx')],
            },
        ),
        migrations.CreateModel(
            name='Word',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('word_text', models.CharField(max_length=200)),
                ('word_text_lower', models.CharField(editable=False, max_length=200, unique=True)),
                ('phonetic', models.CharField(blank=True, max_length=200)),
                ('definition', models.TextField(blank=True)),
                ('part_of_speech', models.CharField(blank=True, choices=[('noun', 'Noun'), ('verb', 'Verb'), ('adjective', 'Adjective'), ('adverb', 'Adverb'), ('phrase', 'Phrase'), ('other', 'Other')], max_length=20)),
                ('example_sentence', models.TextField(blank=True)),
                ('language', models.CharField(default='en', max_length=10)),
                ('word_length', models.PositiveIntegerField(editable=False)),
                ('difficulty_level', models.CharField(choices=[('easy', 'Easy'), ('medium', 'Medium'), ('hard', 'Hard'), ('very_hard', 'Very hard')], editable=False, max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ['word_text_lower'],
            },
        ),
        migrations.CreateModel(
            name='UserSettings',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('daily_decay_rate', models.SmallIntegerField(default=-1, validators=[django.core.validators.MinValueValidator(-3), django.core.validators.MaxValueValidator(0)])),
                ('daily_review_goal', models.PositiveIntegerField(default=20, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(500)])),
                ('quick_learning_enabled', models.BooleanField(default=True)),
                ('auto_archive_mastered', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='wordmaster_settings', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name_plural': 'User settings',
            },
        ),
        migrations.CreateModel(
            name='DailyStats',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('stat_date', models.DateField()),
                ('words_reviewed', models.PositiveIntegerField(default=0)),
                ('words_marked_known', models.PositiveIntegerField(default=0)),
                ('words_marked_review', models.PositiveIntegerField(default=0)),
                ('memory_points_gained', models.PositiveIntegerField(default=0)),
                ('memory_points_lost', models.PositiveIntegerField(default=0)),
                ('words_mastered', models.PositiveIntegerField(default=0)),
                ('daily_goal_achieved', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='daily_stats', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name_plural': 'Daily stats',
                'ordering': ['-stat_date'],
                'constraints': [models.UniqueConstraint(fields=('user', 'stat_date'), name='unique_daily_stat')],
            },
        ),
        migrations.CreateModel(
            name='UserWord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('memory_level', models.PositiveSmallIntegerField(default=0, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(101)])),
                ('is_quick_learner', models.BooleanField(default=False)),
                ('is_archived', models.BooleanField(default=False)),
                ('first_added_at', models.DateTimeField(auto_now_add=True)),
                ('last_reviewed_at', models.DateTimeField(blank=True, null=True)),
                ('last_memory_update_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('last_decayed_on', models.DateField(blank=True, null=True)),
                ('times_reviewed', models.PositiveIntegerField(default=0)),
                ('times_marked_known', models.PositiveIntegerField(default=0)),
                ('times_marked_review', models.PositiveIntegerField(default=0)),
                ('version', models.PositiveIntegerField(default=0)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='user_words', to=settings.AUTH_USER_MODEL)),
                ('word', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='user_words', to='wordmaster.word')),
            ],
            options={
                'ordering': ['memory_level', 'pk'],
                'indexes': [
                    models.Index(fields=['user', 'is_archived', 'memory_level'], name='wordmaster__user_id_3b7a91_idx'),
                    models.Index(fields=['is_archived', 'memory_level', 'last_decayed_on'], name='wordmaster__is_arch_5d20c4_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('user', 'word'), name='unique_user_word'),
                    models.CheckConstraint(condition=models.Q(('memory_level__gte', 0), ('memory_level__lte', 101)), name='memory_level_in_range'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ReviewHistory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action_type', models.CharField(choices=[('marked_known', 'Marked known'), ('marked_review', 'Marked for review'), ('viewed', 'Viewed'), ('skipped', 'Skipped'), ('system_decay', 'System decay')], max_length=20)),
                ('memory_before', models.PositiveSmallIntegerField()),
                ('memory_after', models.PositiveSmallIntegerField()),
                ('memory_change', models.SmallIntegerField(default=0)),
                ('reason', models.CharField(blank=True, max_length=100)),
                ('session_id', models.CharField(blank=True, max_length=64)),
                ('reviewed_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='review_history', to=settings.AUTH_USER_MODEL)),
                ('word', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='review_history', to='wordmaster.word')),
                ('user_word', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='review_history', to='wordmaster.userword')),
            ],
            options={
                'verbose_name_plural': 'Review history',
                'ordering': ['-reviewed_at', '-pk'],
                'indexes': [
                    models.Index(fields=['user_word', 'reviewed_at'], name='wordmaster__user_wo_9e4f17_idx'),
                    models.Index(fields=['user', 'action_type', 'reviewed_at'], name='wordmaster__user_id_c81d3a_idx'),
                ],
            },
        ),
    ]
