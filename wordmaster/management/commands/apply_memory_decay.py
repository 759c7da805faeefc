"""
Management command to apply the daily memory decay.

Run this command once per UTC day via cron or a scheduled task:
    python manage.py apply_memory_decay

Every non-archived word below mastery loses its owner's daily decay rate.
Reruns for the same date are safe: records already decayed that day are
skipped, so a failed or partial run can simply be started again.
Large installations can split the work with --shard/--shards.
"""

import logging
import traceback
from datetime import date

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from wordmaster import memory
from wordmaster.decay import run_daily_decay
from wordmaster.models import CommandExecutionLog, UserWord
from wordmaster.store import get_store, utc_day

logger = logging.getLogger(__name__)

COMMAND_NAME = 'apply_memory_decay'


class Command(BaseCommand):
    help = 'Apply one day of memory decay to every eligible word'

    def add_arguments(self, parser):
        parser.add_argument(
            '--date',
            help='UTC date to decay for, YYYY-MM-DD (default: today)',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Count eligible words without changing them',
        )
        parser.add_argument(
            '--shard',
            type=int,
            default=0,
            help='Process only words whose id %% shards equals this (default: 0)',
        )
        parser.add_argument(
            '--shards',
            type=int,
            default=1,
            help='Number of shards the run is split into (default: 1)',
        )
        parser.add_argument(
            '--status',
            action='store_true',
            help='Show status of last command execution and exit',
        )

    def handle(self, *args, **options):
        if options['status']:
            return self._show_status()

        run_date = self._parse_date(options['date'])
        dry_run = options['dry_run']
        shard = options['shard']
        shards = options['shards']

        if shards < 1 or not 0 <= shard < shards:
            raise CommandError(f"Invalid shard {shard} of {shards}")

        execution_log = None
        if not dry_run:
            execution_log = CommandExecutionLog.start(COMMAND_NAME, run_date=run_date)

        logger.info(
            "Starting apply_memory_decay command",
            extra={
                'dry_run': dry_run,
                'run_date': run_date.isoformat(),
                'shard': shard,
                'shards': shards,
            }
        )

        try:
            summary = run_daily_decay(
                get_store(),
                day=run_date,
                shard=shard,
                shards=shards,
                dry_run=dry_run,
            )
        except Exception as e:
            error_msg = f"Command failed with error: {str(e)}"
            logger.critical(error_msg, exc_info=True)
            if execution_log:
                execution_log.finish_failure(
                    error_message=error_msg,
                    details={'traceback': traceback.format_exc()}
                )
            raise

        details = {**summary.as_dict(), 'shard': shard, 'shards': shards}

        if dry_run:
            self.stdout.write(
                f"[DRY RUN] Would decay {summary.records_processed} word(s) for {run_date}"
            )
            return

        if summary.errors:
            execution_log.finish_failure(
                error_message=f"{summary.errors_count} word(s) failed to decay",
                errors_count=summary.errors_count,
                records_processed=summary.records_processed,
                records_decayed=summary.records_decayed,
                details={**details, 'errors': summary.errors},
            )
            for error in summary.errors:
                self.stderr.write(self.style.ERROR(
                    f"Failed to decay word {error['user_word_id']}: {error['error']}"
                ))
        else:
            execution_log.finish_success(
                records_processed=summary.records_processed,
                records_decayed=summary.records_decayed,
                details=details,
            )

        self.stdout.write(
            self.style.SUCCESS(
                f"Decayed {summary.records_decayed} word(s) for {run_date}"
            )
        )

    def _parse_date(self, value):
        if not value:
            return utc_day(timezone.now())
        try:
            return date.fromisoformat(value)
        except ValueError:
            raise CommandError(f"Invalid date: {value} (expected YYYY-MM-DD)")

    def _show_status(self):
        """Show status of last command execution."""
        last_run = CommandExecutionLog.get_last_run(COMMAND_NAME)
        last_success = CommandExecutionLog.get_last_success(COMMAND_NAME)

        self.stdout.write(f"\n=== {COMMAND_NAME} Status ===\n")

        if last_run:
            self.stdout.write(f"Last run: {last_run.started_at}")
            self.stdout.write(f"  Run date: {last_run.run_date}")
            self.stdout.write(f"  Status: {last_run.status}")
            self.stdout.write(f"  Words processed: {last_run.records_processed}")
            self.stdout.write(f"  Words decayed: {last_run.records_decayed}")
            if last_run.error_message:
                self.stdout.write(f"  Error: {last_run.error_message}")
        else:
            self.stdout.write("No execution history found.")

        if last_success and last_success != last_run:
            self.stdout.write(f"\nLast successful run: {last_success.started_at}")
            self.stdout.write(f"  Words decayed: {last_success.records_decayed}")

        eligible = UserWord.objects.filter(
            is_archived=False,
            memory_level__lt=memory.MASTERED_LEVEL,
        ).count()
        self.stdout.write(f"\nWords subject to decay: {eligible}")

        now = timezone.now()
        self.stdout.write(f"\nServer time: {now}")
        self.stdout.write(f"Server timezone: {settings.TIME_ZONE}")
