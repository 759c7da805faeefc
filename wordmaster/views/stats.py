"""Statistics views."""

from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_GET

from .. import stats
from ..forms import ReviewHistoryQueryForm
from ..models import CommandExecutionLog

DECAY_COMMAND = 'apply_memory_decay'


@login_required
@require_GET
def stats_overview(request):
    """Vocabulary stats, bucket distribution, and streaks."""
    user = request.user
    return JsonResponse({
        'vocabulary': stats.vocabulary_stats(user),
        'distribution': stats.memory_health_distribution(user),
        'streak': stats.streak_summary(user),
    })


@login_required
@require_GET
def review_history(request):
    """Daily review counts over the last `days` days."""
    form = ReviewHistoryQueryForm(request.GET)
    if not form.is_valid():
        return JsonResponse({'error': 'Invalid query', 'fields': form.errors.get_json_data()}, status=400)

    return JsonResponse(stats.review_history(request.user, days=form.cleaned_data['days']))


@login_required
@require_GET
def decay_impact(request):
    """Bucket breakdown and what the next decay run will cost."""
    return JsonResponse(stats.decay_impact(request.user))


@login_required
@require_GET
def decay_status(request):
    """Status of the most recent decay runs."""
    last_run = CommandExecutionLog.get_last_run(DECAY_COMMAND)
    last_success = CommandExecutionLog.get_last_success(DECAY_COMMAND)
    return JsonResponse({
        'last_run': _serialize_run(last_run),
        'last_success': _serialize_run(last_success),
    })


def _serialize_run(run):
    if run is None:
        return None
    return {
        'status': run.status,
        'run_date': run.run_date.isoformat() if run.run_date else None,
        'started_at': run.started_at.isoformat(),
        'finished_at': run.finished_at.isoformat() if run.finished_at else None,
        'records_processed': run.records_processed,
        'records_decayed': run.records_decayed,
        'errors_count': run.errors_count,
        'error_message': run.error_message,
    }
