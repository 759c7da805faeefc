"""Health check endpoint for container orchestration."""

from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.utils import timezone

from ..models import CommandExecutionLog
from ..store import utc_day
from .stats import DECAY_COMMAND


def health_check(request):
    """
    Returns 200 if the app is running and the database is accessible.

    Also reports whether today's decay run has completed, without
    failing the check when it hasn't.
    """
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        last_success = CommandExecutionLog.get_last_success(DECAY_COMMAND)
    except DatabaseError as e:
        return JsonResponse({"status": "unhealthy", "error": str(e)}, status=503)

    last_decay = last_success.run_date if last_success else None
    return JsonResponse({
        "status": "healthy",
        "last_decay_date": last_decay.isoformat() if last_decay else None,
        "decay_current": last_decay == utc_day(timezone.now()),
    })
