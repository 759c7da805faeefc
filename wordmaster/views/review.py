"""Review action views."""

from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from .. import memory, reviews, stats
from ..exceptions import WordmasterError
from ..store import get_store
from .helpers import (
    MAX_SESSION_ID_LENGTH, error_response, parse_json_body, review_session_id, serialize_user_word,
)


def _invalid_session():
    return JsonResponse(
        {'error': f'session_id must be a string of at most {MAX_SESSION_ID_LENGTH} characters'},
        status=400
    )


@login_required
@require_POST
def mark_known(request, pk):
    """Mark a word as known."""
    session_id = review_session_id(request)
    if session_id is None:
        return _invalid_session()

    try:
        user_word, increase = reviews.mark_known(
            get_store(), request.user, pk, session_id=session_id
        )
    except WordmasterError as e:
        return error_response(e)

    response = {
        'success': True,
        'word': serialize_user_word(user_word),
        'starred': increase is None,
    }
    if increase is not None:
        response.update({
            'base_increase': increase.base_increase,
            'bonus_increase': increase.bonus_increase,
            'multiplier': increase.multiplier,
            'total_increase': increase.total_increase,
            'reason': increase.reason,
            'is_mastered': increase.new_level >= memory.MASTERED_LEVEL,
        })
    return JsonResponse(response)


def _record_action(request, pk, action):
    session_id = review_session_id(request)
    if session_id is None:
        return _invalid_session()

    try:
        user_word = action(get_store(), request.user, pk, session_id=session_id)
    except WordmasterError as e:
        return error_response(e)

    return JsonResponse({'success': True, 'word': serialize_user_word(user_word)})


@login_required
@require_POST
def mark_for_review(request, pk):
    """Mark a word as needing more review."""
    return _record_action(request, pk, reviews.mark_for_review)


@login_required
@require_POST
def skip_word(request, pk):
    """Skip a word without changing it."""
    return _record_action(request, pk, reviews.skip_word)


@login_required
@require_POST
def view_word(request, pk):
    """Record that a word was shown."""
    return _record_action(request, pk, reviews.view_word)


@login_required
@require_POST
def star_word(request, pk):
    """Star or unstar a word."""
    data = parse_json_body(request)
    if data is None:
        return JsonResponse({'error': 'Invalid JSON'}, status=400)

    starred = data.get('starred', True)
    if not isinstance(starred, bool):
        return JsonResponse({'error': 'starred must be true or false'}, status=400)

    try:
        user_word = reviews.set_starred(get_store(), request.user, pk, starred)
    except WordmasterError as e:
        return error_response(e)

    return JsonResponse({'success': True, 'word': serialize_user_word(user_word)})


@login_required
@require_GET
def mastery_projection(request, pk):
    """Project when a word will be mastered, or forgotten."""
    try:
        user_word = get_store().get_user_word(request.user, pk)
    except WordmasterError as e:
        return error_response(e)

    return JsonResponse(stats.mastery_projection(user_word))
