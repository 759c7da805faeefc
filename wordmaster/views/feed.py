"""Feed and vocabulary views."""

from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from .. import reviews
from ..feed import build_feed
from ..exceptions import WordmasterError
from ..forms import FeedQueryForm
from .helpers import error_response, parse_json_body, serialize_user_word

MAX_WORDS_PER_REQUEST = 500


@login_required
@require_GET
def feed(request):
    """One page of the user's review feed."""
    form = FeedQueryForm(request.GET)
    if not form.is_valid():
        return JsonResponse({'error': 'Invalid query', 'fields': form.errors.get_json_data()}, status=400)

    query = form.cleaned_data
    page = build_feed(
        request.user,
        bucket=query['bucket'] or None,
        difficulty=query['difficulty'] or None,
        part_of_speech=query['part_of_speech'] or None,
        sort=query['sort'],
        page=query['page'],
        limit=query['limit'],
    )

    return JsonResponse({
        'words': [
            {**serialize_user_word(entry.user_word), 'priority_score': round(entry.priority_score, 2)}
            for entry in page.entries
        ],
        'total': page.total,
        'page': page.page,
        'limit': page.limit,
        'has_more': page.has_more,
    })


@login_required
@require_POST
def add_words(request):
    """Add words to the user's vocabulary."""
    data = parse_json_body(request)
    if data is None:
        return JsonResponse({'error': 'Invalid JSON'}, status=400)

    words = data.get('words')
    if not isinstance(words, list) or not all(isinstance(w, str) for w in words):
        return JsonResponse({'error': 'words must be a list of strings'}, status=400)
    if len(words) > MAX_WORDS_PER_REQUEST:
        return JsonResponse({'error': f'At most {MAX_WORDS_PER_REQUEST} words per request'}, status=400)

    try:
        created = reviews.add_words(request.user, words)
    except WordmasterError as e:
        return error_response(e)

    return JsonResponse({
        'success': True,
        'added': [serialize_user_word(user_word) for user_word in created],
        'duplicates': len([w for w in words if w.strip()]) - len(created),
    }, status=201)
