"""Shared helper functions for views."""

import json

from django.http import JsonResponse

from .. import memory
from ..models import ReviewHistory

MAX_SESSION_ID_LENGTH = ReviewHistory._meta.get_field('session_id').max_length


def error_response(error):
    """Translate a WordmasterError into a JSON error response."""
    return JsonResponse(
        {'error': error.message, 'code': error.code},
        status=error.status
    )


def parse_json_body(request):
    """Parse a JSON object body. Returns None when it isn't one."""
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def review_session_id(request):
    """
    Optional review session id from a JSON body.

    An empty body means no session. Returns None when the body or the id
    is invalid.
    """
    data = parse_json_body(request)
    if data is None:
        return None
    session_id = data.get('session_id') or ''
    if not isinstance(session_id, str) or len(session_id) > MAX_SESSION_ID_LENGTH:
        return None
    return session_id


def serialize_user_word(user_word):
    """Serialize a UserWord and its word for JSON responses."""
    word = user_word.word
    return {
        'id': user_word.pk,
        'word_id': word.pk,
        'word_text': word.word_text,
        'definition': word.definition,
        'part_of_speech': word.part_of_speech,
        'word_length': word.word_length,
        'difficulty_level': word.difficulty_level,
        'memory_level': user_word.memory_level,
        'memory_display': memory.format_memory_level(user_word.memory_level),
        'classification': user_word.classification,
        'is_quick_learner': user_word.is_quick_learner,
        'is_starred': user_word.is_starred,
        'last_reviewed_at': user_word.last_reviewed_at.isoformat() if user_word.last_reviewed_at else None,
    }
