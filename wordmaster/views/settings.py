"""Settings API view."""

from django.contrib.auth.decorators import login_required
from django.forms.models import model_to_dict
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from ..forms import UserSettingsForm
from ..models import UserSettings
from .helpers import parse_json_body


@login_required
@require_http_methods(['GET', 'POST'])
def settings_api(request):
    """Read or update the user's learning settings."""
    user_settings = UserSettings.for_user(request.user)
    fields = UserSettingsForm._meta.fields

    if request.method == 'POST':
        data = parse_json_body(request)
        if data is None:
            return JsonResponse({'error': 'Invalid JSON'}, status=400)

        # Partial updates: unspecified fields keep their current values
        form = UserSettingsForm(
            {**model_to_dict(user_settings, fields=fields), **data},
            instance=user_settings
        )
        if not form.is_valid():
            return JsonResponse({'error': 'Invalid settings', 'fields': form.errors.get_json_data()}, status=400)
        user_settings = form.save()

    return JsonResponse(model_to_dict(user_settings, fields=fields))
