from django.urls import path
from . import views

urlpatterns = [
    # Review actions
    path('api/words/<int:pk>/known/', views.mark_known, name='mark_known'),
    path('api/words/<int:pk>/review/', views.mark_for_review, name='mark_for_review'),
    path('api/words/<int:pk>/skip/', views.skip_word, name='skip_word'),
    path('api/words/<int:pk>/view/', views.view_word, name='view_word'),
    path('api/words/<int:pk>/star/', views.star_word, name='star_word'),
    path('api/words/<int:pk>/projection/', views.mastery_projection, name='mastery_projection'),

    # Vocabulary & feed
    path('api/words/', views.add_words, name='add_words'),
    path('api/feed/', views.feed, name='feed'),

    # Stats
    path('api/stats/', views.stats_overview, name='stats_overview'),
    path('api/stats/history/', views.review_history, name='review_history'),
    path('api/stats/decay/', views.decay_impact, name='decay_impact'),
    path('api/decay/status/', views.decay_status, name='decay_status'),

    # Settings
    path('api/settings/', views.settings_api, name='settings_api'),

    # Health check
    path('health/', views.health_check, name='health_check'),
]
