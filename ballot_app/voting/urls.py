from django.urls import path

from voting import views_rounds

urlpatterns = [
    path("rounds/open/", views_rounds.round_open, name="round-open"),
    path("rounds/<int:round_id>/", views_rounds.round_status, name="round-status"),
    path("rounds/<int:round_id>/candidates/", views_rounds.round_candidates, name="round-candidates"),
    path("rounds/<int:round_id>/ballot/", views_rounds.round_ballot_submit, name="round-ballot-submit"),
    path("rounds/<int:round_id>/results/<int:stage>/", views_rounds.round_results, name="round-results"),
    path(
        "rounds/<int:round_id>/participation/",
        views_rounds.round_participation_view,
        name="round-participation",
    ),
    path("rounds/<int:round_id>/finalize/", views_rounds.round_finalize_stage, name="round-finalize"),
    path("rounds/<int:round_id>/<slug:action>/", views_rounds.round_admin_action, name="round-admin-action"),
]
