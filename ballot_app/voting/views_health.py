from django.db import DatabaseError
from django.http import HttpResponse
from django.views.decorators.http import require_GET

from voting.models import Round


@require_GET
def healthz(request):
    return HttpResponse("ok", content_type="text/plain")


@require_GET
def readyz(request):
    # Ready means the round store answers queries.
    try:
        Round.objects.filter(is_open=True).exists()
    except DatabaseError:
        return HttpResponse("db unavailable", status=503, content_type="text/plain")

    return HttpResponse("ok", content_type="text/plain")
