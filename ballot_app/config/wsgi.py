import logging
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

application = get_wsgi_application()

logger = logging.getLogger(__name__)

try:
    from voting.rounds_api import get_open_round

    open_round = get_open_round()
    if open_round is not None:
        logger.info(
            "Serving open round id=%s stage=%s paused=%s",
            open_round.pk,
            open_round.current_stage,
            open_round.is_paused,
        )
except Exception:
    logger.exception("Startup open-round lookup failed")
    raise
