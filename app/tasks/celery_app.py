from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging
from app.core.config import settings
from app.core.logging import configure_logging


def _redis_url_for_celery(url: str) -> str:
    """Celery requires ssl_cert_reqs for rediss:// (e.g. Upstash TLS)."""
    if not url or not url.strip().lower().startswith("rediss://"):
        return url
    parsed = urlparse(url)
    qs = parse_qs(parsed.query)
    if "ssl_cert_reqs" not in qs:
        qs["ssl_cert_reqs"] = ["CERT_NONE"]
        new_query = urlencode(qs, doseq=True)
        return urlunparse(parsed._replace(query=new_query))
    return url


_redis_url = _redis_url_for_celery(settings.REDIS_URL)

celery = Celery(
    "booking",
    broker=_redis_url,
    backend=_redis_url,
    include=["app.tasks.jobs"],
)

celery.conf.timezone = settings.CELERY_TIMEZONE


# Keep the worker on the same log format as the API instead of Celery's own
@setup_logging.connect
def _configure_worker_logging(**kwargs):
    configure_logging()


celery.conf.beat_schedule = {
    "expire-holds-every-minute": {
        "task": "app.tasks.jobs.expire_holds",
        "schedule": 60.0,
    },
    "expire-waitlist-claims-every-minute": {
        "task": "app.tasks.jobs.expire_waitlist_claims",
        "schedule": 60.0,
    },
    "process-notification-queue-every-2-minutes": {
        "task": "app.tasks.jobs.process_notification_queue",
        "schedule": 120.0,
        "kwargs": {"limit": 50},
    },
    "send-booking-reminders-daily": {
        "task": "app.tasks.jobs.send_booking_reminders",
        "schedule": crontab(hour=9, minute=0),
    },
}
