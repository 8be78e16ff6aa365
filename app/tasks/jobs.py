from app.tasks.celery_app import celery
from app.tasks import worker_jobs

@celery.task(name="app.tasks.jobs.expire_holds")
def expire_holds():
    return worker_jobs.expire_holds()

@celery.task(name="app.tasks.jobs.expire_waitlist_claims")
def expire_waitlist_claims():
    return worker_jobs.expire_waitlist_claims()


@celery.task(name="app.tasks.jobs.process_notification_queue")
def process_notification_queue(limit: int = 50):
    return worker_jobs.process_notification_queue(limit=limit)


@celery.task(name="app.tasks.jobs.send_booking_reminders")
def send_booking_reminders():
    return worker_jobs.send_booking_reminders()
