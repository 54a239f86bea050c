from incubus.core.celery_app import celery_app
from incubus.core.security import utc_now


@celery_app.task(name="incubus.tasks.system_tasks.heartbeat")
def heartbeat() -> str:
    return f"incubus-heartbeat:{utc_now().isoformat()}"
