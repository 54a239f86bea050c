from __future__ import annotations

from incubus.application.services.maintenance_service import MaintenanceService
from incubus.core.celery_app import celery_app
from incubus.core.database import DatabaseManager
from incubus.tasks.async_runner import run_async


async def _run(operation: str) -> dict:
    await DatabaseManager.initialize()
    return await getattr(MaintenanceService(), operation)()


@celery_app.task(name="incubus.tasks.maintenance_tasks.expire_marketplace_listings")
def expire_marketplace_listings() -> dict:
    return run_async(_run("expire_listings"))


@celery_app.task(name="incubus.tasks.maintenance_tasks.expire_invitations")
def expire_invitations() -> dict:
    return run_async(_run("expire_invitations"))


@celery_app.task(name="incubus.tasks.maintenance_tasks.prune_sessions")
def prune_sessions() -> dict:
    return run_async(_run("prune_sessions"))
