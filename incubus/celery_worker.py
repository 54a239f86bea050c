"""
Celery worker entry point.

Run with:
    celery -A incubus.celery_worker.celery_app worker --beat --loglevel=info
"""

import dotenv

dotenv.load_dotenv()

from incubus.core.celery_app import celery_app  # noqa: E402, F401
