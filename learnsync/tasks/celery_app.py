"""
Main Celery application instance and task discovery.

This module exposes the configured Celery application and makes sure every
task module is registered. This is the entry point for Celery workers:
``celery -A learnsync.tasks.celery_app worker -Q default,groups``.
"""

from learnsync.config.celery_config import celery_app
from learnsync.config.logging_config import configure_logging
from learnsync.config.settings import settings

# Import all task modules to ensure they are registered with Celery
from learnsync.tasks import group_tasks  # noqa: F401

configure_logging(settings.log_level)

__all__ = ["celery_app"]


def get_registered_tasks():
    """
    Get list of all registered Celery tasks.

    Returns:
        list: List of task names registered with Celery
    """
    return list(celery_app.tasks.keys())
