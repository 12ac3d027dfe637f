"""
Celery configuration and setup.

This module configures Celery with Redis broker and result backend
for the background group membership jobs.
"""

from celery import Celery
from kombu import Queue

from learnsync.config.settings import settings


def make_celery() -> Celery:
    """
    Create and configure Celery application instance.

    Returns:
        Celery: Configured Celery application
    """
    celery_app = Celery("learnsync")

    celery_app.conf.update(
        # Broker and Result Backend
        broker_url=settings.celery_broker_url,
        result_backend=settings.celery_result_backend,

        # Task Serialization
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],

        # Results Configuration
        result_expires=3600,  # Results expire after 1 hour

        # Task Routing and Queues
        task_routes={
            "groups.*": {"queue": "groups"},
        },
        task_queues=(
            Queue("default", priority=1),
            Queue("groups", priority=5),
        ),
        task_default_queue="default",

        # Worker Configuration
        worker_prefetch_multiplier=1,  # Prevent worker from hoarding tasks
        task_acks_late=True,  # Membership assignment is idempotent, safe to redeliver

        # Task Execution Configuration
        task_always_eager=False,
        task_eager_propagates=True,

        # Retry Configuration
        task_default_retry_delay=settings.task_retry_countdown,
        task_max_retries=settings.task_max_retries,

        # Time Limits
        task_soft_time_limit=120,
        task_time_limit=300,

        # Monitoring and Logging
        worker_send_task_events=True,
        task_send_sent_event=True,

        timezone='UTC',
        worker_hijack_root_logger=False,
    )

    celery_app.autodiscover_tasks(['learnsync.tasks'], related_name='group_tasks')

    return celery_app


# Create the global Celery instance
celery_app = make_celery()

