"""
Celery application configuration for the hookrelay delivery service.
"""
from celery import Celery
from hookrelay.core.config import settings

# Create Celery instance
celery_app = Celery(
    "hookrelay",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "hookrelay.tasks.webhook_tasks",
        "hookrelay.tasks.route_tasks",
        "hookrelay.tasks.consumer_tasks",
    ]
)

celery_app.conf.update(
    # Serialization
    task_serializer=settings.celery_task_serializer,
    result_serializer=settings.celery_result_serializer,
    accept_content=settings.celery_accept_content,

    # Timezone
    timezone=settings.celery_timezone,
    enable_utc=settings.celery_enable_utc,

    # Task execution; a delivery blocks for at most the HTTP timeout
    task_track_started=True,
    task_time_limit=settings.default_timeout * 10,
    task_soft_time_limit=settings.default_timeout * 8,

    # Worker optimization for I/O-bound tasks (outbound HTTP)
    worker_prefetch_multiplier=4,
    worker_max_tasks_per_child=100,

    # At-least-once: acknowledge after completion, re-queue if the worker dies
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    result_expires=3600,

    task_routes={
        'hookrelay.tasks.webhook_tasks.dispatch_webhook': {
            'queue': 'webhook_queue',
            'priority': 8
        },
        'hookrelay.tasks.webhook_tasks.retry_webhook': {
            'queue': 'webhook_queue',
            'priority': 6
        },
        'hookrelay.tasks.webhook_tasks.cleanup_logs': {
            'queue': 'scheduler_queue',
            'priority': 3
        },
        'hookrelay.tasks.route_tasks.*': {
            'queue': 'route_queue',
            'priority': 7
        },
        'hookrelay.tasks.consumer_tasks.run_consumer': {
            'queue': 'route_queue',
            'priority': 5
        },
        'hookrelay.tasks.consumer_tasks.schedule_consumers': {
            'queue': 'scheduler_queue',
            'priority': 3
        },
    },

    broker_connection_retry_on_startup=True,
    broker_connection_retry=True,
    broker_connection_max_retries=10,
)

celery_app.conf.beat_schedule = {
    'cleanup-delivery-logs': {
        'task': 'hookrelay.tasks.webhook_tasks.cleanup_logs',
        'schedule': float(settings.log_cleanup_interval_seconds),
    },
    'schedule-consumers': {
        'task': 'hookrelay.tasks.consumer_tasks.schedule_consumers',
        'schedule': float(settings.consumer_check_interval_seconds),
    },
}

if __name__ == '__main__':
    celery_app.start()
