# This file makes the tasks directory a Python package
# Import all task modules to ensure they are registered with Celery

from . import db_tasks

from .db_tasks import record_completion_task

__all__ = [
    'record_completion_task',
]
