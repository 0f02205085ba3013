"""Shared FastAPI dependencies."""
from hookrelay.services.http_executor import HttpExecutor
from hookrelay.services.scheduler import CeleryScheduler


def get_scheduler() -> CeleryScheduler:
    return CeleryScheduler()


def get_executor() -> HttpExecutor:
    return HttpExecutor()
