# demand_planning/batch/__init__.py
from .planning_job import run_planning_job

__all__ = [
    'run_planning_job'
]
