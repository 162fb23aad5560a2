"""Layout package turning workflow job graphs into execution order and parallel groups."""

from .job_layout import JobLayout, ParallelGroup, Stack, build_layout

__all__ = [
    'JobLayout',
    'ParallelGroup',
    'Stack',
    'build_layout'
]
