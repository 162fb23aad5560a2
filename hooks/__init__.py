"""Hook capabilities and the shared migration context.

The inventory hooks live in ``hooks.inventory`` and are imported from there,
since they depend on the loaders package which in turn depends on this one.
"""

from .base import JobHook, StepHook, WorkflowHook
from .context import MigrationContext

__all__ = [
    'WorkflowHook',
    'JobHook',
    'StepHook',
    'MigrationContext'
]
