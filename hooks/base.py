"""
Hook capabilities invoked around each unit of a migration.

A workflow hook runs once before and after all jobs, a job hook before and
after the steps of one job, and a step hook translates a single step. Workflow
and job hooks are optional: the loader returns None when there is nothing to
run. Any callback may raise SkipSignal to omit its unit, or any other
MigrationError to abort the run.
"""

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from hooks.context import MigrationContext


@runtime_checkable
class WorkflowHook(Protocol):
    """Runs around the whole migration."""

    def pre_run(self, context: 'MigrationContext') -> None:
        """Called after the workflow is loaded, before any job."""
        ...

    def post_run(self, context: 'MigrationContext') -> None:
        """Called after every job has been processed."""
        ...


@runtime_checkable
class JobHook(Protocol):
    """
    Runs around the steps of one job.

    The loader hands out a fresh instance per job, so attributes set on the
    hook never leak into the next job. Use the context for cross-job state.
    """

    def pre_run(self, context: 'MigrationContext') -> None:
        ...

    def post_run(self, context: 'MigrationContext') -> None:
        ...


@runtime_checkable
class StepHook(Protocol):
    """Translates one Anthill step into the target system."""

    def run(self, context: 'MigrationContext') -> None:
        ...


__all__ = ['WorkflowHook', 'JobHook', 'StepHook']
