"""
Inventory hooks recording what a workflow migration would touch.

Used by the CLI for dry runs: every job and every active step is written to
``context.result`` instead of being translated into a target system.
"""

import logging
from typing import Iterable, Optional

from exceptions import SkipSignal
from hooks.base import StepHook
from hooks.context import MigrationContext
from loaders.registry_loader import HookRegistry, RegistryLoader

logger = logging.getLogger('anthill_migrator.hooks.inventory')


class InventoryWorkflow:
    """Seeds the result with the workflow header and empty inventories."""

    def pre_run(self, context: MigrationContext) -> None:
        workflow = context.workflow
        context.result.setdefault('workflow', {
            'id': workflow.id if workflow else None,
            'name': workflow.name if workflow else None,
            'project': workflow.project_name if workflow else None
        })
        context.result.setdefault('jobs', [])
        context.result.setdefault('steps', [])
        context.result.setdefault('skipped', [])
        context.result['finished'] = False

    def post_run(self, context: MigrationContext) -> None:
        context.result['finished'] = True


class InventoryJob:
    """Records each job with its position in the graph."""

    def pre_run(self, context: MigrationContext) -> None:
        job = context.current_job
        context.result.setdefault('jobs', []).append({
            'id': job.id,
            'name': job.name,
            'depth': job.depth,
            'steps': len(job.active_steps())
        })

    def post_run(self, context: MigrationContext) -> None:
        pass


class InventoryStep:
    """Records a step; steps of an excluded kind are recorded as skipped."""

    def __init__(self, skip_kinds: Optional[Iterable[str]] = None):
        self.skip_kinds = set(skip_kinds or [])

    def run(self, context: MigrationContext) -> None:
        job = context.current_job
        step = context.current_step
        entry = {
            'job': job.name if job else None,
            'step': step.name,
            'kind': step.kind,
            'properties': dict(step.properties)
        }

        if step.kind in self.skip_kinds:
            context.result.setdefault('skipped', []).append(entry)
            raise SkipSignal(f"Step '{step.name}' has excluded kind {step.kind}")

        context.result.setdefault('steps', []).append(entry)


class InventoryLoader(RegistryLoader):
    """
    Loader recording every step.

    Kinds present in the registry still resolve to their registered hook; any
    other kind falls back to InventoryStep instead of being unsupported.
    """

    def __init__(
        self,
        registry: Optional[HookRegistry] = None,
        skip_kinds: Optional[Iterable[str]] = None,
        logger: Optional[logging.Logger] = None
    ):
        super().__init__(
            registry if registry is not None else HookRegistry(),
            workflow_factory=InventoryWorkflow,
            job_factory=InventoryJob,
            logger=logger
        )
        self.skip_kinds = list(skip_kinds or [])

    def load_step_hook(self, kind: str) -> StepHook:
        if kind in self.registry:
            return super().load_step_hook(kind)
        return InventoryStep(self.skip_kinds)


__all__ = ['InventoryWorkflow', 'InventoryJob', 'InventoryStep', 'InventoryLoader']
