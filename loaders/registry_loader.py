"""
Registry-backed hook loading.

Step hooks are registered explicitly against the kind identifier they
translate. There is no class-name lookup at runtime: a kind without a
registered factory is an UnsupportedKindError.
"""

import logging
from typing import Callable, Dict, List, Optional

from exceptions import UnsupportedKindError
from hooks.base import JobHook, StepHook, WorkflowHook
from loaders.base_loader import BaseLoader

logger = logging.getLogger('anthill_migrator.loaders')

StepHookFactory = Callable[[], StepHook]


class HookRegistry:
    """Maps step kind identifiers to step hook factories."""

    def __init__(self):
        self._step_factories: Dict[str, StepHookFactory] = {}

    def register_step(self, kind: str, factory: StepHookFactory) -> None:
        """
        Register a factory for a step kind, replacing any earlier registration.

        Args:
            kind: Step kind identifier
            factory: Zero-argument callable returning a StepHook (a class works)
        """
        if kind in self._step_factories:
            logger.warning(f"Replacing step hook registered for kind '{kind}'")
        self._step_factories[kind] = factory
        logger.debug(f"Registered step hook for kind '{kind}'")

    def step(self, kind: str) -> Callable[[StepHookFactory], StepHookFactory]:
        """Decorator form of register_step."""
        def decorator(factory: StepHookFactory) -> StepHookFactory:
            self.register_step(kind, factory)
            return factory
        return decorator

    def get_step_factory(self, kind: str) -> Optional[StepHookFactory]:
        """Return the factory for a kind, or None if none is registered."""
        return self._step_factories.get(kind)

    def kinds(self) -> List[str]:
        """Registered kind identifiers, sorted."""
        return sorted(self._step_factories)

    def __contains__(self, kind: str) -> bool:
        return kind in self._step_factories

    def __len__(self) -> int:
        return len(self._step_factories)


class RegistryLoader(BaseLoader):
    """Loader resolving step hooks from a HookRegistry."""

    def __init__(
        self,
        registry: HookRegistry,
        workflow_factory: Optional[Callable[[], WorkflowHook]] = None,
        job_factory: Optional[Callable[[], JobHook]] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize registry loader.

        Args:
            registry: Step hook registry
            workflow_factory: Optional factory for the workflow hook
            job_factory: Optional factory for job hooks; called once per job
            logger: Optional logger instance
        """
        self.registry = registry
        self.workflow_factory = workflow_factory
        self.job_factory = job_factory
        self.logger = logger or logging.getLogger('anthill_migrator.loaders')

    def load_workflow_hook(self) -> Optional[WorkflowHook]:
        if self.workflow_factory is None:
            return None
        return self.workflow_factory()

    def load_job_hook(self) -> Optional[JobHook]:
        if self.job_factory is None:
            return None
        return self.job_factory()

    def load_step_hook(self, kind: str) -> StepHook:
        factory = self.registry.get_step_factory(self.resolve_kind(kind))

        if factory is None:
            self.logger.error(f"No step hook registered for kind '{kind}'")
            raise UnsupportedKindError(kind)

        try:
            hook = factory()
        except Exception as e:
            raise UnsupportedKindError(kind, f"Could not build step hook for kind {kind}", e)

        if hook is None:
            raise UnsupportedKindError(kind, f"Step hook factory for kind {kind} returned nothing")

        return hook

    def resolve_kind(self, kind: str) -> str:
        """Map a native kind to the key used in the registry. Identity by default."""
        return kind


__all__ = ['HookRegistry', 'RegistryLoader', 'StepHookFactory']
